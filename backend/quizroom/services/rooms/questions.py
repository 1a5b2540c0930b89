"""Question generation from a vocabulary word bank.

A question shows an English word and asks for its meaning. Options are
the correct meaning plus distractor meanings, shuffled so the correct
answer lands at a random position. Each room owns its own RNG, so two rooms
on the same word still see independent option orders.
"""

import random
import uuid
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from .errors import InvalidConfig

LEVELS = ('A1', 'A2', 'B1', 'B2', 'C1', 'C2')

WordEntry = Tuple[str, str, str]  # (english, meaning, level)


@dataclass
class Question:
    id: str
    index: int
    prompt: str
    correct_meaning: str
    options: List[str]
    correct_index: int
    started_at: Optional[float] = None

    def to_dict(self, reveal: bool = False) -> dict:
        payload = {
            'id': self.id,
            'index': self.index,
            'text': self.prompt,
            'english': self.prompt,
            'options': list(self.options),
        }
        if reveal:
            payload['correctIndex'] = self.correct_index
            payload['correctMeaning'] = self.correct_meaning
        return payload


class StaticWordBank:
    """Word bank over an in-memory list of (english, meaning, level)."""

    def __init__(self, entries: Iterable[WordEntry]):
        self._entries = [tuple(e) for e in entries]

    def words(self, level: str) -> List[WordEntry]:
        if level == 'all':
            return list(self._entries)
        return [e for e in self._entries if e[2] == level]


class SqlWordBank:
    """Word bank backed by the Word table; safe to call from timer threads."""

    def __init__(self, app):
        self.app = app

    def words(self, level: str) -> List[WordEntry]:
        from quizroom.models import Word

        with self.app.app_context():
            query = Word.query
            if level != 'all':
                query = query.filter_by(level=level)
            return [(w.english, w.meaning, w.level) for w in query.order_by(Word.id).all()]


@dataclass
class QuestionFactory:
    bank: object
    rng: random.Random = field(default_factory=random.Random)

    def check_capacity(self, level: str, option_count: int) -> None:
        """Fail fast at start when the bank cannot fill the option list."""
        if not self.bank.words(level):
            raise InvalidConfig(f'No words available for level {level}')
        if len({m for _, m, _ in self.bank.words('all')}) < option_count:
            raise InvalidConfig(f'Not enough words to build {option_count} options')

    def build(self, index: int, level: str, option_count: int, used: Set[str]) -> Question:
        pool = self.bank.words(level)
        if not pool:
            raise InvalidConfig(f'No words available for level {level}')
        fresh = [e for e in pool if e[0] not in used] or pool
        english, meaning, _ = self.rng.choice(fresh)

        distractors = self._distractors(meaning, pool, option_count - 1)
        if len(distractors) < option_count - 1:
            distractors = self._distractors(meaning, self.bank.words('all'), option_count - 1)
        if len(distractors) < option_count - 1:
            raise InvalidConfig(f'Not enough words to build {option_count} options')

        options = distractors + [meaning]
        self.rng.shuffle(options)
        return Question(
            id=uuid.uuid4().hex,
            index=index,
            prompt=english,
            correct_meaning=meaning,
            options=options,
            correct_index=options.index(meaning),
        )

    def _distractors(self, meaning: str, pool: Sequence[WordEntry], count: int) -> List[str]:
        candidates = sorted({m for _, m, _ in pool if m != meaning})
        if len(candidates) <= count:
            return candidates
        return self.rng.sample(candidates, count)
