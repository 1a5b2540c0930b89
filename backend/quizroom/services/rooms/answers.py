"""Answer aggregation for the question currently on screen.

One ordered mapping holds each player's latest answer; "has answered" is
just membership in that mapping. The mapping is frozen at the
QUESTION -> ANSWER_REVEAL instant and scored exactly once.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .errors import AnswerWindowClosed, InvalidAnswer, PhaseMismatch, StaleQuestion
from .phases import Phase
from .questions import Question
from .scoring import ScoringRules


@dataclass(frozen=True)
class Answer:
    player_id: str
    room_code: str
    question_id: str
    selected_option_index: int
    timestamp: float

    def to_dict(self) -> dict:
        return {
            'playerId': self.player_id,
            'roomCode': self.room_code,
            'questionId': self.question_id,
            'selectedOptionIndex': self.selected_option_index,
            'timestamp': self.timestamp,
        }


class AnswerState:
    def __init__(self, question_id: Optional[str] = None):
        self.question_id = question_id
        self.frozen = False
        self._answers: 'OrderedDict[str, Answer]' = OrderedDict()

    def record(self, answer: Answer) -> None:
        self._answers[answer.player_id] = answer

    def get(self, player_id: str) -> Optional[Answer]:
        return self._answers.get(player_id)

    def has_answered(self, player_id: str) -> bool:
        return player_id in self._answers

    def answered_ids(self) -> List[str]:
        return list(self._answers)

    def __len__(self) -> int:
        return len(self._answers)


@dataclass
class PlayerResult:
    player_id: str
    name: str
    selected_option_index: Optional[int]
    correct: bool
    skipped: bool
    points: int
    answer_time: Optional[float]

    def to_dict(self) -> dict:
        return {
            'playerId': self.player_id,
            'name': self.name,
            'selectedOptionIndex': self.selected_option_index,
            'correct': self.correct,
            'skipped': self.skipped,
            'points': self.points,
            'answerTime': self.answer_time,
        }


@dataclass
class QuestionResult:
    question_id: str
    index: int
    correct_index: int
    frozen_at: float
    players: List[PlayerResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'questionId': self.question_id,
            'index': self.index,
            'correctIndex': self.correct_index,
            'players': [p.to_dict() for p in self.players],
        }


class AnswerAggregator:
    """Collects answers for one room. Callers hold the room lock."""

    def __init__(self, room_code: str, rules: ScoringRules):
        self.room_code = room_code
        self.rules = rules
        self.question: Optional[Question] = None
        self.state = AnswerState()

    def reset(self, question: Question) -> None:
        self.question = question
        self.state = AnswerState(question.id)

    def submit(self, phase: Phase, player_id: str, question_id: str,
               selected_option_index: int, now: float) -> Answer:
        if self.state.frozen and question_id == self.state.question_id:
            raise AnswerWindowClosed()
        if phase != Phase.QUESTION or self.question is None:
            raise PhaseMismatch()
        if question_id != self.question.id:
            raise StaleQuestion()
        if not isinstance(selected_option_index, int) or isinstance(selected_option_index, bool) \
                or not 0 <= selected_option_index < len(self.question.options):
            raise InvalidAnswer()

        previous = self.state.get(player_id)
        if previous is not None and previous.selected_option_index == selected_option_index:
            return previous
        answer = Answer(
            player_id=player_id,
            room_code=self.room_code,
            question_id=question_id,
            selected_option_index=selected_option_index,
            timestamp=now,
        )
        self.state.record(answer)
        return answer

    def everyone_answered(self, player_ids: Sequence[str]) -> bool:
        return bool(player_ids) and all(self.state.has_answered(pid) for pid in player_ids)

    def freeze(self, players: Sequence, duration: float, now: float) -> QuestionResult:
        """Close the window and apply points and stats to ``players``."""
        self.state.frozen = True
        question = self.question
        result = QuestionResult(
            question_id=question.id,
            index=question.index,
            correct_index=question.correct_index,
            frozen_at=now,
        )
        started = question.started_at or 0.0
        for player in players:
            answer = self.state.get(player.id)
            if answer is None:
                player.skipped_count += 1
                result.players.append(PlayerResult(player.id, player.name, None, False, True, 0, None))
                continue
            elapsed = max(0.0, answer.timestamp - started)
            correct = answer.selected_option_index == question.correct_index
            points = self.rules.points(correct, elapsed, duration)
            player.score += points
            if correct:
                player.correct_count += 1
            else:
                player.wrong_count += 1
            player.total_answer_time += elapsed
            result.players.append(PlayerResult(
                player.id, player.name, answer.selected_option_index, correct, False, points,
                round(elapsed, 3),
            ))
        return result
