"""Scoring and ranking for a room.

Points are applied once per question, at the freeze, never on submit.
Rankings are rebuilt from scratch from the roster every time they are
needed, so a missed update can never leave them out of sync.
"""

import math
from dataclasses import dataclass
from typing import List, Sequence


@dataclass(frozen=True)
class ScoringRules:
    base_score: int = 100
    speed_bonus_max: int = 100

    def points(self, correct: bool, elapsed: float, duration: float) -> int:
        """0 for a wrong answer; base plus a linearly decaying speed bonus otherwise."""
        if not correct:
            return 0
        if duration <= 0:
            return self.base_score
        ratio = max(0.0, 1.0 - max(0.0, elapsed) / duration)
        return self.base_score + int(math.floor(self.speed_bonus_max * ratio))


@dataclass(frozen=True)
class RankingEntry:
    rank: int
    player_id: str
    name: str
    score: int
    is_top3: bool
    correct_count: int = 0

    def to_dict(self) -> dict:
        return {
            'rank': self.rank,
            'playerId': self.player_id,
            'name': self.name,
            'score': self.score,
            'correctCount': self.correct_count,
            'isTop3': self.is_top3,
        }


def build_rankings(players: Sequence) -> List[RankingEntry]:
    """Order players by cumulative score, ties by earlier join.

    Submission time is deliberately not a tie-breaker; speed already
    earned its bonus during scoring.
    """
    ordered = sorted(players, key=lambda p: (-p.score, p.join_index))
    return [
        RankingEntry(
            rank=pos + 1,
            player_id=p.id,
            name=p.name,
            score=p.score,
            is_top3=pos < 3,
            correct_count=p.correct_count,
        )
        for pos, p in enumerate(ordered)
    ]
