"""Game phases and the transition table that drives a room.

Ordinals are part of the wire format and must not change:
0=LOBBY, 1=COUNTDOWN, 2=QUESTION, 3=ANSWER_REVEAL, 4=RANKING, 5=FINAL.
"""

from enum import Enum, IntEnum
from typing import Dict

from .errors import IllegalTransition


class Phase(IntEnum):
    LOBBY = 0
    COUNTDOWN = 1
    QUESTION = 2
    ANSWER_REVEAL = 3
    RANKING = 4
    FINAL = 5


class Event(str, Enum):
    START = 'start'
    COUNTDOWN_ELAPSED = 'countdown_elapsed'
    QUESTION_TIMEOUT = 'question_timeout'
    ALL_ANSWERED = 'all_answered'
    REVEAL_ELAPSED = 'reveal_elapsed'
    NEXT_QUESTION = 'next_question'
    QUESTIONS_EXHAUSTED = 'questions_exhausted'


TRANSITIONS: Dict[Phase, Dict[Event, Phase]] = {
    Phase.LOBBY: {
        Event.START: Phase.COUNTDOWN,
    },
    Phase.COUNTDOWN: {
        Event.COUNTDOWN_ELAPSED: Phase.QUESTION,
    },
    Phase.QUESTION: {
        Event.QUESTION_TIMEOUT: Phase.ANSWER_REVEAL,
        Event.ALL_ANSWERED: Phase.ANSWER_REVEAL,
    },
    Phase.ANSWER_REVEAL: {
        Event.REVEAL_ELAPSED: Phase.RANKING,
    },
    Phase.RANKING: {
        Event.NEXT_QUESTION: Phase.QUESTION,
        Event.QUESTIONS_EXHAUSTED: Phase.FINAL,
    },
    Phase.FINAL: {},
}


def can_transition(phase: Phase, event: Event) -> bool:
    return event in TRANSITIONS.get(phase, {})


def next_phase(phase: Phase, event: Event) -> Phase:
    """Return the phase reached from ``phase`` on ``event``.

    Raises IllegalTransition for any pair missing from the table, which is
    how FINAL stays terminal and why no phase can be skipped.
    """
    try:
        return TRANSITIONS[phase][event]
    except KeyError:
        raise IllegalTransition(f'{event.value} is not valid in {phase.name}') from None


def ranking_exit_event(question_index: int, total_questions: int) -> Event:
    """Pick the RANKING exit: another question while one remains, else FINAL."""
    if question_index + 1 < total_questions:
        return Event.NEXT_QUESTION
    return Event.QUESTIONS_EXHAUSTED


def is_valid_path(phases) -> bool:
    """True if consecutive phases only ever follow a table edge (or repeat)."""
    allowed = {(src, dst) for src, edges in TRANSITIONS.items() for dst in edges.values()}
    seq = list(phases)
    for prev, cur in zip(seq, seq[1:]):
        if prev != cur and (prev, cur) not in allowed:
            return False
    return True


def room_status(phase: Phase) -> str:
    """Map a phase onto the directory status vocabulary."""
    if phase == Phase.LOBBY:
        return 'waiting'
    if phase == Phase.FINAL:
        return 'finished'
    return 'started'
