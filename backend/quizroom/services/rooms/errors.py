"""Error taxonomy for room, game and answer operations.

Every error carries a stable ``code`` string and an HTTP ``status`` so the
API layer can serialize it and the polling client can rebuild the same
exception class from a response payload.
"""

from typing import Dict, Optional, Type


class RoomError(Exception):
    code = 'RoomError'
    status = 400
    message = 'Room operation failed'

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)

    def to_dict(self) -> dict:
        return {'error': str(self), 'code': self.code}


class RoomNotFound(RoomError):
    code = 'RoomNotFound'
    status = 404
    message = 'Room not found'


class RoomAlreadyStarted(RoomError):
    code = 'RoomAlreadyStarted'
    status = 409
    message = 'This room has already started'


class RoomFull(RoomError):
    code = 'RoomFull'
    status = 409
    message = 'This room is full'


class CodeExhaustion(RoomError):
    code = 'CodeExhaustion'
    status = 503
    message = 'No free room codes are left'


class PlayerNotInRoom(RoomError):
    code = 'PlayerNotInRoom'
    status = 404
    message = 'Player not found in this room'


class NotHost(RoomError):
    code = 'NotHost'
    status = 403
    message = 'Only the host may do that'


class NotEnoughPlayers(RoomError):
    code = 'NotEnoughPlayers'
    status = 409
    message = 'Not enough players to start'


class InvalidConfig(RoomError):
    code = 'InvalidConfig'
    status = 400
    message = 'Invalid quiz configuration'


class ConfigLocked(RoomError):
    code = 'ConfigLocked'
    status = 409
    message = 'Quiz configuration is locked once the game has started'


class RoomPasswordRequired(RoomError):
    code = 'RoomPasswordRequired'
    status = 401
    message = 'Password is required for this room'


class InvalidRoomPassword(RoomError):
    code = 'InvalidRoomPassword'
    status = 403
    message = 'Incorrect password'


class PhaseMismatch(RoomError):
    code = 'PhaseMismatch'
    status = 409
    message = 'Not accepting answers at this time'


class StaleQuestion(RoomError):
    code = 'StaleQuestion'
    status = 409
    message = 'Answer is for a question that is no longer current'


class AnswerWindowClosed(RoomError):
    code = 'AnswerWindowClosed'
    status = 409
    message = 'The answer window for this question has closed'


class InvalidAnswer(RoomError):
    code = 'InvalidAnswer'
    status = 400
    message = 'Selected option does not exist'


class IllegalTransition(RoomError):
    code = 'IllegalTransition'
    status = 409
    message = 'Illegal phase transition'


class NetworkFailure(Exception):
    """Client-side fetch or submit failure; retried by the next poll tick."""


ERRORS_BY_CODE: Dict[str, Type[RoomError]] = {
    cls.code: cls
    for cls in (
        RoomError, RoomNotFound, RoomAlreadyStarted, RoomFull, CodeExhaustion,
        PlayerNotInRoom, NotHost, NotEnoughPlayers, InvalidConfig, ConfigLocked,
        RoomPasswordRequired, InvalidRoomPassword, PhaseMismatch, StaleQuestion,
        AnswerWindowClosed, InvalidAnswer, IllegalTransition,
    )
}


def error_from_payload(payload: dict) -> RoomError:
    """Rebuild the server-side exception described by an error payload."""
    cls = ERRORS_BY_CODE.get((payload or {}).get('code'), RoomError)
    return cls((payload or {}).get('error'))
