from .api import RoomsClient
from .poller import (
    GAME_POLL_INTERVAL, LOBBY_POLL_INTERVAL, ROOM_REFRESH_INTERVAL,
    ClientSession, ClientView, PollingTask, SubmitOutcome,
)

__all__ = [
    'RoomsClient', 'ClientSession', 'ClientView', 'PollingTask', 'SubmitOutcome',
    'LOBBY_POLL_INTERVAL', 'GAME_POLL_INTERVAL', 'ROOM_REFRESH_INTERVAL',
]
