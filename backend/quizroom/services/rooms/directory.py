"""Process-wide directory of quiz rooms.

The directory owns every Room for the lifetime of the process. Its own lock
guards the code -> room map. Room state is mutated through the room itself;
the only place both locks are held is creation and timed expiry, always
directory first.
"""

import itertools
import logging
import random
import string
import threading
from typing import Callable, Dict, Iterable, List, Optional

from flask_bcrypt import Bcrypt

from .answers import Answer
from .errors import CodeExhaustion, InvalidRoomPassword, RoomNotFound, RoomPasswordRequired
from .phases import Phase
from .questions import QuestionFactory
from .room import Player, QuizConfig, Room, RoomSettings
from .timers import ThreadTimers

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def filter_by_status(rooms: Iterable[dict], started: bool) -> List[dict]:
    return [r for r in rooms if bool(r.get('started')) == started]


def filter_available(rooms: Iterable[dict]) -> List[dict]:
    return filter_by_status(rooms, False)


def filter_by_room_status(rooms: Iterable[dict], status: str) -> List[dict]:
    return [r for r in rooms if r.get('status') == status]


class RoomDirectory:
    def __init__(self, settings: RoomSettings, word_bank, timers=None, hasher=None,
                 code_length: int = 6, code_alphabet: str = CODE_ALPHABET,
                 code_attempts: int = 32, rng: Optional[random.Random] = None):
        self.settings = settings
        self.word_bank = word_bank
        self.timers = timers or ThreadTimers()
        self.hasher = hasher or Bcrypt()
        self.code_length = code_length
        self.code_alphabet = code_alphabet
        self.code_attempts = code_attempts
        self._rng = rng or random.Random()
        self._rooms: Dict[str, Room] = {}
        self._subscribers: List[Callable] = []
        self._lock = threading.Lock()

    # ---- codes ----

    def _generate_code(self) -> str:
        """Random short code, then an exhaustive scan once random draws keep colliding."""
        for _ in range(self.code_attempts):
            code = ''.join(self._rng.choices(self.code_alphabet, k=self.code_length))
            if code not in self._rooms:
                return code
        for chars in itertools.product(self.code_alphabet, repeat=self.code_length):
            code = ''.join(chars)
            if code not in self._rooms:
                return code
        raise CodeExhaustion()

    # ---- lookup ----

    def get_room(self, code: str) -> Room:
        room = self._rooms.get((code or '').upper())
        if room is None:
            raise RoomNotFound()
        return room

    def list_rooms(self) -> List[dict]:
        """Summaries of every active room, oldest first."""
        with self._lock:
            rooms = list(self._rooms.values())
        return sorted((room.summary() for room in rooms), key=lambda r: (r['createdAt'], r['roomCode']))

    def filter_by_status(self, started: bool) -> List[dict]:
        return filter_by_status(self.list_rooms(), started)

    def filter_available(self) -> List[dict]:
        return filter_available(self.list_rooms())

    def snapshot(self, code: str, viewer_id: Optional[str] = None) -> dict:
        return self.get_room(code).snapshot(viewer_id)

    def subscribe(self, callback: Callable[[str, Phase, int], None]) -> None:
        """Receive (room_code, phase, question_index) on every phase change."""
        with self._lock:
            self._subscribers.append(callback)
            rooms = list(self._rooms.values())
        for room in rooms:
            room.subscribe(callback)

    # ---- lifecycle ----

    def create_room(self, host: Player, config: Optional[QuizConfig] = None,
                    password: Optional[str] = None) -> Room:
        config = config or QuizConfig()
        config.validate()
        password_hash = None
        if password:
            password_hash = self.hasher.generate_password_hash(password).decode('utf-8')
        with self._lock:
            code = self._generate_code()
            room = Room(
                code, config, self.settings, self.timers,
                QuestionFactory(self.word_bank, random.Random()),
                password_hash=password_hash,
                on_expire=self._expire,
            )
            for callback in self._subscribers:
                room.subscribe(callback)
            room.join(host)
            self._rooms[code] = room
        logger.info(f"[room-create] room={code} host={host.id} config={config.to_dict()}")
        return room

    def join_room(self, code: str, player: Player, password: Optional[str] = None) -> Room:
        room = self.get_room(code)
        if room.password_hash and not room.knows(player.id):
            if not password:
                raise RoomPasswordRequired()
            if not self.hasher.check_password_hash(room.password_hash, password):
                raise InvalidRoomPassword()
        room.join(player)
        return room

    def leave_room(self, code: str, player_id: str) -> Room:
        room = self.get_room(code)
        room.leave(player_id)
        return room

    def start_room(self, code: str, player_id: str) -> Room:
        room = self.get_room(code)
        room.start(player_id)
        return room

    def update_config(self, code: str, player_id: str, changes: dict) -> QuizConfig:
        return self.get_room(code).update_config(player_id, changes)

    def disband_room(self, code: str, player_id: str) -> None:
        room = self.get_room(code)
        room.require_host(player_id)
        self._remove(room.code, 'disbanded')

    def submit_answer(self, room_code: str, player_id: str, question_id: str,
                      selected_option_index: int) -> Answer:
        return self.get_room(room_code).submit_answer(player_id, question_id, selected_option_index)

    def _expire(self, code: str, reason: str, seq: int) -> None:
        # Directory lock then room lock, the same order as create_room; a join
        # racing the timer either lands first (room kept) or sees a closed room
        with self._lock:
            room = self._rooms.get(code)
            if room is None or not room.expire_if_due(reason, seq):
                return
            del self._rooms[code]
        logger.info(f"[room-remove] room={code} reason=expired-{reason}")

    def _remove(self, code: str, reason: str) -> None:
        with self._lock:
            room = self._rooms.pop(code, None)
        if room is not None:
            room.close()
            logger.info(f"[room-remove] room={code} reason={reason}")

    def shutdown(self) -> None:
        with self._lock:
            rooms = list(self._rooms.values())
            self._rooms.clear()
        for room in rooms:
            room.close()

    def __len__(self) -> int:
        return len(self._rooms)
