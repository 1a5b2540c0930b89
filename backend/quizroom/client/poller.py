"""Client-side reconciliation loop.

A client never receives pushes; it keeps its view in step with the server by
polling one endpoint at a time:

- the room directory every ROOM_REFRESH_INTERVAL while browsing rooms,
- the room summary every LOBBY_POLL_INTERVAL while waiting in a lobby,
- the game snapshot every GAME_POLL_INTERVAL once the room has started.

Each loop is a PollingTask: a repeating tick driven by the same timer
objects the server uses (so tests advance virtual time), with at most one
fetch in flight and a generation/sequence guard that discards responses
arriving after ``stop`` or after a newer fetch already landed.
"""

import logging
import math
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, List, Optional

from quizroom.services.rooms.directory import filter_available, filter_by_status
from quizroom.services.rooms.errors import NetworkFailure, RoomError
from quizroom.services.rooms.phases import Phase
from quizroom.services.rooms.timers import ThreadTimers

logger = logging.getLogger(__name__)

LOBBY_POLL_INTERVAL = 2000
GAME_POLL_INTERVAL = 1000
ROOM_REFRESH_INTERVAL = 5000

DIRECTORY = 'directory'
LOBBY = 'lobby'
GAME = 'game'

FETCH_ERRORS = {
    DIRECTORY: 'Failed to fetch rooms',
    LOBBY: 'Failed to fetch lobby',
    GAME: 'Failed to fetch game state',
}


class PollingTask:
    def __init__(self, name: str, fetch: Callable[[], Future], on_result: Callable[[Any], None],
                 on_error: Callable[[BaseException], None], interval_ms: int, timers):
        self.name = name
        self.fetch = fetch
        self.on_result = on_result
        self.on_error = on_error
        self.interval_ms = interval_ms
        self.timers = timers
        self.skipped = 0
        self._stopped = True
        self._generation = 0
        self._seq = 0
        self._applied = 0
        self._in_flight: Optional[Future] = None
        self._tick = None
        self._lock = threading.RLock()

    @property
    def running(self) -> bool:
        return not self._stopped

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    def start(self) -> None:
        """Fetch now, then keep fetching every interval until stopped."""
        with self._lock:
            if not self._stopped:
                return
            self._stopped = False
            self._generation += 1
            self._issue()
            self._schedule()

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
            self._generation += 1
            if self._tick is not None:
                self._tick.cancel()
                self._tick = None
            self._in_flight = None

    def refresh(self) -> bool:
        """Fetch immediately unless one is already pending; the next tick keeps its slot."""
        with self._lock:
            if self._stopped or self._in_flight is not None:
                return False
            self._issue()
            return True

    def _schedule(self) -> None:
        self._tick = self.timers.call_later(self.interval_ms / 1000.0, self._on_tick, self._generation)

    def _on_tick(self, generation: int) -> None:
        with self._lock:
            if self._stopped or generation != self._generation:
                return
            if self._in_flight is not None:
                self.skipped += 1
                logger.debug(f"[poll-skip] task={self.name} skipped={self.skipped}")
            else:
                self._issue()
            self._schedule()

    def _issue(self) -> None:
        self._seq += 1
        seq, generation = self._seq, self._generation
        future = self.fetch()
        self._in_flight = future
        future.add_done_callback(lambda done: self._on_done(done, seq, generation))

    def _on_done(self, future: Future, seq: int, generation: int) -> None:
        with self._lock:
            if self._in_flight is future:
                self._in_flight = None
            if self._stopped or generation != self._generation or seq <= self._applied or future.cancelled():
                logger.debug(f"[poll-discard] task={self.name} seq={seq}")
                return
            self._applied = seq
            exc = future.exception()
            if exc is not None:
                self.on_error(exc)
            else:
                self.on_result(future.result())


@dataclass
class ClientView:
    mode: Optional[str] = None
    room_code: Optional[str] = None
    rooms: List[dict] = field(default_factory=list)
    available_rooms: List[dict] = field(default_factory=list)
    started_rooms: List[dict] = field(default_factory=list)
    lobby: Optional[dict] = None
    players: List[dict] = field(default_factory=list)
    is_host: bool = False
    step: Optional[int] = None
    current_question_index: int = 0
    total_question_count: Optional[int] = None
    remaining_time: Optional[int] = None
    questions: List[dict] = field(default_factory=list)
    scores: List[dict] = field(default_factory=list)
    results: Optional[dict] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    loading: bool = False
    updated_at: Optional[float] = None


@dataclass(frozen=True)
class SubmitOutcome:
    status: str
    code: Optional[str] = None
    message: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.status == 'accepted'


class ClientSession:
    """One player's screen: which loop runs, and the view it keeps current."""

    def __init__(self, api, player_id: Optional[str] = None, timers=None, executor=None):
        self.api = api
        self.player_id = player_id
        self.timers = timers or ThreadTimers()
        self._owns_executor = executor is None
        self.executor = executor
        self.view = ClientView()
        self.task: Optional[PollingTask] = None

    # ---- screens ----

    def show_directory(self) -> None:
        self._begin(DIRECTORY, None)

    def open_lobby(self, room_code: str) -> None:
        self._begin(LOBBY, room_code)

    def open_game(self, room_code: str) -> None:
        self._begin(GAME, room_code)

    def refresh(self) -> bool:
        if self.task is None:
            return False
        return self.task.refresh()

    def close(self) -> None:
        """Stop polling; anything still in flight is dropped on arrival."""
        if self.task is not None:
            self.task.stop()
            self.task = None
        self.view.mode = None
        self.view.loading = False
        if self._owns_executor and self.executor is not None:
            self.executor.shutdown(wait=False)
            self.executor = None

    def leave(self) -> None:
        room_code = self.view.room_code
        self.close()
        if room_code and self.player_id:
            self.api.leave(room_code, self.player_id)
        self.view.room_code = None

    def local_time_left(self) -> Optional[int]:
        """Seconds left, counted down locally from the last server remainingTime."""
        if self.view.remaining_time is None or self.view.updated_at is None:
            return None
        elapsed = self.timers.now() - self.view.updated_at
        return max(0, int(math.ceil(self.view.remaining_time - elapsed)))

    def submit_answer(self, question_id: str, selected_option_index: int) -> SubmitOutcome:
        """Submit for the current room; rejections and lost requests come back distinct."""
        try:
            self.api.submit_answer(self.view.room_code, self.player_id, question_id, selected_option_index)
        except RoomError as exc:
            logger.info(f"[answer-rejected] room={self.view.room_code} code={exc.code}")
            return SubmitOutcome('rejected', exc.code, str(exc))
        except NetworkFailure as exc:
            logger.warning(f"[answer-lost] room={self.view.room_code}: {exc}")
            return SubmitOutcome('lost', None, str(exc))
        self.refresh()
        return SubmitOutcome('accepted')

    # ---- loops ----

    def _begin(self, mode: str, room_code: Optional[str]) -> None:
        if self.task is not None:
            self.task.stop()
        if self.executor is None:
            self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='quizroom-poll')
        self.view.mode = mode
        self.view.room_code = room_code.upper() if room_code else None
        self.view.error = None
        self.view.error_code = None
        self.view.loading = True

        if mode == DIRECTORY:
            fetch = partial(self.executor.submit, self.api.fetch_rooms)
            on_result, interval = self._apply_rooms, ROOM_REFRESH_INTERVAL
        elif mode == LOBBY:
            fetch = partial(self.executor.submit, self.api.fetch_room, self.view.room_code)
            on_result, interval = self._apply_lobby, LOBBY_POLL_INTERVAL
        else:
            fetch = partial(self.executor.submit, self.api.fetch_state, self.view.room_code, self.player_id)
            on_result, interval = self._apply_game, GAME_POLL_INTERVAL

        self.task = PollingTask(mode, fetch, on_result, self._fail, interval, self.timers)
        logger.debug(f"[poll-start] mode={mode} room={self.view.room_code} interval={interval}ms")
        self.task.start()

    def _succeeded(self) -> None:
        self.view.error = None
        self.view.error_code = None
        self.view.loading = False
        self.view.updated_at = self.timers.now()

    def _fail(self, exc: BaseException) -> None:
        mode = self.view.mode
        self.view.error = FETCH_ERRORS.get(mode, 'Failed to fetch')
        self.view.error_code = getattr(exc, 'code', None)
        self.view.loading = False
        logger.warning(f"[poll-failed] mode={mode} room={self.view.room_code}: {exc}")

    def _apply_rooms(self, rooms: List[dict]) -> None:
        self.view.rooms = list(rooms)
        self.view.available_rooms = filter_available(rooms)
        self.view.started_rooms = filter_by_status(rooms, True)
        self._succeeded()

    def _apply_lobby(self, summary: dict) -> None:
        host_id = summary.get('hostId')
        players = sorted(summary.get('players', []), key=lambda p: p.get('id') != host_id)
        self.view.lobby = dict(summary, players=players)
        self.view.players = players
        self.view.is_host = bool(self.player_id) and host_id == self.player_id
        self.view.total_question_count = summary.get('totalQuestionCount')
        self._succeeded()
        if summary.get('started'):
            self.open_game(self.view.room_code)

    def _apply_game(self, snapshot: dict) -> None:
        self.view.step = snapshot.get('state')
        self.view.current_question_index = snapshot.get('currentQuestionIndex', 0)
        self.view.total_question_count = snapshot.get('totalQuestionCount')
        self.view.remaining_time = snapshot.get('remainingTime')
        self.view.questions = snapshot.get('questions', [])
        self.view.players = snapshot.get('players', [])
        self.view.scores = snapshot.get('scores', [])
        self.view.results = snapshot.get('results')
        self.view.is_host = bool(self.player_id) and snapshot.get('hostId') == self.player_id
        if snapshot.get('lobby') is not None:
            self.view.lobby = snapshot['lobby']
        self._succeeded()
        if self.view.step == Phase.FINAL and self.task is not None:
            self.task.stop()
