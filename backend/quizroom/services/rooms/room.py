"""A single quiz room: roster, host, configuration and its game machine.

All mutations of a room run under the room's own lock, so joins, leaves,
answers and timer firings on one room are strictly serialized while
different rooms never contend. After each mutation the room republishes
an immutable snapshot; pollers read that snapshot without taking the lock.
"""

import logging
import math
import random
import threading
import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Mapping, Optional

from .answers import Answer, AnswerAggregator, QuestionResult
from .errors import (
    ConfigLocked, InvalidConfig, NotEnoughPlayers, NotHost, PlayerNotInRoom,
    RoomAlreadyStarted, RoomError, RoomFull, RoomNotFound,
)
from .phases import Event, Phase, next_phase, ranking_exit_event, room_status
from .questions import LEVELS, Question, QuestionFactory
from .scoring import RankingEntry, ScoringRules, build_rankings

logger = logging.getLogger(__name__)

AVATAR_COUNT = 20


@dataclass
class QuizConfig:
    question_duration: int = 60
    option_count: int = 4
    level: str = 'all'
    total_question_count: int = 10

    _FIELDS = {
        'questionDuration': 'question_duration',
        'optionCount': 'option_count',
        'level': 'level',
        'totalQuestionCount': 'total_question_count',
    }

    @classmethod
    def from_dict(cls, data: Optional[Mapping], base: Optional['QuizConfig'] = None) -> 'QuizConfig':
        """Build a config from wire keys, falling back to ``base`` (or defaults)."""
        changes = {}
        for wire_key, attr in cls._FIELDS.items():
            if data and data.get(wire_key) is not None:
                changes[attr] = data[wire_key]
        config = replace(base or cls(), **changes)
        config.validate()
        return config

    def validate(self) -> None:
        for attr in ('question_duration', 'option_count', 'total_question_count'):
            value = getattr(self, attr)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfig(f'{attr} must be an integer')
        if not 5 <= self.question_duration <= 300:
            raise InvalidConfig('questionDuration must be between 5 and 300 seconds')
        if not 2 <= self.option_count <= 6:
            raise InvalidConfig('optionCount must be between 2 and 6')
        if not 1 <= self.total_question_count <= 100:
            raise InvalidConfig('totalQuestionCount must be between 1 and 100')
        if self.level != 'all' and self.level not in LEVELS:
            raise InvalidConfig(f'Unknown level {self.level!r}')

    def to_dict(self) -> dict:
        return {wire_key: getattr(self, attr) for wire_key, attr in self._FIELDS.items()}


@dataclass
class Player:
    id: str
    name: str
    avatar_id: int = 0
    join_index: int = 0
    room_code: Optional[str] = None
    score: int = 0
    correct_count: int = 0
    wrong_count: int = 0
    skipped_count: int = 0
    total_answer_time: float = 0.0

    @classmethod
    def create(cls, name: str, player_id: Optional[str] = None, avatar_id: Optional[int] = None) -> 'Player':
        if avatar_id is None or not 0 <= avatar_id < AVATAR_COUNT:
            avatar_id = random.randrange(AVATAR_COUNT)
        return cls(id=player_id or uuid.uuid4().hex, name=name, avatar_id=avatar_id)

    def reset_stats(self) -> None:
        self.score = 0
        self.correct_count = 0
        self.wrong_count = 0
        self.skipped_count = 0
        self.total_answer_time = 0.0

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'playerId': self.id,
            'name': self.name,
            'avatarId': self.avatar_id,
            'roomCode': self.room_code,
            'score': self.score,
            'correctCount': self.correct_count,
            'wrongCount': self.wrong_count,
            'skippedCount': self.skipped_count,
            'totalAnswerTime': round(self.total_answer_time, 3),
        }


@dataclass(frozen=True)
class RoomSettings:
    countdown_sec: float = 3
    reveal_sec: float = 5
    ranking_sec: float = 5
    ranking_countdown_visible: bool = False
    final_grace_sec: float = 60
    empty_room_grace_sec: float = 10
    restore_score_on_rejoin: bool = True
    min_players: int = 1
    max_players: int = 12
    allow_late_join: bool = False
    scoring: ScoringRules = field(default_factory=ScoringRules)

    @classmethod
    def from_config(cls, config: Mapping) -> 'RoomSettings':
        return cls(
            countdown_sec=config.get('COUNTDOWN_DURATION_SEC', 3),
            reveal_sec=config.get('ANSWER_REVEAL_DURATION_SEC', 5),
            ranking_sec=config.get('RANKING_DURATION_SEC', 5),
            ranking_countdown_visible=bool(config.get('RANKING_COUNTDOWN_VISIBLE', False)),
            final_grace_sec=config.get('FINAL_GRACE_SEC', 60),
            empty_room_grace_sec=config.get('EMPTY_ROOM_GRACE_SEC', 10),
            restore_score_on_rejoin=bool(config.get('RESTORE_SCORE_ON_REJOIN', True)),
            min_players=int(config.get('MIN_PLAYERS', 1)),
            max_players=int(config.get('MAX_PLAYERS', 12)),
            allow_late_join=bool(config.get('ALLOW_LATE_JOIN', False)),
            scoring=ScoringRules(
                base_score=int(config.get('BASE_SCORE', 100)),
                speed_bonus_max=int(config.get('SPEED_BONUS_MAX', 100)),
            ),
        )


class Room:
    def __init__(self, code: str, config: QuizConfig, settings: RoomSettings, timers,
                 questions: QuestionFactory, password_hash: Optional[str] = None,
                 on_expire: Optional[Callable[[str, str, int], None]] = None):
        self.code = code
        self.config = config
        self.settings = settings
        self.timers = timers
        self.questions = questions
        self.password_hash = password_hash
        self.phase = Phase.LOBBY
        self.started = False
        self.closed = False
        self.players: List[Player] = []
        self.host_id: Optional[str] = None
        self.aggregator = AnswerAggregator(code, settings.scoring)
        self.rankings: List[RankingEntry] = []
        self.history: List[QuestionResult] = []
        self.created_at = timers.now()
        self.last_used = self.created_at
        self._on_expire = on_expire
        self._departed: Dict[str, Player] = {}
        self._next_join_index = 0
        self._cursor = -1
        self._used_words = set()
        self._epoch = 0
        self._deadline: Optional[float] = None
        self._phase_timer = None
        self._expiry_timer = None
        self._expiry_reason: Optional[str] = None
        self._expiry_seq = 0
        self._listeners: List[Callable[[str, Phase, int], None]] = []
        self._lock = threading.RLock()
        self._published: dict = {}
        self._publish()

    # ---- roster ----

    @property
    def current_question_index(self) -> int:
        return max(self._cursor, 0)

    @property
    def current_question(self) -> Optional[Question]:
        return self.aggregator.question

    def get_player(self, player_id: str) -> Optional[Player]:
        return next((p for p in self.players if p.id == player_id), None)

    def knows(self, player_id: str) -> bool:
        """True for present players and for those who left and may rejoin."""
        with self._lock:
            return self.get_player(player_id) is not None or player_id in self._departed

    def join(self, player: Player) -> Player:
        """Add ``player`` or re-admit a present/recently departed id."""
        with self._lock:
            if self.closed:
                raise RoomNotFound()
            present = self.get_player(player.id)
            if present is not None:
                return present
            returning = self._departed.pop(player.id, None)
            if returning is None and self.phase != Phase.LOBBY and not self.settings.allow_late_join:
                raise RoomAlreadyStarted()
            if len(self.players) >= self.settings.max_players:
                if returning is not None:
                    self._departed[returning.id] = returning
                raise RoomFull()

            if returning is not None:
                if not self.settings.restore_score_on_rejoin:
                    returning.reset_stats()
                returning.name = player.name or returning.name
                member = returning
                logger.info(f"[rejoin] room={self.code} player={member.id} score={member.score}")
            else:
                member = player
                member.join_index = self._next_join_index
                self._next_join_index += 1
                logger.info(f"[join] room={self.code} player={member.id} name={member.name}")
            member.room_code = self.code
            self.players.append(member)
            self.players.sort(key=lambda p: p.join_index)

            if self.host_id is None:
                self.host_id = member.id
            if self._expiry_timer is not None:
                if self.phase != Phase.FINAL:
                    self._cancel_expiry()
                elif self._expiry_reason == 'empty':
                    self._schedule_expiry(self.settings.final_grace_sec, 'finished')
            self._touch()
            self._publish()
            return member

    def leave(self, player_id: str) -> None:
        with self._lock:
            player = self.get_player(player_id)
            if player is None:
                raise PlayerNotInRoom()
            self.players.remove(player)
            self._departed[player.id] = player
            logger.info(f"[leave] room={self.code} player={player.id} remaining={len(self.players)}")

            if self.host_id == player.id:
                self.host_id = self.players[0].id if self.players else None
                if self.host_id:
                    logger.info(f"[host-promote] room={self.code} host={self.host_id}")

            if not self.players:
                self._schedule_expiry(self.settings.empty_room_grace_sec, 'empty')
            elif self.phase == Phase.QUESTION and self._everyone_answered():
                self._transition(Event.ALL_ANSWERED)
            self._touch()
            self._publish()

    # ---- host actions ----

    def require_host(self, player_id: str) -> None:
        with self._lock:
            if self.get_player(player_id) is None:
                raise PlayerNotInRoom()
            if player_id != self.host_id:
                raise NotHost()

    def update_config(self, player_id: str, changes: Mapping) -> QuizConfig:
        with self._lock:
            self.require_host(player_id)
            if self.phase != Phase.LOBBY:
                raise ConfigLocked()
            self.config = QuizConfig.from_dict(changes, base=self.config)
            logger.info(f"[config] room={self.code} config={self.config.to_dict()}")
            self._touch()
            self._publish()
            return self.config

    def start(self, player_id: str) -> None:
        with self._lock:
            self.require_host(player_id)
            if self.phase != Phase.LOBBY:
                raise RoomAlreadyStarted()
            if len(self.players) < self.settings.min_players:
                raise NotEnoughPlayers(f'At least {self.settings.min_players} players are required to start')
            self.questions.check_capacity(self.config.level, self.config.option_count)
            self.started = True
            self._transition(Event.START)
            self._touch()
            self._publish()

    def close(self) -> None:
        """Stop all timers; the room accepts no further transitions."""
        with self._lock:
            self.closed = True
            self._cancel_phase_timer()
            self._cancel_expiry()
            self._publish()

    # ---- answers ----

    def submit_answer(self, player_id: str, question_id: str, selected_option_index: int) -> Answer:
        with self._lock:
            if self.get_player(player_id) is None:
                raise PlayerNotInRoom()
            answer = self.aggregator.submit(
                self.phase, player_id, question_id, selected_option_index, self.timers.now()
            )
            logger.debug(f"[answer] room={self.code} player={player_id} option={selected_option_index}")
            if self._everyone_answered():
                self._transition(Event.ALL_ANSWERED)
            self._touch()
            self._publish()
            return answer

    def has_answered(self, player_id: str) -> bool:
        with self._lock:
            return self.aggregator.state.has_answered(player_id)

    def _everyone_answered(self) -> bool:
        return self.aggregator.everyone_answered([p.id for p in self.players])

    # ---- state machine ----

    def subscribe(self, callback: Callable[[str, Phase, int], None]) -> None:
        with self._lock:
            self._listeners.append(callback)

    def _transition(self, event: Event) -> None:
        """Apply ``event``; caller holds the lock."""
        target = next_phase(self.phase, event)
        question = self._next_question() if target == Phase.QUESTION else None
        previous = self.phase
        self._cancel_phase_timer()
        self.phase = target
        self._epoch += 1
        now = self.timers.now()

        if target == Phase.COUNTDOWN:
            self._arm(self.settings.countdown_sec, Event.COUNTDOWN_ELAPSED)
        elif target == Phase.QUESTION:
            self._cursor += 1
            question.started_at = now
            self._used_words.add(question.prompt)
            self.aggregator.reset(question)
            self._arm(self.config.question_duration, Event.QUESTION_TIMEOUT)
        elif target == Phase.ANSWER_REVEAL:
            result = self.aggregator.freeze(self.players, self.config.question_duration, now)
            self.history.append(result)
            self._arm(self.settings.reveal_sec, Event.REVEAL_ELAPSED)
        elif target == Phase.RANKING:
            self.rankings = build_rankings(self.players)
            self._arm(self.settings.ranking_sec,
                      ranking_exit_event(self._cursor, self.config.total_question_count))
        elif target == Phase.FINAL:
            self.rankings = build_rankings(self.players)
            self._deadline = None
            self._schedule_expiry(self.settings.final_grace_sec, 'finished')

        logger.info(
            f"[phase] room={self.code} {previous.name} -> {target.name} event={event.value} "
            f"index={self.current_question_index}"
        )
        for listener in list(self._listeners):
            try:
                listener(self.code, target, self.current_question_index)
            except Exception:
                logger.exception(f"[listener-error] room={self.code} phase={target.name}")

    def _next_question(self) -> Question:
        return self.questions.build(
            self._cursor + 1, self.config.level, self.config.option_count, self._used_words
        )

    def _arm(self, delay: float, event: Event) -> None:
        self._deadline = self.timers.now() + delay
        self._phase_timer = self.timers.call_later(delay, self._on_timer, self.phase, self._epoch, event)
        logger.info(f"[timer-set] room={self.code} phase={self.phase.name} duration={delay}s")

    def _cancel_phase_timer(self) -> None:
        if self._phase_timer is not None:
            self._phase_timer.cancel()
            self._phase_timer = None
        self._deadline = None

    def _on_timer(self, expected_phase: Phase, expected_epoch: int, event: Event) -> None:
        with self._lock:
            if self.closed or self.phase != expected_phase or self._epoch != expected_epoch:
                logger.info(
                    f"[timer-abort] room={self.code} expected={expected_phase.name} actual={self.phase.name}"
                )
                return
            logger.info(f"[timer-fire] room={self.code} phase={self.phase.name} event={event.value}")
            self._phase_timer = None
            try:
                self._transition(event)
            except RoomError:
                logger.exception(f"[timer-error] room={self.code} phase={self.phase.name}")
            self._publish()

    # ---- expiry ----

    def _schedule_expiry(self, delay: float, reason: str) -> None:
        self._cancel_expiry()
        self._expiry_reason = reason
        self._expiry_timer = self.timers.call_later(delay, self._on_expiry, reason, self._expiry_seq)
        logger.info(f"[expiry-set] room={self.code} reason={reason} delay={delay}s")

    def _cancel_expiry(self) -> None:
        # Bumping the sequence also voids a timer that already fired but has not run yet
        self._expiry_seq += 1
        self._expiry_reason = None
        if self._expiry_timer is not None:
            self._expiry_timer.cancel()
            self._expiry_timer = None

    def _on_expiry(self, reason: str, seq: int) -> None:
        # The owner re-checks under its own lock before removing the room
        if self._on_expire is not None:
            self._on_expire(self.code, reason, seq)
        else:
            self.expire_if_due(reason, seq)

    def expire_if_due(self, reason: str, seq: int) -> bool:
        """Close the room if the expiry armed as ``seq`` still applies.

        An 'empty' expiry that finds players again is dropped, except in
        FINAL where the finished-room removal is re-armed instead.
        """
        with self._lock:
            if self.closed or seq != self._expiry_seq:
                return False
            self._expiry_timer = None
            self._expiry_reason = None
            if reason == 'empty' and self.players:
                if self.phase == Phase.FINAL:
                    self._schedule_expiry(self.settings.final_grace_sec, 'finished')
                return False
            logger.info(f"[expire] room={self.code} reason={reason}")
            self.closed = True
            self._cancel_phase_timer()
            self._expiry_seq += 1
            self._publish()
            return True

    # ---- snapshots ----

    def _touch(self) -> None:
        self.last_used = self.timers.now()

    def _publish(self) -> None:
        phase = self.phase
        top3 = {entry.player_id for entry in build_rankings(self.players) if entry.is_top3}
        in_question = phase in (Phase.QUESTION, Phase.ANSWER_REVEAL)
        players = []
        for p in self.players:
            pd = p.to_dict()
            pd['isHost'] = p.id == self.host_id
            pd['isTop3'] = p.id in top3
            if in_question:
                pd['hasAnswered'] = self.aggregator.state.has_answered(p.id)
            players.append(pd)

        summary = {
            'roomCode': self.code,
            'hostId': self.host_id,
            'started': self.started,
            'gameStarted': self.started,
            'status': room_status(phase),
            'state': int(phase),
            'playerCount': len(self.players),
            'maxPlayers': self.settings.max_players,
            'players': players,
            'currentQuestionIndex': self.current_question_index,
            'hasPassword': bool(self.password_hash),
            'createdAt': self.created_at,
            'lastUsed': self.last_used,
        }
        summary.update(self.config.to_dict())

        game = {
            'roomCode': self.code,
            'state': int(phase),
            'stateName': phase.name,
            'status': room_status(phase),
            'currentQuestionIndex': self.current_question_index,
            'totalQuestionCount': self.config.total_question_count,
            'hostId': self.host_id,
            'players': players,
        }
        if in_question and self.current_question is not None:
            game['questions'] = [self.current_question.to_dict(reveal=phase == Phase.ANSWER_REVEAL)]
            game['answeredCount'] = len(self.aggregator.state)
        if phase == Phase.ANSWER_REVEAL and self.history:
            game['results'] = self.history[-1].to_dict()
        if phase in (Phase.RANKING, Phase.FINAL):
            game['scores'] = [entry.to_dict() for entry in self.rankings]
        if phase == Phase.LOBBY:
            host_first = sorted(players, key=lambda pd: not pd['isHost'])
            lobby = dict(summary, players=host_first)
            game['lobby'] = lobby

        counted = phase in (Phase.COUNTDOWN, Phase.QUESTION, Phase.ANSWER_REVEAL) or (
            phase == Phase.RANKING and self.settings.ranking_countdown_visible
        )
        self._published = {
            'summary': summary,
            'game': game,
            'deadline': self._deadline if counted else None,
        }

    def summary(self) -> dict:
        return dict(self._published['summary'])

    def snapshot(self, viewer_id: Optional[str] = None) -> dict:
        """Point-in-time game view; ``isYou`` marks the viewer's own entries."""
        published = self._published
        game = dict(published['game'])
        deadline = published['deadline']
        if deadline is None:
            game['remainingTime'] = None
        else:
            game['remainingTime'] = max(0, int(math.ceil(deadline - self.timers.now())))
        game['players'] = [dict(pd, isYou=pd['id'] == viewer_id) for pd in game['players']]
        if 'scores' in game:
            game['scores'] = [dict(s, isYou=s['playerId'] == viewer_id) for s in game['scores']]
        return game
