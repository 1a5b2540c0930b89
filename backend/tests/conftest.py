import os
import sys
import random
from concurrent.futures import Future

import pytest

# Ensure the backend root (containing the `quizroom` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from quizroom import create_app, db
from quizroom.services.rooms.directory import RoomDirectory
from quizroom.services.rooms.questions import StaticWordBank
from quizroom.services.rooms.room import RoomSettings
from quizroom.services.rooms.timers import ManualTimers


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = 'DEBUG'
    BCRYPT_LOG_ROUNDS = 4
    COUNTDOWN_DURATION_SEC = 3
    ANSWER_REVEAL_DURATION_SEC = 5
    RANKING_DURATION_SEC = 5
    RANKING_COUNTDOWN_VISIBLE = False
    FINAL_GRACE_SEC = 60
    EMPTY_ROOM_GRACE_SEC = 10
    RESTORE_SCORE_ON_REJOIN = True
    MIN_PLAYERS = 1
    MAX_PLAYERS = 4
    ALLOW_LATE_JOIN = False
    ROOM_CODE_LENGTH = 6
    BASE_SCORE = 100
    SPEED_BONUS_MAX = 100


WORDS = [
    ('apple', 'elma', 'A1'),
    ('house', 'ev', 'A1'),
    ('water', 'su', 'A1'),
    ('book', 'kitap', 'A1'),
    ('achieve', 'başarmak', 'B1'),
    ('improve', 'geliştirmek', 'B1'),
    ('opinion', 'fikir', 'B1'),
    ('suggest', 'önermek', 'B1'),
]


class PlainHasher:
    """Reversible stand-in for bcrypt so directory tests stay fast."""

    def generate_password_hash(self, password):
        return f'plain${password}'.encode('utf-8')

    def check_password_hash(self, pw_hash, password):
        return pw_hash == f'plain${password}'


class DeferredExecutor:
    """Executor whose futures stay pending until a test resolves them."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_next(self):
        future, fn, args, kwargs = self.pending.pop(0)
        try:
            result = fn(*args, **kwargs)
        except Exception as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)
        return future

    def run_all(self):
        while self.pending:
            self.run_next()


@pytest.fixture()
def timers():
    return ManualTimers(start=1000.0)


@pytest.fixture()
def settings():
    return RoomSettings(
        countdown_sec=3,
        reveal_sec=5,
        ranking_sec=5,
        final_grace_sec=60,
        empty_room_grace_sec=10,
        max_players=4,
    )


@pytest.fixture()
def directory(settings, timers):
    return RoomDirectory(
        settings, StaticWordBank(WORDS), timers=timers, hasher=PlainHasher(), rng=random.Random(7)
    )


@pytest.fixture()
def executor():
    return DeferredExecutor()


@pytest.fixture()
def flask_app(timers):
    application = create_app(TestConfig, timers=timers)
    with application.app_context():
        from quizroom.models import seed_words
        db.create_all()
        seed_words()
        yield application
        application.extensions['room_directory'].shutdown()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()
