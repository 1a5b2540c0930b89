import random
import threading
import time
from dataclasses import replace

import pytest

from conftest import WORDS, PlainHasher
from quizroom.services.rooms.directory import RoomDirectory
from quizroom.services.rooms.errors import (
    AnswerWindowClosed, ConfigLocked, InvalidConfig, NotEnoughPlayers, NotHost, PhaseMismatch,
    PlayerNotInRoom, RoomError, RoomNotFound, StaleQuestion,
)
from quizroom.services.rooms.phases import Event, Phase, is_valid_path
from quizroom.services.rooms.questions import StaticWordBank
from quizroom.services.rooms.room import Player, QuizConfig, RoomSettings


@pytest.fixture()
def observed(directory):
    messages = []
    directory.subscribe(lambda code, phase, index: messages.append((code, phase, index)))
    return messages


def _two_player_room(directory, **config):
    config = QuizConfig(**dict({'total_question_count': 2}, **config))
    room = directory.create_room(Player.create('P1', player_id='p1'), config)
    directory.join_room(room.code, Player.create('P2', player_id='p2'))
    return room


def test_end_to_end_two_questions(directory, timers, observed):
    room = _two_player_room(directory)
    assert room.snapshot('p1')['remainingTime'] is None

    directory.start_room(room.code, 'p1')
    assert room.phase == Phase.COUNTDOWN
    assert room.snapshot()['remainingTime'] == 3

    timers.advance(3)
    assert room.phase == Phase.QUESTION
    assert room.current_question_index == 0
    first = room.current_question

    # P1 answers correctly two seconds in, P2 stays silent
    timers.advance(2)
    directory.submit_answer(room.code, 'p1', first.id, first.correct_index)
    state = room.snapshot('p1')
    assert state['remainingTime'] == 58
    assert 'correctIndex' not in state['questions'][0]
    assert [p['hasAnswered'] for p in state['players']] == [True, False]

    timers.advance(58)
    assert room.phase == Phase.ANSWER_REVEAL
    p1, p2 = room.get_player('p1'), room.get_player('p2')
    assert p1.score == 196
    assert p2.score == 0 and p2.skipped_count == 1
    reveal = room.snapshot('p2')
    assert reveal['questions'][0]['correctIndex'] == first.correct_index
    assert reveal['results']['questionId'] == first.id

    timers.advance(5)
    assert room.phase == Phase.RANKING
    scores = room.snapshot('p1')['scores']
    assert scores[0]['playerId'] == 'p1' and scores[0]['isYou']
    assert room.snapshot()['remainingTime'] is None

    timers.advance(5)
    assert room.phase == Phase.QUESTION
    assert room.current_question_index == 1
    assert room.current_question.prompt != first.prompt

    timers.advance(60)
    assert room.phase == Phase.ANSWER_REVEAL
    timers.advance(5)
    assert room.phase == Phase.RANKING
    timers.advance(5)
    assert room.phase == Phase.FINAL

    final = room.snapshot('p2')
    assert final['status'] == 'finished'
    assert final['remainingTime'] is None
    assert [(s['playerId'], s['score']) for s in final['scores']] == [('p1', 196), ('p2', 0)]
    assert p2.skipped_count == 2

    phases = [Phase.LOBBY] + [phase for _, phase, _ in observed]
    assert is_valid_path(phases)
    indexes = [index for _, _, index in observed]
    assert indexes == sorted(indexes)
    assert max(indexes) == 1


def test_finished_room_is_dropped_after_grace(directory, timers):
    room = _two_player_room(directory, total_question_count=1)
    directory.start_room(room.code, 'p1')
    timers.advance(3 + 60 + 5 + 5)
    assert room.phase == Phase.FINAL

    timers.advance(59)
    assert directory.get_room(room.code) is room
    timers.advance(1)
    with pytest.raises(RoomNotFound):
        directory.get_room(room.code)


def test_everyone_answered_ends_question_early(directory, timers):
    room = _two_player_room(directory)
    directory.start_room(room.code, 'p1')
    timers.advance(3)
    question = room.current_question
    epoch = room._epoch

    directory.submit_answer(room.code, 'p1', question.id, 0)
    directory.submit_answer(room.code, 'p2', question.id, 1)
    assert room.phase == Phase.ANSWER_REVEAL
    assert room.snapshot()['remainingTime'] == 5

    # The superseded question timer is a no-op
    room._on_timer(Phase.QUESTION, epoch, Event.QUESTION_TIMEOUT)
    assert room.phase == Phase.ANSWER_REVEAL
    assert len(room.history) == 1


def test_last_unanswered_player_leaving_ends_question(directory, timers):
    room = _two_player_room(directory)
    directory.start_room(room.code, 'p1')
    timers.advance(3)
    directory.submit_answer(room.code, 'p1', room.current_question.id, 0)
    assert room.phase == Phase.QUESTION

    directory.leave_room(room.code, 'p2')
    assert room.phase == Phase.ANSWER_REVEAL


def test_answers_outside_the_window(directory, timers):
    room = _two_player_room(directory)
    directory.start_room(room.code, 'p1')
    with pytest.raises(PhaseMismatch):
        directory.submit_answer(room.code, 'p1', 'anything', 0)

    timers.advance(3)
    first = room.current_question
    directory.submit_answer(room.code, 'p1', first.id, 2)
    with pytest.raises(PlayerNotInRoom):
        directory.submit_answer(room.code, 'ghost', first.id, 0)

    timers.advance(60)
    with pytest.raises(AnswerWindowClosed):
        directory.submit_answer(room.code, 'p1', first.id, 0)
    assert room.aggregator.state.get('p1').selected_option_index == 2
    assert not room.aggregator.state.has_answered('p2')

    timers.advance(10)
    assert room.phase == Phase.QUESTION
    with pytest.raises(StaleQuestion):
        directory.submit_answer(room.code, 'p1', first.id, 0)


def test_host_only_actions(directory):
    room = _two_player_room(directory)
    with pytest.raises(NotHost):
        directory.start_room(room.code, 'p2')
    with pytest.raises(NotHost):
        directory.update_config(room.code, 'p2', {'optionCount': 3})

    config = directory.update_config(room.code, 'p1', {'optionCount': 3, 'level': 'B1'})
    assert config.option_count == 3 and config.level == 'B1'
    assert config.total_question_count == 2
    with pytest.raises(InvalidConfig):
        directory.update_config(room.code, 'p1', {'questionDuration': 1})

    directory.start_room(room.code, 'p1')
    with pytest.raises(ConfigLocked):
        directory.update_config(room.code, 'p1', {'optionCount': 2})


def test_start_requires_enough_players_and_words(timers):
    bank = StaticWordBank([('apple', 'elma', 'A1'), ('house', 'ev', 'A1'), ('water', 'su', 'A1')])
    directory = RoomDirectory(RoomSettings(min_players=2), bank, timers=timers, hasher=PlainHasher(),
                              rng=random.Random(3))
    room = directory.create_room(Player.create('Host', player_id='host'))
    with pytest.raises(NotEnoughPlayers):
        directory.start_room(room.code, 'host')

    directory.join_room(room.code, Player.create('B', player_id='b'))
    with pytest.raises(InvalidConfig):
        directory.start_room(room.code, 'host')
    assert room.phase == Phase.LOBBY

    directory.update_config(room.code, 'host', {'optionCount': 3})
    directory.start_room(room.code, 'host')
    assert room.phase == Phase.COUNTDOWN


def test_rooms_do_not_share_state(directory, timers):
    a = _two_player_room(directory)
    b = _two_player_room(directory)
    directory.start_room(a.code, 'p1')
    timers.advance(3)
    assert a.phase == Phase.QUESTION
    assert b.phase == Phase.LOBBY

    directory.submit_answer(a.code, 'p1', a.current_question.id, 0)
    with pytest.raises(PhaseMismatch):
        directory.submit_answer(b.code, 'p1', a.current_question.id, 0)
    assert a.aggregator.state.has_answered('p1')


def test_rejoined_finished_room_still_expires(directory, timers):
    room = directory.create_room(Player.create('P1', player_id='p1'), QuizConfig(total_question_count=1))
    directory.start_room(room.code, 'p1')
    timers.advance(3 + 60 + 5 + 5)
    assert room.phase == Phase.FINAL

    directory.leave_room(room.code, 'p1')
    timers.advance(2)
    directory.join_room(room.code, Player.create('P1', player_id='p1'))

    # Finished-room removal counts again from the rejoin
    timers.advance(59)
    assert directory.get_room(room.code) is room
    timers.advance(1)
    with pytest.raises(RoomNotFound):
        directory.get_room(room.code)


def test_ranking_countdown_visible_when_enabled(settings, timers):
    directory = RoomDirectory(replace(settings, ranking_countdown_visible=True), StaticWordBank(WORDS),
                              timers=timers, hasher=PlainHasher())
    room = directory.create_room(Player.create('P1', player_id='p1'), QuizConfig(total_question_count=2))
    directory.start_room(room.code, 'p1')
    timers.advance(3)
    directory.submit_answer(room.code, 'p1', room.current_question.id, 0)
    assert room.phase == Phase.ANSWER_REVEAL

    timers.advance(5)
    assert room.phase == Phase.RANKING
    assert room.snapshot()['remainingTime'] == 5
    timers.advance(2)
    assert room.snapshot()['remainingTime'] == 3


def test_concurrent_answers_and_leave_on_real_timers():
    settings = RoomSettings(countdown_sec=0.05, reveal_sec=30, ranking_sec=30, max_players=12)
    directory = RoomDirectory(settings, StaticWordBank(WORDS), hasher=PlainHasher())
    reveals = []

    def on_phase(code, phase, index):
        if phase == Phase.ANSWER_REVEAL:
            reveals.append(index)

    directory.subscribe(on_phase)
    ids = [f'p{i}' for i in range(8)]
    room = directory.create_room(Player.create('P0', player_id=ids[0]), QuizConfig(question_duration=60))
    for pid in ids[1:]:
        directory.join_room(room.code, Player.create(pid.upper(), player_id=pid))
    directory.join_room(room.code, Player.create('Quitter', player_id='quitter'))

    try:
        directory.start_room(room.code, ids[0])
        deadline = time.time() + 5
        while room.phase != Phase.QUESTION and time.time() < deadline:
            time.sleep(0.01)
        assert room.phase == Phase.QUESTION
        question = room.current_question

        barrier = threading.Barrier(len(ids) + 1)
        errors = []

        def answer(pid):
            barrier.wait()
            try:
                directory.submit_answer(room.code, pid, question.id, 0)
            except RoomError as exc:
                errors.append(exc)

        def quit_room():
            barrier.wait()
            directory.leave_room(room.code, 'quitter')

        threads = [threading.Thread(target=answer, args=(pid,)) for pid in ids]
        threads.append(threading.Thread(target=quit_room))
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert errors == []
        assert room.phase == Phase.ANSWER_REVEAL
        assert len(room.history) == 1
        assert reveals == [0]
        assert len(room.aggregator.state) == len(ids)
        assert [p.id for p in room.players] == ids
    finally:
        directory.shutdown()
