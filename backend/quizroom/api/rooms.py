from flask import Blueprint, current_app, jsonify, request

from quizroom.services.rooms.directory import filter_available, filter_by_room_status, filter_by_status
from quizroom.services.rooms.errors import PlayerNotInRoom, RoomError
from quizroom.services.rooms.room import Player, QuizConfig

rooms = Blueprint('rooms', __name__)


def _directory():
    return current_app.extensions['room_directory']


def _config_payload(data):
    """Config may arrive nested under 'config' or flat beside the other fields."""
    return data.get('config') if isinstance(data.get('config'), dict) else data


def _as_bool(value):
    return str(value).lower() in ('1', 'true', 'yes')


@rooms.errorhandler(RoomError)
def handle_room_error(exc):
    current_app.logger.info(f"[rejected] path={request.path} code={exc.code} reason={exc}")
    return jsonify(exc.to_dict()), exc.status


@rooms.route('', methods=['GET'])
def list_rooms():
    summaries = _directory().list_rooms()
    status = request.args.get('status')
    if status:
        summaries = filter_by_room_status(summaries, status)
    if _as_bool(request.args.get('available')):
        summaries = filter_available(summaries)
    elif request.args.get('started') is not None:
        summaries = filter_by_status(summaries, _as_bool(request.args.get('started')))
    return jsonify(summaries)


@rooms.route('/create', methods=['POST'])
def create_room():
    data = request.get_json(silent=True) or {}
    name = data.get('hostName') or data.get('name')
    if not name:
        return jsonify({'error': 'Host name is required'}), 400

    config = QuizConfig.from_dict(_config_payload(data))
    host = Player.create(name, player_id=data.get('playerId'), avatar_id=data.get('avatarId'))
    room = _directory().create_room(host, config, password=data.get('password'))
    return jsonify({
        'message': 'New room created!',
        'roomCode': room.code,
        'playerId': host.id,
        'player': host.to_dict(),
        'room': room.summary(),
    }), 201


@rooms.route('/join', methods=['POST'])
def join_room():
    data = request.get_json(silent=True) or {}
    room_code = data.get('roomCode')
    name = data.get('name')
    player_id = data.get('playerId')
    if not room_code:
        return jsonify({'error': 'Room code and player name are required'}), 400
    # Only a player the room already knows may rejoin without a name
    if not name and not (player_id and _directory().get_room(room_code).knows(player_id)):
        return jsonify({'error': 'Room code and player name are required'}), 400

    candidate = Player.create(name or '', player_id=player_id, avatar_id=data.get('avatarId'))
    room = _directory().join_room(room_code, candidate, password=data.get('password'))
    player = room.get_player(candidate.id)
    return jsonify({
        'player': player.to_dict() if player else candidate.to_dict(),
        'playerId': candidate.id,
        'room': room.summary(),
    }), 201


@rooms.route('/<string:room_code>', methods=['GET'])
def get_room(room_code):
    return jsonify(_directory().get_room(room_code).summary())


@rooms.route('/<string:room_code>/state', methods=['GET'])
def get_game_state(room_code):
    room = _directory().get_room(room_code)
    player_id = request.args.get('playerId')
    if player_id and not room.knows(player_id):
        raise PlayerNotInRoom()
    return jsonify(room.snapshot(player_id))


@rooms.route('/<string:room_code>/start', methods=['POST'])
def start_room(room_code):
    data = request.get_json(silent=True) or {}
    player_id = data.get('playerId')
    if not player_id:
        return jsonify({'error': 'playerId is required'}), 400
    room = _directory().start_room(room_code, player_id)
    return jsonify(room.snapshot(player_id))


@rooms.route('/<string:room_code>/config', methods=['POST'])
def update_config(room_code):
    data = request.get_json(silent=True) or {}
    player_id = data.get('playerId')
    if not player_id:
        return jsonify({'error': 'playerId is required'}), 400
    config = _directory().update_config(room_code, player_id, _config_payload(data))
    return jsonify(config.to_dict())


@rooms.route('/<string:room_code>/leave', methods=['POST'])
def leave_room(room_code):
    data = request.get_json(silent=True) or {}
    player_id = data.get('playerId') or request.args.get('playerId')
    if not player_id:
        return jsonify({'error': 'playerId is required'}), 400
    _directory().leave_room(room_code, player_id)
    return jsonify({'message': 'You have left the room.'})


@rooms.route('/<string:room_code>/disband', methods=['POST'])
def disband_room(room_code):
    data = request.get_json(silent=True) or {}
    player_id = data.get('playerId')
    if not player_id:
        return jsonify({'error': 'playerId is required'}), 400
    _directory().disband_room(room_code, player_id)
    return jsonify({'message': 'Room disbanded.'})


@rooms.route('/answer', methods=['POST'])
def submit_answer():
    data = request.get_json(silent=True) or {}
    required = ('playerId', 'roomCode', 'questionId', 'selectedOptionIndex')
    if any(data.get(key) is None for key in required):
        return jsonify({'error': 'playerId, roomCode, questionId and selectedOptionIndex are required'}), 400

    answer = _directory().submit_answer(
        data['roomCode'], data['playerId'], data['questionId'], data['selectedOptionIndex']
    )
    return jsonify({
        'ok': True,
        'answered': True,
        'questionId': answer.question_id,
        'selectedOptionIndex': answer.selected_option_index,
    })
