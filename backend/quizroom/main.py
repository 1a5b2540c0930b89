from flask import Blueprint, current_app, jsonify

from quizroom.models import Word

main = Blueprint('main', __name__)


@main.route('/')
def index():
    directory = current_app.extensions['room_directory']
    return jsonify({
        'message': 'Welcome to the quizroom server!',
        'rooms': len(directory),
        'words': Word.query.count(),
    })
