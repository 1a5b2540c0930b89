from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_cors import CORS
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]


def create_app(config_class=Config, timers=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Room directory lives for the process; one per app instance
    from quizroom.services.rooms.directory import RoomDirectory
    from quizroom.services.rooms.questions import SqlWordBank
    from quizroom.services.rooms.room import RoomSettings

    cfg = flask_app.config
    flask_app.extensions['room_directory'] = RoomDirectory(
        RoomSettings.from_config(cfg),
        SqlWordBank(flask_app),
        timers=timers,
        hasher=bcrypt,
        code_length=int(cfg.get('ROOM_CODE_LENGTH', 6)),
    )

    from quizroom.main import main
    flask_app.register_blueprint(main)

    from quizroom.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from quizroom.models import seed_words

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the word bank."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            added = seed_words()
            print(f'Database has been reset and seeded with {added} words!')

    @click.command('seed-words')
    def seed_words_command():
        """Adds any missing starter words without dropping tables."""
        with flask_app.app_context():
            db.create_all()
            added = seed_words()
            print(f'Seeded {added} new words.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(seed_words_command)

    return flask_app
