import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///quizroom.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    BCRYPT_LOG_ROUNDS = int(os.environ.get('BCRYPT_LOG_ROUNDS', '12'))
    # Phase timers (seconds)
    COUNTDOWN_DURATION_SEC = int(os.environ.get('COUNTDOWN_DURATION_SEC', '3'))
    ANSWER_REVEAL_DURATION_SEC = int(os.environ.get('ANSWER_REVEAL_DURATION_SEC', '5'))
    RANKING_DURATION_SEC = int(os.environ.get('RANKING_DURATION_SEC', '5'))
    # RANKING reports remainingTime=null unless this is set
    RANKING_COUNTDOWN_VISIBLE = os.environ.get('RANKING_COUNTDOWN_VISIBLE', '0') == '1'
    # Final screen hold before the room is dropped from the directory
    FINAL_GRACE_SEC = int(os.environ.get('FINAL_GRACE_SEC', '60'))
    # Empty rooms survive this long so brief disconnects can rejoin
    EMPTY_ROOM_GRACE_SEC = int(os.environ.get('EMPTY_ROOM_GRACE_SEC', '10'))
    RESTORE_SCORE_ON_REJOIN = os.environ.get('RESTORE_SCORE_ON_REJOIN', '1') == '1'
    # Roster limits
    MIN_PLAYERS = int(os.environ.get('MIN_PLAYERS', '1'))
    MAX_PLAYERS = int(os.environ.get('MAX_PLAYERS', '12'))
    ALLOW_LATE_JOIN = os.environ.get('ALLOW_LATE_JOIN', '0') == '1'
    # Room codes
    ROOM_CODE_LENGTH = int(os.environ.get('ROOM_CODE_LENGTH', '6'))
    # Scoring
    BASE_SCORE = int(os.environ.get('BASE_SCORE', '100'))
    SPEED_BONUS_MAX = int(os.environ.get('SPEED_BONUS_MAX', '100'))
