"""Bull - Configuration

Every tunable of the server is read from the environment once, at import
time, with a sensible default. Components receive the class itself so a
test can hand in a subclass with different limits.
"""

import os
from pathlib import Path


def _int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


class Config:
    # Server
    HOST = os.environ.get('HOST', '0.0.0.0')
    PORT = _int('PORT', 8000)
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

    # Lobby limits
    MAX_LOBBIES = _int('MAX_LOBBIES', 100)
    MAX_PLAYERS_PER_LOBBY = _int('MAX_PLAYERS_PER_LOBBY', 8)
    MAX_PLAYERS_PER_TEAM = _int('MAX_PLAYERS_PER_TEAM', 4)
    MIN_PLAYERS_TO_START = _int('MIN_PLAYERS_TO_START', 2)

    # Lobby codes: no 0/O, 1/I/L so they can be read aloud
    LOBBY_CODE_LENGTH = _int('LOBBY_CODE_LENGTH', 6)
    LOBBY_CODE_ALPHABET = 'ABCDEFGHJKMNPQRSTUVWXYZ23456789'
    LOBBY_CODE_MAX_ATTEMPTS = _int('LOBBY_CODE_MAX_ATTEMPTS', 100)

    # Housekeeping (seconds)
    LOBBY_EXPIRY_SECONDS = _int('LOBBY_EXPIRY_SECONDS', 2 * 60 * 60)
    CLEANUP_INTERVAL_SECONDS = _int('CLEANUP_INTERVAL_SECONDS', 5 * 60)
    RECONNECT_GRACE_SECONDS = _int('RECONNECT_GRACE_SECONDS', 60)

    # Content limits
    MIN_ANSWER_LENGTH = _int('MIN_ANSWER_LENGTH', 1)
    MAX_ANSWER_LENGTH = _int('MAX_ANSWER_LENGTH', 120)
    MAX_NAME_LENGTH = _int('MAX_NAME_LENGTH', 50)

    QUESTIONS_PATH = os.environ.get(
        'QUESTIONS_PATH',
        str(Path(__file__).parent / 'data' / 'questions.json')
    )

    # Default game settings, overridable per lobby by the host
    DEFAULT_MAX_ROUNDS = _int('DEFAULT_MAX_ROUNDS', 5)
    DEFAULT_ANSWER_TIME_SECONDS = _int('DEFAULT_ANSWER_TIME_SECONDS', 30)
    DEFAULT_VOTE_TIME_SECONDS = _int('DEFAULT_VOTE_TIME_SECONDS', 20)
    DEFAULT_POINTS_CORRECT_ANSWER = _int('DEFAULT_POINTS_CORRECT_ANSWER', 100)
    DEFAULT_POINTS_CONFUSE_OPPONENT = _int('DEFAULT_POINTS_CONFUSE_OPPONENT', 150)

    @classmethod
    def cors_origins(cls):
        """CORS_ORIGINS as socketio expects it: '*' or a list."""
        if cls.CORS_ORIGINS.strip() == '*':
            return '*'
        return [o.strip() for o in cls.CORS_ORIGINS.split(',') if o.strip()]
