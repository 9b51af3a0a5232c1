"""Bull - real-time team bluffing trivia game server."""

__version__ = "1.0.0"
