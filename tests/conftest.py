"""Pytest configuration and fixtures."""
import random

import pytest

from bull.config import Config
from bull.game import GameStateMachine
from bull.lobbies import LobbyRegistry
from bull.models import Question, Team
from bull.questions import QuestionBank


class TestConfig(Config):
    __test__ = False

    MAX_LOBBIES = 10
    RECONNECT_GRACE_SECONDS = 0.05
    LOBBY_EXPIRY_SECONDS = 60


TEST_QUESTIONS = [
    Question("How many hearts does an octopus have?", "3", "2", "number"),
    Question("What was Google first called?", "BackRub", "Googol", "one word"),
    Question("What colour is horseshoe crab blood?", "Blue", "Green", "colour"),
]


class FakeTransport:
    """Records what a socketio.AsyncServer would have delivered, and to whom."""

    def __init__(self):
        self.rooms = {}
        self.sent = []  # (event, data, recipients)

    async def emit(self, event, data=None, to=None, skip_sid=None):
        if to in self.rooms:
            recipients = set(self.rooms[to])
        else:
            recipients = {to}
        recipients.discard(skip_sid)
        self.sent.append((event, data, recipients))

    async def enter_room(self, sid, room):
        self.rooms.setdefault(room, set()).add(sid)

    async def leave_room(self, sid, room):
        self.rooms.get(room, set()).discard(sid)

    def received(self, sid, event=None):
        """Payloads of ``event`` (or all events) delivered to ``sid``."""
        return [data if event else (name, data)
                for name, data, recipients in self.sent
                if sid in recipients and (event is None or name == event)]

    def last(self, sid, event):
        messages = self.received(sid, event)
        assert messages, f"{sid} never received {event}"
        return messages[-1]

    def clear(self):
        self.sent = []


@pytest.fixture
def config():
    return TestConfig


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def bank():
    return QuestionBank(TEST_QUESTIONS)


@pytest.fixture
def registry(config, rng):
    return LobbyRegistry(config=config, rng=rng)


@pytest.fixture
def machine(bank, config, rng):
    return GameStateMachine(bank, config, rng=rng)


@pytest.fixture
def ready_lobby(registry):
    """Lobby hosted by Ana with two players per team, everyone ready."""
    lobby, _ = registry.create("Ana")
    for name, team in [("Beto", Team.BLUE), ("Carla", Team.RED),
                       ("Davi", Team.BLUE), ("Eva", Team.RED)]:
        _, player = registry.join(lobby.code, name)
        registry.select_team(lobby.code, player.id, team)
        registry.toggle_ready(lobby.code, player.id)
    return lobby
