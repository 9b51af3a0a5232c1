"""
Bull - Data Models
==================

The structures that make up a match. The server is the single source of
truth: every change is applied here first and then pushed to the clients
as a full snapshot (``to_dict``), never as a delta.

Ownership
---------
- ``Lobby`` owns its roster, its team lists and, once started, its
  ``GameState``.
- ``GameState`` owns the append-only round history and the per-game
  participation bookkeeping used by the rotation selector.
- ``Round`` is mutated while it is live and frozen once ``finished``.
"""

from dataclasses import dataclass, field, replace, asdict
from typing import Optional, List, Dict
from enum import Enum
import time
import uuid

from .participation import ParticipationTracker


class Team(Enum):
    BLUE = "blue"
    RED = "red"

    @property
    def opponent(self) -> 'Team':
        return Team.RED if self is Team.BLUE else Team.BLUE


class LobbyStatus(Enum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class GamePhase(Enum):
    """
    Phases of a started game.

    waiting -> writing -> voting -> results -> (writing | finished)

    ``waiting`` and ``finished`` are the only phases outside the
    writing/voting/results cycle.
    """
    WAITING = "waiting"
    WRITING = "writing"
    VOTING = "voting"
    RESULTS = "results"
    FINISHED = "finished"


class RoundStatus(Enum):
    ANSWERING = "answering"
    VOTING = "voting"
    FINISHED = "finished"


class OriginKind(Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    PLAYER = "player"
    FILLER = "filler"


@dataclass
class GameSettings:
    max_rounds: int = 5
    answer_time_seconds: int = 30
    vote_time_seconds: int = 20
    points_correct_answer: int = 100
    points_confuse_opponent: int = 150
    auto_advance: bool = False

    @classmethod
    def from_config(cls, config) -> 'GameSettings':
        return cls(
            max_rounds=config.DEFAULT_MAX_ROUNDS,
            answer_time_seconds=config.DEFAULT_ANSWER_TIME_SECONDS,
            vote_time_seconds=config.DEFAULT_VOTE_TIME_SECONDS,
            points_correct_answer=config.DEFAULT_POINTS_CORRECT_ANSWER,
            points_confuse_opponent=config.DEFAULT_POINTS_CONFUSE_OPPONENT,
        )

    def updated(self, **overrides) -> 'GameSettings':
        """Copy with the given fields replaced; ``None`` values are ignored."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Player:
    """
    A participant of a lobby.

    ``id`` is stable for the whole life of the player in the lobby. The
    transport connection id is not stored here: it changes on every
    reconnect and lives in the session registry instead.
    """
    id: str
    name: str
    team: Optional[Team] = None
    is_host: bool = False
    is_ready: bool = False
    score: int = 0
    is_connected: bool = True
    joined_at: float = field(default_factory=time.time)

    @staticmethod
    def create(name: str, now: Optional[float] = None) -> 'Player':
        """Factory method that assigns a fresh UUID."""
        return Player(
            id=str(uuid.uuid4()),
            name=name,
            joined_at=now if now is not None else time.time()
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "team": self.team.value if self.team else None,
            "is_host": self.is_host,
            "is_ready": self.is_ready,
            "score": self.score,
            "is_connected": self.is_connected,
        }


@dataclass
class Question:
    text: str
    correct_answer: str
    incorrect_answer: str
    suggested_format: Optional[str] = None

    def to_dict(self, hide_answers: bool = True) -> dict:
        """The answers are only revealed once the round is over."""
        data = {"text": self.text, "suggested_format": self.suggested_format}
        if not hide_answers:
            data["correct_answer"] = self.correct_answer
            data["incorrect_answer"] = self.incorrect_answer
        return data


@dataclass
class OptionOrigin:
    kind: OriginKind
    player_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "player_id": self.player_id}


@dataclass
class RoundOption:
    """One candidate answer shown to the voters."""
    id: str
    text: str
    origin: OptionOrigin
    position: int = 0

    def to_dict(self, reveal: bool = False) -> dict:
        data = {"id": self.id, "text": self.text, "position": self.position}
        if reveal:
            data["origin"] = self.origin.to_dict()
        return data


@dataclass
class TeamScores:
    blue: int = 0
    red: int = 0

    def get(self, team: Team) -> int:
        return self.blue if team is Team.BLUE else self.red

    def add(self, team: Team, points: int):
        if team is Team.BLUE:
            self.blue += points
        else:
            self.red += points

    def copy(self) -> 'TeamScores':
        return TeamScores(self.blue, self.red)

    def to_dict(self) -> dict:
        return {"blue": self.blue, "red": self.red}


@dataclass
class Round:
    number: int
    question: Question
    selected_players: Dict[Team, str]
    player_answers: Dict[str, str] = field(default_factory=dict)   # player_id -> text
    players_ready: Dict[str, bool] = field(default_factory=dict)
    options: List[RoundOption] = field(default_factory=list)
    votes: Dict[str, str] = field(default_factory=dict)            # player_id -> option_id
    points_awarded: Dict[str, int] = field(default_factory=dict)
    status: RoundStatus = RoundStatus.ANSWERING
    started_at: float = field(default_factory=time.time)
    voting_started_at: Optional[float] = None
    finished_at: Optional[float] = None

    def is_selected(self, player_id: str) -> bool:
        return player_id in self.selected_players.values()

    def get_option(self, option_id: str) -> Optional[RoundOption]:
        for option in self.options:
            if option.id == option_id:
                return option
        return None

    @property
    def correct_option(self) -> Optional[RoundOption]:
        for option in self.options:
            if option.origin.kind is OriginKind.CORRECT:
                return option
        return None

    def to_dict(self) -> dict:
        """Answers, authorship and votes stay hidden until the round closes."""
        reveal = self.status is RoundStatus.FINISHED
        data = {
            "number": self.number,
            "question": self.question.to_dict(hide_answers=not reveal),
            "selected_players": {t.value: pid for t, pid in self.selected_players.items()},
            "answered": list(self.player_answers.keys()),
            "ready": [pid for pid, ok in self.players_ready.items() if ok],
            "options": [o.to_dict(reveal=reveal) for o in
                        sorted(self.options, key=lambda o: o.position)],
            "votes_count": len(self.votes),
            "status": self.status.value,
        }
        if reveal:
            correct = self.correct_option
            data["correct_option_id"] = correct.id if correct else None
            data["player_answers"] = dict(self.player_answers)
            data["votes"] = dict(self.votes)
            data["points_awarded"] = dict(self.points_awarded)
        return data


@dataclass
class RoundResult:
    """Outcome of closing a round, as broadcast to the lobby."""
    round_number: int
    correct_option_id: str
    correct_answer: str
    votes: Dict[str, dict]                  # voter_id -> {"option_id", "correct"}
    points_awarded: Dict[str, int]
    team_scores: TeamScores
    confusion_results: Dict[str, List[str]]  # author_id -> fooled voter ids

    def to_dict(self) -> dict:
        return {
            "round_number": self.round_number,
            "correct_option_id": self.correct_option_id,
            "correct_answer": self.correct_answer,
            "votes": self.votes,
            "points_awarded": self.points_awarded,
            "team_scores": self.team_scores.to_dict(),
            "confusion_results": self.confusion_results,
        }


@dataclass
class GameState:
    total_rounds: int
    current_round: int = 1
    phase: GamePhase = GamePhase.WAITING
    rounds: List[Round] = field(default_factory=list)
    scores: TeamScores = field(default_factory=TeamScores)
    winner: Optional[Team] = None
    is_tie: bool = False
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    participation: ParticipationTracker = field(default_factory=ParticipationTracker, repr=False)

    def get_current_round(self) -> Optional[Round]:
        """The highest-numbered round, if any has started."""
        return self.rounds[-1] if self.rounds else None

    def to_dict(self) -> dict:
        current = self.get_current_round()
        return {
            "current_round": self.current_round,
            "total_rounds": self.total_rounds,
            "phase": self.phase.value,
            "scores": self.scores.to_dict(),
            "winner": self.winner.value if self.winner else None,
            "is_tie": self.is_tie,
            "round": current.to_dict() if current else None,
            "rounds_played": sum(1 for r in self.rounds if r.status is RoundStatus.FINISHED),
        }


@dataclass
class Lobby:
    """
    One match.

    The host who created the lobby is a controller, not a contestant: it
    is never part of ``players`` or of a team list. If the host leaves,
    the oldest remaining player is promoted and keeps its roster slot.
    """
    code: str
    host_id: str
    host_name: str
    settings: GameSettings = field(default_factory=GameSettings)
    players: List[Player] = field(default_factory=list)
    teams: Dict[Team, List[str]] = field(
        default_factory=lambda: {Team.BLUE: [], Team.RED: []}
    )
    status: LobbyStatus = LobbyStatus.WAITING
    host_connected: bool = True
    game_state: Optional[GameState] = None
    created_at: float = field(default_factory=time.time)
    last_activity_at: float = field(default_factory=time.time)

    def touch(self, now: Optional[float] = None):
        """Refresh the inactivity clock."""
        self.last_activity_at = now if now is not None else time.time()

    def get_player(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def is_host(self, player_id: str) -> bool:
        return player_id == self.host_id

    def is_member(self, player_id: str) -> bool:
        return self.is_host(player_id) or self.get_player(player_id) is not None

    def team_members(self, team: Team) -> List[Player]:
        return [p for pid in self.teams[team] for p in [self.get_player(pid)] if p]

    def connected_players(self) -> List[Player]:
        return [p for p in self.players if p.is_connected]

    def name_taken(self, name: str) -> bool:
        wanted = name.strip().lower()
        if self.host_name.strip().lower() == wanted and self.get_player(self.host_id) is None:
            return True
        return any(p.name.strip().lower() == wanted for p in self.players)

    def to_dict(self) -> dict:
        """Full lobby snapshot for synchronization."""
        return {
            "code": self.code,
            "host_id": self.host_id,
            "host_name": self.host_name,
            "host_connected": self.host_connected,
            "players": [p.to_dict() for p in self.players],
            "teams": {t.value: list(ids) for t, ids in self.teams.items()},
            "status": self.status.value,
            "settings": self.settings.to_dict(),
            "player_count": len(self.players),
            "game_state": self.game_state.to_dict() if self.game_state else None,
        }
