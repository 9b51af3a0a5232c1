"""Bull - Lobby Registry

Owns every active lobby: creation, membership, teams, the host role and
expiry of idle lobbies.

The store is a plain dict keyed by lobby code and is injected, so the
registry can be tested on its own. Only this class writes to it.
"""

import random
import time
import uuid
import logging
from dataclasses import dataclass, fields
from typing import Optional, Dict, Tuple, Callable, Union

from .config import Config
from .errors import (
    CannotStart, CapacityExceeded, CodeSpaceExhausted, DuplicateName,
    GameAlreadyStarted, InvalidTeam, LobbyFull, LobbyNotFound, NotHost,
    PlayerNotFound, TeamFull, ValidationError
)
from .models import GameSettings, Lobby, LobbyStatus, Player, Team
from .utils import generate_code, is_valid_code, normalize_code, validate_name

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = {f.name for f in fields(GameSettings)}


@dataclass
class StartCheck:
    can_start: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {"can_start": self.can_start, "reason": self.reason}


def parse_team(team: Union[Team, str, None]) -> Team:
    if isinstance(team, Team):
        return team
    try:
        return Team(str(team).lower())
    except ValueError:
        raise InvalidTeam(f"Invalid team: {team}")


class LobbyRegistry:
    """Manages all active lobbies."""

    def __init__(
        self,
        store: Optional[Dict[str, Lobby]] = None,
        config=Config,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None
    ):
        self.lobbies: Dict[str, Lobby] = store if store is not None else {}
        self.config = config
        self._clock = clock
        self._rng = rng or random.Random()
        self._on_remove: Optional[Callable[[str, str], None]] = None

    def set_removal_callback(self, callback: Callable[[str, str], None]):
        """Called with (code, reason) whenever a lobby is destroyed."""
        self._on_remove = callback

    # === Lookup ===

    def get(self, code: str) -> Optional[Lobby]:
        return self.lobbies.get(normalize_code(code))

    def require(self, code: str) -> Lobby:
        lobby = self.get(code)
        if lobby is None:
            raise LobbyNotFound(f"Lobby {normalize_code(code)} not found")
        return lobby

    # === Creation / membership ===

    def _new_code(self) -> str:
        for _ in range(self.config.LOBBY_CODE_MAX_ATTEMPTS):
            code = generate_code(self.config.LOBBY_CODE_LENGTH,
                                 self.config.LOBBY_CODE_ALPHABET, self._rng)
            if code not in self.lobbies:
                return code
        raise CodeSpaceExhausted()

    def create(self, host_name: str) -> Tuple[Lobby, str]:
        """Create a lobby and return it with the new host id."""
        ok, error = validate_name(host_name, self.config.MAX_NAME_LENGTH)
        if not ok:
            raise ValidationError(error, field="player_name")

        if len(self.lobbies) >= self.config.MAX_LOBBIES:
            raise CapacityExceeded()

        code = self._new_code()
        now = self._clock()
        host_id = str(uuid.uuid4())
        lobby = Lobby(
            code=code,
            host_id=host_id,
            host_name=host_name.strip(),
            settings=GameSettings.from_config(self.config),
            created_at=now,
            last_activity_at=now
        )
        self.lobbies[code] = lobby
        logger.info(f"Lobby created: {code} by {lobby.host_name}")
        return lobby, host_id

    def join(self, code: str, name: str) -> Tuple[Lobby, Player]:
        ok, error = validate_name(name, self.config.MAX_NAME_LENGTH)
        if not ok:
            raise ValidationError(error, field="player_name")

        code = normalize_code(code)
        if not is_valid_code(code, self.config.LOBBY_CODE_LENGTH, self.config.LOBBY_CODE_ALPHABET):
            raise LobbyNotFound(f"Lobby {code} not found")
        lobby = self.require(code)
        if lobby.status is not LobbyStatus.WAITING:
            raise GameAlreadyStarted()
        if len(lobby.players) >= self.config.MAX_PLAYERS_PER_LOBBY:
            raise LobbyFull()
        if lobby.name_taken(name):
            raise DuplicateName(f"Name '{name.strip()}' is already taken")

        now = self._clock()
        player = Player.create(name.strip(), now)
        lobby.players.append(player)
        lobby.touch(now)
        logger.info(f"Player {player.name} joined lobby {lobby.code}")
        return lobby, player

    def leave(self, code: str, player_id: str) -> Tuple[Optional[Lobby], bool]:
        """
        Remove a player (or the host) from a lobby.

        Returns the lobby, or None if it was destroyed, and whether the
        leaver was the host.
        """
        lobby = self.require(code)
        was_host = lobby.is_host(player_id)
        player = lobby.get_player(player_id)
        if player is None and not was_host:
            raise PlayerNotFound()

        if player is not None:
            if player.team is not None:
                lobby.teams[player.team].remove(player.id)
            lobby.players.remove(player)
            logger.info(f"Player {player.name} left lobby {lobby.code}")

        if not lobby.players:
            self._destroy(lobby.code, "empty")
            return None, was_host

        if was_host:
            self._promote_host(lobby)

        lobby.touch(self._clock())
        return lobby, was_host

    def _promote_host(self, lobby: Lobby):
        oldest = min(lobby.players, key=lambda p: p.joined_at)
        lobby.host_id = oldest.id
        lobby.host_name = oldest.name
        lobby.host_connected = oldest.is_connected
        oldest.is_host = True
        logger.info(f"Host of lobby {lobby.code} transferred to {oldest.name}")

    def _destroy(self, code: str, reason: str):
        self.lobbies.pop(code, None)
        logger.info(f"Lobby {code} removed ({reason})")
        if self._on_remove:
            self._on_remove(code, reason)

    # === Pre-game setup ===

    def _require_waiting(self, lobby: Lobby):
        if lobby.status is not LobbyStatus.WAITING:
            raise GameAlreadyStarted()

    def select_team(self, code: str, player_id: str, team: Union[Team, str]) -> Player:
        team = parse_team(team)
        lobby = self.require(code)
        self._require_waiting(lobby)
        player = lobby.get_player(player_id)
        if player is None:
            raise PlayerNotFound()

        if player.team is team:
            return player
        if len(lobby.teams[team]) >= self.config.MAX_PLAYERS_PER_TEAM:
            raise TeamFull(f"Team {team.value} is full")

        if player.team is not None:
            lobby.teams[player.team].remove(player.id)
        lobby.teams[team].append(player.id)
        player.team = team
        lobby.touch(self._clock())
        logger.info(f"Player {player.name} joined team {team.value} in {lobby.code}")
        return player

    def toggle_ready(self, code: str, player_id: str) -> Player:
        lobby = self.require(code)
        self._require_waiting(lobby)
        player = lobby.get_player(player_id)
        if player is None:
            raise PlayerNotFound()

        player.is_ready = not player.is_ready
        lobby.touch(self._clock())
        return player

    def update_settings(self, code: str, player_id: str, overrides: dict) -> GameSettings:
        lobby = self.require(code)
        if not lobby.is_host(player_id):
            raise NotHost()
        self._require_waiting(lobby)
        unknown = set(overrides) - SETTINGS_FIELDS
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}",
                                  field="settings")

        lobby.settings = lobby.settings.updated(**overrides)
        lobby.touch(self._clock())
        return lobby.settings

    def can_start(self, code: str) -> StartCheck:
        lobby = self.require(code)
        if lobby.status is not LobbyStatus.WAITING:
            return StartCheck(False, "Game already started")
        if len(lobby.players) < self.config.MIN_PLAYERS_TO_START:
            return StartCheck(
                False, f"At least {self.config.MIN_PLAYERS_TO_START} players are needed"
            )
        if not lobby.teams[Team.BLUE] or not lobby.teams[Team.RED]:
            return StartCheck(False, "Both teams need at least one player")
        if any(p.team is None for p in lobby.players):
            return StartCheck(False, "Every player must pick a team")
        if not all(p.is_ready for p in lobby.players):
            return StartCheck(False, "Not every player is ready")
        return StartCheck(True)

    def ensure_can_start(self, code: str):
        check = self.can_start(code)
        if not check.can_start:
            raise CannotStart(check.reason)

    # === Connection state ===

    def _set_connected(self, code: str, player_id: str, connected: bool):
        lobby = self.get(code)
        if lobby is None:
            return None
        if lobby.is_host(player_id):
            lobby.host_connected = connected
        player = lobby.get_player(player_id)
        if player is not None:
            player.is_connected = connected
        lobby.touch(self._clock())
        return lobby

    def mark_connected(self, code: str, player_id: str) -> Optional[Lobby]:
        return self._set_connected(code, player_id, True)

    def mark_disconnected(self, code: str, player_id: str) -> Optional[Lobby]:
        return self._set_connected(code, player_id, False)

    # === Housekeeping ===

    def cleanup_expired(self, now: Optional[float] = None) -> int:
        """Remove lobbies idle for longer than the expiry threshold."""
        now = now if now is not None else self._clock()
        limit = self.config.LOBBY_EXPIRY_SECONDS
        expired = [code for code, lobby in self.lobbies.items()
                   if now - lobby.last_activity_at > limit]
        for code in expired:
            self._destroy(code, "expired")
        if expired:
            logger.info(f"Expired {len(expired)} idle lobbies")
        return len(expired)

    def stats(self) -> dict:
        return {
            "active_lobbies": len(self.lobbies),
            "total_players": sum(len(l.players) for l in self.lobbies.values()),
            "games_in_progress": sum(1 for l in self.lobbies.values()
                                     if l.status is LobbyStatus.PLAYING),
        }
