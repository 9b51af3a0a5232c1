"""Bull - Errors

Every rule violation is raised as a typed error carrying a stable code
and a human readable message. The session bridge is the only place that
catches them and turns them into an ``error`` event for the caller.
"""

from typing import Optional


class BullError(Exception):
    """Base exception for game server errors."""

    code = 'UNKNOWN_ERROR'
    status_code = 400
    default_message = 'Unexpected server error'

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"message": self.message, "code": self.code}


# =============================================================================
# LOBBY MEMBERSHIP
# =============================================================================

class LobbyError(BullError):
    """Base exception for lobby membership errors."""
    pass


class LobbyNotFound(LobbyError):
    """Raised when no active lobby has the given code."""
    code = 'LOBBY_NOT_FOUND'
    status_code = 404
    default_message = 'Lobby not found'


class LobbyFull(LobbyError):
    """Raised when joining a lobby that reached its player limit."""
    code = 'LOBBY_FULL'
    default_message = 'Lobby is full'


class TeamFull(LobbyError):
    """Raised when choosing a team that reached its capacity."""
    code = 'TEAM_FULL'
    default_message = 'Team is full'


class DuplicateName(LobbyError):
    """Raised when the display name is already taken in the lobby."""
    code = 'DUPLICATE_NAME'
    status_code = 409
    default_message = 'Name already taken in this lobby'


class PlayerNotFound(LobbyError):
    code = 'PLAYER_NOT_FOUND'
    status_code = 404
    default_message = 'Player not found'


class NotHost(LobbyError):
    """Raised when a non-host tries a host-only action."""
    code = 'NOT_HOST'
    status_code = 403
    default_message = 'Only the host can do that'


class InvalidTeam(LobbyError):
    code = 'INVALID_TEAM'
    default_message = 'Invalid team'


class CapacityExceeded(LobbyError):
    """Raised when the server already holds the maximum number of lobbies."""
    code = 'SERVER_FULL'
    status_code = 503
    default_message = 'Server is full, try again later'


class CodeSpaceExhausted(LobbyError):
    """Raised when no free lobby code was found after the retry budget."""
    code = 'CODE_SPACE_EXHAUSTED'
    status_code = 503
    default_message = 'Could not allocate a lobby code'


class CannotStart(LobbyError):
    """Raised when the lobby does not meet the start conditions."""
    code = 'CANNOT_START'
    default_message = 'Game cannot start yet'


# =============================================================================
# GAME FLOW
# =============================================================================

class GameError(BullError):
    """Base exception for in-game errors."""
    pass


class GameAlreadyStarted(GameError):
    code = 'GAME_ALREADY_STARTED'
    status_code = 409
    default_message = 'Game already started'


class InvalidPhase(GameError):
    """Raised when an action arrives in the wrong phase."""
    code = 'INVALID_PHASE'
    status_code = 409
    default_message = 'Action not allowed in the current phase'


class InvalidRound(GameError):
    code = 'INVALID_ROUND'
    default_message = 'Invalid round number'


class AlreadySubmitted(GameError):
    """Raised on a second answer or vote from the same player."""
    code = 'ALREADY_SUBMITTED'
    status_code = 409
    default_message = 'Already submitted'


class NotSelectedPlayer(GameError):
    """Raised when a player who was not picked this round tries to answer."""
    code = 'NOT_SELECTED'
    status_code = 403
    default_message = 'You were not selected to answer this round'


class InvalidAnswer(GameError):
    code = 'VALIDATION_ERROR'
    default_message = 'Invalid answer'


class InvalidOption(GameError):
    code = 'INVALID_OPTION'
    default_message = 'Invalid option'


class NoEligiblePlayers(GameError):
    """Raised when a team has nobody left to pick from."""
    code = 'NO_ELIGIBLE_PLAYERS'
    default_message = 'No eligible players on a team'


# =============================================================================
# SESSION / PAYLOAD
# =============================================================================

class SessionNotFound(BullError):
    """Raised when the connection is not bound to any player."""
    code = 'SESSION_NOT_FOUND'
    status_code = 401
    default_message = 'Session not found'


class ValidationError(BullError):
    """Raised when an inbound payload fails validation."""
    code = 'VALIDATION_ERROR'
    default_message = 'Invalid data'

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None,
                 code: Optional[str] = None):
        super().__init__(message, code)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data
