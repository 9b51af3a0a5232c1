"""Bull - Inbound payloads

pydantic models for the data that arrives with each client action.
Clients send camelCase keys; snake_case field names are accepted too.
"""

from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .config import Config
from .errors import ValidationError
from .models import Team
from .utils import is_valid_code, normalize_code, validate_name

T = TypeVar('T', bound=BaseModel)


class Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)  # Allow both field name and alias


def _check_name(v: str) -> str:
    ok, error = validate_name(v, Config.MAX_NAME_LENGTH)
    if not ok:
        raise ValueError(error)
    return v.strip()


def _check_code(v: str) -> str:
    code = normalize_code(v)
    if not is_valid_code(code, Config.LOBBY_CODE_LENGTH, Config.LOBBY_CODE_ALPHABET):
        raise ValueError(f"Lobby code must be {Config.LOBBY_CODE_LENGTH} letters or digits")
    return code


class CreateLobbyPayload(Payload):
    player_name: str = Field(..., alias="playerName")

    @field_validator('player_name')
    @classmethod
    def name_must_be_valid(cls, v: str) -> str:
        return _check_name(v)


class JoinLobbyPayload(Payload):
    code: str
    player_name: str = Field(..., alias="playerName")

    @field_validator('code')
    @classmethod
    def code_must_be_valid(cls, v: str) -> str:
        return _check_code(v)

    @field_validator('player_name')
    @classmethod
    def name_must_be_valid(cls, v: str) -> str:
        return _check_name(v)


class SelectTeamPayload(Payload):
    team: Team

    @field_validator('team', mode='before')
    @classmethod
    def team_is_case_insensitive(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class SubmitAnswerPayload(Payload):
    """Length rules are enforced by the game so it can report them precisely."""
    answer: str

    @field_validator('answer')
    @classmethod
    def strip_answer(cls, v: str) -> str:
        return v.strip()


class SubmitVotePayload(Payload):
    option_id: str = Field(..., min_length=1, alias="optionId")


class SettingsPayload(Payload):
    max_rounds: Optional[int] = Field(None, ge=1, le=20, alias="maxRounds")
    answer_time_seconds: Optional[int] = Field(None, ge=10, le=300, alias="answerTimeSeconds")
    vote_time_seconds: Optional[int] = Field(None, ge=5, le=120, alias="voteTimeSeconds")
    points_correct_answer: Optional[int] = Field(None, ge=1, le=1000, alias="pointsCorrectAnswer")
    points_confuse_opponent: Optional[int] = Field(None, ge=1, le=1000,
                                                   alias="pointsConfuseOpponent")
    auto_advance: Optional[bool] = Field(None, alias="autoAdvance")

    def overrides(self) -> dict:
        return self.model_dump(exclude_none=True)


class StartGamePayload(Payload):
    settings: Optional[SettingsPayload] = None


class ReconnectPayload(Payload):
    player_id: str = Field(..., min_length=1, alias="playerId")
    lobby_code: str = Field(..., alias="lobbyCode")

    @field_validator('lobby_code')
    @classmethod
    def code_must_be_valid(cls, v: str) -> str:
        return _check_code(v)


def parse(model: Type[T], data) -> T:
    """Validate ``data`` against ``model`` or raise our ValidationError."""
    try:
        return model.model_validate(data if data is not None else {})
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = '.'.join(str(part) for part in first.get('loc', ()))
        message = first.get('msg', 'Invalid data')
        if message.startswith('Value error, '):
            message = message[len('Value error, '):]
        raise ValidationError(message, field=field or None)
