import math
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, Optional, Tuple, Union

import pydantic
from pydantic import AfterValidator, BaseModel, Field, model_validator

from ..constants import (
    DEFAULT_TIMER_SECONDS,
    HINTS_PER_GAME,
    HINTS_PER_ROUND,
    MAX_LATITUDE,
    MAX_LONGITUDE,
    MIN_LATITUDE,
    MIN_LONGITUDE,
    MIN_YEAR,
)
from ..errors import GameError, ValidationError


def current_year() -> int:
    return datetime.now().year


def _check_year(value: int) -> int:
    if value < MIN_YEAR or value > current_year():
        raise ValueError(f"year must be between {MIN_YEAR} and {current_year()}")
    return value


Year = Annotated[int, AfterValidator(_check_year)]


class SessionStatus(str, Enum):
    """Lifecycle states of a game session."""
    IDLE = "idle"
    LOADING = "loading"
    ACTIVE = "active"
    ERROR = "error"
    COMPLETED = "completed"


class HintType(str, Enum):
    """Hint categories a player can buy each round."""
    WHERE = "where"
    WHEN = "when"


class Coordinates(BaseModel):
    """A point on Earth in degrees."""
    lat: float = Field(ge=MIN_LATITUDE, le=MAX_LATITUDE, allow_inf_nan=False)
    lng: float = Field(ge=MIN_LONGITUDE, le=MAX_LONGITUDE, allow_inf_nan=False)

    class Config:
        frozen = True


# Scoring input used when the player never touched the map
SENTINEL_COORDINATES = Coordinates(lat=0.0, lng=0.0)


class RoundSubject(BaseModel):
    """One historical image to be placed in space and time."""
    id: str = Field(min_length=1)
    true_coordinates: Coordinates
    true_year: Year
    location_label: str = Field(min_length=1)
    media_ref: str = Field(min_length=1)

    class Config:
        frozen = True


class RoundResult(BaseModel):
    """Outcome of one finalised round. Never modified after creation."""
    round_index: int = Field(ge=0)
    subject_id: str = Field(min_length=1)
    guess_coordinates: Optional[Coordinates] = None
    guess_year: Year
    distance_km: float = Field(ge=0)
    location_score: float = Field(ge=0, le=100)
    time_score: float = Field(ge=0, le=100)
    hints_used_this_round: int = Field(ge=0, le=HINTS_PER_ROUND)
    time_taken_seconds: float = Field(ge=0)
    accuracy_percent: float = Field(ge=0, le=100)
    xp_earned: int = Field(ge=0)
    timed_out: bool = False

    class Config:
        frozen = True


class HintContent(BaseModel):
    """Generated hint text for a subject."""
    where: Optional[str] = None
    when: Optional[str] = None

    class Config:
        frozen = True

    def get(self, hint_type: HintType) -> Optional[str]:
        return getattr(self, HintType(hint_type).value)


class HintState(BaseModel):
    """Per-round hint selection plus the game-wide hint counter."""
    selected_hint_types: Tuple[HintType, ...] = ()
    hint_content_cache: Dict[str, HintContent] = Field(default_factory=dict)
    hints_used_this_round: int = Field(default=0, ge=0, le=HINTS_PER_ROUND)
    hints_used_total: int = Field(default=0, ge=0, le=HINTS_PER_GAME)

    class Config:
        frozen = True


class GameErrorInfo(BaseModel):
    """Recoverable failure descriptor surfaced as ``last_error``."""
    code: str
    message: str

    class Config:
        frozen = True

    @classmethod
    def from_exception(cls, exc: Exception, default_message: str = "An unexpected error occurred") -> "GameErrorInfo":
        if isinstance(exc, GameError):
            return cls(code=exc.code, message=exc.message)
        return cls(code="UNKNOWN_ERROR", message=str(exc) or default_message)


class SessionConfig(BaseModel):
    """Explicit configuration for a new session. Unset fields come from settings."""
    rounds: Optional[int] = Field(default=None, ge=1)
    timer_seconds: Optional[int] = Field(default=None, gt=0)
    hints_per_game: Optional[int] = Field(default=None, ge=0)


class GameSession(BaseModel):
    """Root aggregate of one game, replaced wholesale by the reducer."""
    session_id: Optional[str] = None
    status: SessionStatus = SessionStatus.IDLE
    round_subjects: Tuple[RoundSubject, ...] = ()
    round_results: Tuple[RoundResult, ...] = ()
    hints_allowed_per_game: int = HINTS_PER_GAME
    round_timer_seconds: int = DEFAULT_TIMER_SECONDS
    total_accuracy: float = 0.0
    total_xp: int = 0
    last_error: Optional[GameErrorInfo] = None
    hints: HintState = Field(default_factory=HintState)

    class Config:
        frozen = True

    @property
    def current_round_index(self) -> Optional[int]:
        if self.status != SessionStatus.ACTIVE:
            return None
        return len(self.round_results)

    @property
    def current_subject(self) -> Optional[RoundSubject]:
        index = self.current_round_index
        if index is None:
            return None
        return self.round_subjects[index]

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED


class GameSnapshot(BaseModel):
    """Minimal resumable session state written to the local store."""
    session_id: str = Field(min_length=1)
    round_subjects: Tuple[RoundSubject, ...] = Field(min_length=1)
    round_results: Tuple[RoundResult, ...] = ()
    hints_allowed_per_game: int = Field(ge=0)
    round_timer_seconds: int = Field(gt=0)
    total_accuracy: float = Field(ge=0, le=100)
    total_xp: int = Field(ge=0)
    hints_used_total: int = Field(default=0, ge=0, le=HINTS_PER_GAME)
    saved_at_epoch_ms: int = Field(ge=0)

    class Config:
        frozen = True

    @model_validator(mode="after")
    def check_rounds(self) -> "GameSnapshot":
        if len(self.round_results) > len(self.round_subjects):
            raise ValueError("more results than subjects")
        for position, result in enumerate(self.round_results):
            if result.round_index != position:
                raise ValueError(f"result at position {position} has round_index {result.round_index}")
            if result.subject_id != self.round_subjects[position].id:
                raise ValueError(f"result at position {position} does not match its subject")
        return self


GuessInput = Union[Coordinates, Dict[str, Any], Tuple[float, float], None]


def parse_guess(coordinates: GuessInput, guess_year: Optional[int]) -> Tuple[Optional[Coordinates], int]:
    """
    Validate raw guess input before scoring.

    Args:
        coordinates: Coordinates, a {"lat", "lng"} mapping, a (lat, lng) pair, or None
        guess_year: Guessed year, or None for the current year

    Returns:
        Tuple of (coordinates or None, year)

    Raises:
        ValidationError: If coordinates or year are malformed or out of range
    """
    parsed: Optional[Coordinates] = None
    if coordinates is not None:
        if isinstance(coordinates, (tuple, list)):
            if len(coordinates) != 2:
                raise ValidationError("Coordinates must be a (lat, lng) pair")
            coordinates = {"lat": coordinates[0], "lng": coordinates[1]}
        try:
            parsed = Coordinates.model_validate(coordinates)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid coordinates: {e.errors()[0]['msg']}")

    if guess_year is None:
        return parsed, current_year()
    if isinstance(guess_year, bool) or not isinstance(guess_year, int):
        if isinstance(guess_year, float) and math.isfinite(guess_year) and guess_year.is_integer():
            guess_year = int(guess_year)
        else:
            raise ValidationError(f"Invalid year: {guess_year!r}")
    try:
        _check_year(guess_year)
    except ValueError as e:
        raise ValidationError(str(e))
    return parsed, guess_year
