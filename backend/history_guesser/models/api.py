from pydantic import BaseModel, Field
from typing import Dict, Optional, List

from .game import GameErrorInfo, GameSession, HintType, RoundResult, SessionStatus


class GuessRequest(BaseModel):
    """Request for submitting a guess. Omit coordinates if the map was never touched."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    year: Optional[int] = None
    time_taken_seconds: Optional[float] = Field(default=None, ge=0)
    round_index: Optional[int] = Field(default=None, ge=0)


class GuessResponse(BaseModel):
    """Response after a round is finalised."""
    result: RoundResult
    actual_latitude: float
    actual_longitude: float
    actual_year: int
    location_label: str
    round_completed: bool
    game_completed: bool
    total_xp: int
    total_accuracy: float


class SubjectResponse(BaseModel):
    """The image to guess, without its location or year."""
    subject_id: str
    media_ref: str
    round_number: int
    rounds_total: int
    remaining_seconds: float
    hints_used_this_round: int
    hints_used_total: int
    can_select_hint: bool
    revealed_hints: Dict[str, str]


class SessionResponse(BaseModel):
    """Response with game session details."""
    session_id: Optional[str] = None
    status: SessionStatus
    rounds_completed: int
    rounds_total: int
    total_xp: int
    total_accuracy: float
    round_timer_seconds: int
    hints_allowed_per_game: int
    hints_used_total: int
    last_error: Optional[GameErrorInfo] = None

    @classmethod
    def from_session(cls, session: GameSession) -> "SessionResponse":
        return cls(
            session_id=session.session_id,
            status=session.status,
            rounds_completed=len(session.round_results),
            rounds_total=len(session.round_subjects),
            total_xp=session.total_xp,
            total_accuracy=session.total_accuracy,
            round_timer_seconds=session.round_timer_seconds,
            hints_allowed_per_game=session.hints_allowed_per_game,
            hints_used_total=session.hints.hints_used_total,
            last_error=session.last_error,
        )


class HintResponse(BaseModel):
    """Response after buying a hint."""
    hint_type: HintType
    content: str
    hints_used_this_round: int
    hints_used_total: int
    can_select_hint: bool


class FinalScoreResponse(BaseModel):
    """Session totals."""
    final_xp: int
    final_percent: float
    rounds: List[RoundResult]
