"""
Session reducer.

The reducer is the single point of session mutation:
    reduce(session, action) -> new session

GameSession is immutable; every handler returns a replacement built with
``model_copy``. Totals are recomputed from ``round_results`` after every
change to them, never patched incrementally. Actions that are illegal in the
current status raise InvalidTransition and leave the input untouched.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Sequence, Tuple, Type

from ..errors import InvalidTransition
from ..models.game import (
    GameErrorInfo,
    GameSession,
    GameSnapshot,
    HintState,
    HintType,
    RoundResult,
    RoundSubject,
    SessionStatus,
)
from . import hints
from .scoring import final_session_score


@dataclass(frozen=True)
class StartLoading:
    session_id: str
    hints_allowed_per_game: int
    round_timer_seconds: int


@dataclass(frozen=True)
class SubjectsLoaded:
    session_id: str
    subjects: Tuple[RoundSubject, ...]


@dataclass(frozen=True)
class LoadFailed:
    session_id: str
    error: GameErrorInfo


@dataclass(frozen=True)
class RoundRecorded:
    result: RoundResult


@dataclass(frozen=True)
class HintSelected:
    hint_type: HintType


@dataclass(frozen=True)
class ErrorRaised:
    error: GameErrorInfo


@dataclass(frozen=True)
class ErrorCleared:
    pass


@dataclass(frozen=True)
class SessionRestored:
    snapshot: GameSnapshot


@dataclass(frozen=True)
class SessionReset:
    pass


def recompute_totals(results: Sequence[RoundResult]) -> Dict[str, float]:
    """Aggregate fields derived from the round results."""
    score = final_session_score(results)
    return {"total_accuracy": score.final_percent, "total_xp": score.final_xp}


def _start_loading(session: GameSession, action: StartLoading) -> GameSession:
    if session.status == SessionStatus.LOADING:
        raise InvalidTransition("A session is already loading")
    return GameSession(
        session_id=action.session_id,
        status=SessionStatus.LOADING,
        hints_allowed_per_game=action.hints_allowed_per_game,
        round_timer_seconds=action.round_timer_seconds,
        hints=hints.reset_for_new_session(),
    )


def _check_loading(session: GameSession, session_id: str) -> None:
    if session.status != SessionStatus.LOADING or session.session_id != session_id:
        raise InvalidTransition(f"Session {session_id} is not loading")


def _subjects_loaded(session: GameSession, action: SubjectsLoaded) -> GameSession:
    _check_loading(session, action.session_id)
    if not action.subjects:
        raise InvalidTransition("Cannot activate a session without subjects")
    state = hints.with_content(hints.reset_for_new_session(), action.subjects[0])
    return session.model_copy(update={
        "status": SessionStatus.ACTIVE,
        "round_subjects": tuple(action.subjects),
        "round_results": (),
        "last_error": None,
        "hints": state,
        **recompute_totals(()),
    })


def _load_failed(session: GameSession, action: LoadFailed) -> GameSession:
    _check_loading(session, action.session_id)
    return session.model_copy(update={
        "session_id": None,
        "status": SessionStatus.ERROR,
        "round_subjects": (),
        "round_results": (),
        "last_error": action.error,
    })


def _round_recorded(session: GameSession, action: RoundRecorded) -> GameSession:
    if session.status != SessionStatus.ACTIVE:
        raise InvalidTransition(f"Cannot record a round while {session.status.value}")
    expected = len(session.round_results)
    result = action.result
    if result.round_index != expected:
        raise InvalidTransition(f"Round {result.round_index} recorded while round {expected} is in play")
    subject = session.round_subjects[expected]
    if result.subject_id != subject.id:
        raise InvalidTransition(f"Result for subject {result.subject_id} does not match {subject.id}")

    results = session.round_results + (result,)
    completed = len(results) == len(session.round_subjects)
    state = hints.reset_for_new_round(session.hints, subject.id)
    if not completed:
        state = hints.with_content(state, session.round_subjects[len(results)])

    return session.model_copy(update={
        "status": SessionStatus.COMPLETED if completed else SessionStatus.ACTIVE,
        "round_results": results,
        "hints": state,
        **recompute_totals(results),
    })


def _hint_selected(session: GameSession, action: HintSelected) -> GameSession:
    subject = session.current_subject
    if subject is None:
        raise InvalidTransition("Hints are only available during a round")
    state = hints.select_hint(session.hints, action.hint_type, subject, session.hints_allowed_per_game)
    return session.model_copy(update={"hints": state})


def _error_raised(session: GameSession, action: ErrorRaised) -> GameSession:
    return session.model_copy(update={"last_error": action.error})


def _error_cleared(session: GameSession, action: ErrorCleared) -> GameSession:
    if session.last_error is None:
        return session
    return session.model_copy(update={"last_error": None})


def _session_restored(session: GameSession, action: SessionRestored) -> GameSession:
    snapshot = action.snapshot
    results = tuple(snapshot.round_results)
    completed = len(results) == len(snapshot.round_subjects)
    state = HintState(hints_used_total=snapshot.hints_used_total)
    if not completed:
        state = hints.with_content(state, snapshot.round_subjects[len(results)])
    return GameSession(
        session_id=snapshot.session_id,
        status=SessionStatus.COMPLETED if completed else SessionStatus.ACTIVE,
        round_subjects=tuple(snapshot.round_subjects),
        round_results=results,
        hints_allowed_per_game=snapshot.hints_allowed_per_game,
        round_timer_seconds=snapshot.round_timer_seconds,
        hints=state,
        **recompute_totals(results),
    )


def _session_reset(session: GameSession, action: SessionReset) -> GameSession:
    return GameSession()


_HANDLERS: Dict[Type, Callable] = {
    StartLoading: _start_loading,
    SubjectsLoaded: _subjects_loaded,
    LoadFailed: _load_failed,
    RoundRecorded: _round_recorded,
    HintSelected: _hint_selected,
    ErrorRaised: _error_raised,
    ErrorCleared: _error_cleared,
    SessionRestored: _session_restored,
    SessionReset: _session_reset,
}


def reduce(session: GameSession, action) -> GameSession:
    """Apply one action to a session and return the new session."""
    handler = _HANDLERS.get(type(action))
    if handler is None:
        raise InvalidTransition(f"No handler for action: {type(action).__name__}")
    return handler(session, action)


def to_snapshot(session: GameSession, saved_at_epoch_ms: int) -> GameSnapshot:
    """Resumable subset of a session."""
    return GameSnapshot(
        session_id=session.session_id,
        round_subjects=session.round_subjects,
        round_results=session.round_results,
        hints_allowed_per_game=session.hints_allowed_per_game,
        round_timer_seconds=session.round_timer_seconds,
        total_accuracy=session.total_accuracy,
        total_xp=session.total_xp,
        hints_used_total=session.hints.hints_used_total,
        saved_at_epoch_ms=saved_at_epoch_ms,
    )
