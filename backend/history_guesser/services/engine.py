"""
Game session engine.

Drives one GameSession through its lifecycle:

    idle -> loading -> active(0) -> ... -> active(N-1) -> completed
               |
               +-> error

All state changes go through the reducer. The engine owns the collaborators
(subject source, snapshot store, result sink), the round timer, and the
guards that make round finalisation happen exactly once per round:

- ``is_submitting``: a second submit/timeout while one is pending is a no-op
- a generation counter and the expected round index are checked after every
  await, so results for a session that was reset or has moved on are dropped
- an optional CancellationToken lets the caller abandon in-flight work

While a round is active the timer counts down in a background task, one
tick every ``tick_interval`` seconds. Expiry schedules ``timeout_round``
and closes the round to late submissions. With ``tick_interval=None`` the
timer only moves through explicit ``timer.tick()`` calls.
"""

import asyncio
import inspect
import logging
import time
import uuid
from typing import Awaitable, Callable, Dict, Optional, Set, TypeVar

import pydantic

from ..config import Settings, get_settings
from ..errors import (
    OperationCancelled,
    PersistenceError,
    SubjectFetchError,
    TimingError,
    ValidationError,
)
from ..models.game import (
    GameErrorInfo,
    GameSession,
    GuessInput,
    HintType,
    RoundResult,
    RoundSubject,
    SENTINEL_COORDINATES,
    SessionConfig,
    SessionStatus,
    parse_guess,
)
from . import hints
from .reducer import (
    ErrorCleared,
    ErrorRaised,
    HintSelected,
    LoadFailed,
    RoundRecorded,
    SessionReset,
    SessionRestored,
    StartLoading,
    SubjectsLoaded,
    reduce,
    to_snapshot,
)
from .scoring import score_round
from .sources import ResultSink, SubjectSource
from .storage import SnapshotStore, epoch_ms
from .timer import RoundTimer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cancels the suspending operations it was passed into."""

    def __init__(self):
        self.cancelled = False
        self._tasks: Set[asyncio.Future] = set()

    def cancel(self) -> None:
        self.cancelled = True
        for task in list(self._tasks):
            task.cancel()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless cancelled first.

        Raises:
            OperationCancelled: If the token is or becomes cancelled
        """
        if self.cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled("Operation cancelled")
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        try:
            return await task
        except asyncio.CancelledError:
            if self.cancelled and task.cancelled():
                raise OperationCancelled("Operation cancelled") from None
            raise
        finally:
            self._tasks.discard(task)


class GameEngine:
    """Runs game sessions against a subject source and a snapshot store."""

    def __init__(
        self,
        subject_source: SubjectSource,
        snapshot_store: SnapshotStore,
        settings: Optional[Settings] = None,
        result_sink: Optional[ResultSink] = None,
        clock: Callable[[], float] = time.time,
        on_round_complete: Optional[Callable[[RoundResult], None]] = None,
        on_session_complete: Optional[Callable[[GameSession], None]] = None,
        tick_interval: Optional[float] = 1.0,
    ):
        self.subject_source = subject_source
        self.snapshot_store = snapshot_store
        self.settings = settings or get_settings()
        self.result_sink = result_sink
        self.clock = clock
        self.on_round_complete = on_round_complete
        self.on_session_complete = on_session_complete
        self.tick_interval = tick_interval

        self.session = GameSession(
            round_timer_seconds=self.settings.DEFAULT_TIMER_SECONDS,
            hints_allowed_per_game=self.settings.DEFAULT_HINTS_PER_GAME,
        )
        self.timer = RoundTimer(on_timeout=self._on_timer_expired)
        self.is_submitting = False
        self.pending_timeout: Optional[asyncio.Task] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._generation = 0

    # -- state -----------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def current_subject(self) -> Optional[RoundSubject]:
        return self.session.current_subject

    @property
    def remaining_seconds(self) -> float:
        return self.timer.remaining

    def _dispatch(self, action) -> GameSession:
        self.session = reduce(self.session, action)
        return self.session

    def _report(self, exc: Exception) -> None:
        self._dispatch(ErrorRaised(GameErrorInfo.from_exception(exc)))

    def _is_current(self, generation: int, token: Optional[CancellationToken]) -> bool:
        if token is not None and token.cancelled:
            return False
        return generation == self._generation

    def _save_snapshot(self) -> Optional[PersistenceError]:
        try:
            self.snapshot_store.save(to_snapshot(self.session, epoch_ms(self.clock)))
        except PersistenceError as e:
            return e
        return None

    # -- lifecycle -------------------------------------------------------

    def restore(self) -> bool:
        """Resume the saved game, if any. Returns True when a session was restored."""
        snapshot = self.snapshot_store.load()
        if snapshot is None:
            return False
        self._generation += 1
        self._dispatch(SessionRestored(snapshot))
        if self.session.status == SessionStatus.ACTIVE:
            self.timer.start(self.session.round_timer_seconds)
            self._start_ticking()
        logger.info(
            "Restored session %s at round %d of %d",
            snapshot.session_id, len(snapshot.round_results), len(snapshot.round_subjects)
        )
        return True

    async def start_session(
        self,
        config: Optional[SessionConfig] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> GameSession:
        """
        Start a new session, replacing any current one.

        On success the session is active at round 0 and an initial snapshot
        is saved. A failed or empty subject fetch leaves the session in the
        error status with no session id and nothing persisted.
        """
        if self.session.status == SessionStatus.LOADING:
            logger.warning("Ignoring start: session %s is still loading", self.session.session_id)
            return self.session

        config = config or SessionConfig()
        rounds = config.rounds or self.settings.ROUNDS_PER_GAME
        timer_seconds = config.timer_seconds or self.settings.DEFAULT_TIMER_SECONDS
        hints_per_game = (
            config.hints_per_game if config.hints_per_game is not None
            else self.settings.DEFAULT_HINTS_PER_GAME
        )

        if self.session.session_id is not None:
            logger.info("Replacing session %s", self.session.session_id)
            self.snapshot_store.clear()
        self._cancel_pending_timeout()
        self.timer.stop()
        self._stop_ticking()
        self.is_submitting = False

        self._generation += 1
        generation = self._generation
        session_id = uuid.uuid4().hex
        self._dispatch(StartLoading(
            session_id=session_id,
            hints_allowed_per_game=hints_per_game,
            round_timer_seconds=timer_seconds,
        ))
        logger.info("Starting session %s with %d rounds", session_id, rounds)

        token = cancel_token or CancellationToken()
        error: Optional[Exception] = None
        subjects = []
        try:
            fetched = await token.run(self.subject_source.fetch_round_subjects(rounds))
            subjects = [RoundSubject.model_validate(s) for s in fetched][:rounds]
            if not subjects:
                error = SubjectFetchError("No round subjects available")
        except OperationCancelled:
            if generation == self._generation:
                logger.info("Session %s start cancelled", session_id)
                self._dispatch(SessionReset())
            return self.session
        except pydantic.ValidationError as e:
            error = SubjectFetchError(f"Invalid round subject: {e.errors()[0]['msg']}")
        except SubjectFetchError as e:
            error = e
        except Exception as e:
            logger.exception("Unexpected error fetching round subjects")
            error = SubjectFetchError(str(e) or "Failed to load round subjects")

        if not self._is_current(generation, token):
            logger.info("Discarding subjects for abandoned session %s", session_id)
            return self.session

        if error is not None:
            logger.error("Session %s failed to load: %s", session_id, error)
            self._dispatch(LoadFailed(session_id, GameErrorInfo.from_exception(error)))
            return self.session

        self._dispatch(SubjectsLoaded(session_id, tuple(subjects)))
        self.timer.start(self.session.round_timer_seconds)
        self._start_ticking()
        save_error = self._save_snapshot()
        if save_error is not None:
            self._report(save_error)
        return self.session

    def reset_session(self) -> GameSession:
        """Drop the session from any state back to idle and forget the snapshot."""
        self._generation += 1
        self._cancel_pending_timeout()
        self.timer.stop()
        self._stop_ticking()
        self.is_submitting = False
        self._dispatch(SessionReset())
        self.snapshot_store.clear()
        logger.info("Session reset")
        return self.session

    # -- hints -----------------------------------------------------------

    def select_hint(self, hint_type: HintType) -> bool:
        """Buy a hint for the current round. Returns False when refused."""
        if self.session.status != SessionStatus.ACTIVE:
            logger.warning("Cannot select hint while %s", self.session.status.value)
            return False
        before = self.session.hints.hints_used_this_round
        self._dispatch(HintSelected(hint_type))
        if self.session.hints.hints_used_this_round == before:
            return False
        save_error = self._save_snapshot()
        if save_error is not None:
            self._report(save_error)
        return True

    def can_select_hint(self) -> bool:
        return (
            self.session.status == SessionStatus.ACTIVE
            and hints.can_select_hint(self.session.hints, self.session.hints_allowed_per_game)
        )

    def hint_content(self, hint_type: HintType) -> Optional[str]:
        subject = self.session.current_subject
        if subject is None:
            return None
        return hints.hint_content(self.session.hints, subject, hint_type)

    def revealed_hints(self) -> Dict[HintType, str]:
        """Text of the hints bought this round."""
        return {
            hint_type: self.hint_content(hint_type)
            for hint_type in self.session.hints.selected_hint_types
        }

    # -- rounds ----------------------------------------------------------

    async def submit_round(
        self,
        guess: GuessInput = None,
        guess_year: Optional[int] = None,
        time_taken_seconds: Optional[float] = None,
        round_index: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Optional[RoundResult]:
        """
        Finalise the current round with the player's guess.

        Returns the recorded result, or None when the submission was rejected
        (invalid guess, wrong state, duplicate or stale finalisation). An
        invalid guess keeps the player in the same round with ``last_error``
        set.
        """
        return await self._finalize_round(
            guess, guess_year, time_taken_seconds, round_index, False, cancel_token
        )

    async def timeout_round(
        self,
        round_index: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Optional[RoundResult]:
        """Finalise the current round as if the whole time budget was spent without a guess."""
        return await self._finalize_round(
            SENTINEL_COORDINATES, None, float(self.session.round_timer_seconds), round_index, True, cancel_token
        )

    def _on_timer_expired(self) -> None:
        round_index = self.session.current_round_index
        if round_index is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Round %d timed out outside an event loop; call timeout_round()", round_index)
            return
        self.pending_timeout = loop.create_task(self.timeout_round(round_index=round_index))

    def _cancel_pending_timeout(self) -> None:
        if self.pending_timeout is not None and not self.pending_timeout.done():
            self.pending_timeout.cancel()
        self.pending_timeout = None

    def _start_ticking(self) -> None:
        """Count the round timer down in the background while a loop is running."""
        if self.tick_interval is None:
            return
        if self._timer_task is not None and not self._timer_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; round timer advances only through tick()")
            return
        self._timer_task = loop.create_task(self.timer.run(self.tick_interval))

    def _stop_ticking(self) -> None:
        if self._timer_task is not None and not self._timer_task.done():
            self._timer_task.cancel()
        self._timer_task = None

    async def _finalize_round(
        self,
        guess: GuessInput,
        guess_year: Optional[int],
        time_taken_seconds: Optional[float],
        round_index: Optional[int],
        timed_out: bool,
        cancel_token: Optional[CancellationToken],
    ) -> Optional[RoundResult]:
        kind = "timeout" if timed_out else "submission"
        if self.is_submitting:
            logger.warning("Ignoring %s: %s", kind, TimingError("A submission is already in flight"))
            return None
        if self.session.status != SessionStatus.ACTIVE:
            logger.warning("Ignoring %s while session is %s", kind, self.session.status.value)
            return None

        current_index = self.session.current_round_index
        if round_index is not None and round_index != current_index:
            logger.warning(
                "Ignoring %s: %s", kind,
                TimingError(f"Round {round_index} already finalised, round {current_index} in play")
            )
            return None
        if not timed_out and self.timer.has_expired:
            logger.warning(
                "Ignoring %s: %s", kind,
                TimingError(f"Round {current_index} ran out of time, its timeout is pending")
            )
            return None

        try:
            coordinates, year = parse_guess(guess, guess_year)
        except ValidationError as e:
            logger.warning("Rejected guess for round %d: %s", current_index, e)
            self._report(e)
            return None

        if time_taken_seconds is None:
            time_taken_seconds = self.timer.elapsed
        # Reported times are bounded by the round budget
        time_taken_seconds = min(max(0.0, time_taken_seconds), float(self.session.round_timer_seconds))

        session_id = self.session.session_id
        result = score_round(
            subject=self.session.current_subject,
            round_index=current_index,
            guess=coordinates,
            guess_year=year,
            hints_used=self.session.hints.hints_used_this_round,
            time_taken_seconds=time_taken_seconds,
            timed_out=timed_out,
        )

        generation = self._generation
        token = cancel_token or CancellationToken()
        error: Optional[Exception] = None
        self.is_submitting = True
        try:
            if self.result_sink is not None:
                try:
                    await token.run(self.result_sink.persist_round_result(session_id, result))
                except PersistenceError as e:
                    logger.warning("Round %d kept in memory only: %s", current_index, e)
                    error = e
                except OperationCancelled:
                    logger.info("Round %d %s cancelled", current_index, kind)
                    return None
                except Exception as e:
                    logger.exception("Unexpected error storing round %d", current_index)
                    error = PersistenceError(f"Failed to save round result: {e}")

            if not self._is_current(generation, token) or self.session.current_round_index != current_index:
                logger.info("Discarding %s for round %d of an abandoned session", kind, current_index)
                return None

            self._dispatch(RoundRecorded(result))
        finally:
            if generation == self._generation:
                self.is_submitting = False

        save_error = self._save_snapshot()
        error = error or save_error
        if error is not None:
            self._report(error)
        else:
            self._dispatch(ErrorCleared())

        logger.info(
            "Round %d finished: %.1f km, accuracy %s%%, %d XP%s",
            current_index, result.distance_km, result.accuracy_percent, result.xp_earned,
            " (timed out)" if timed_out else ""
        )

        if self.session.status == SessionStatus.COMPLETED:
            self.timer.stop()
            self._stop_ticking()
            if self.on_round_complete:
                self.on_round_complete(result)
            if self.on_session_complete:
                self.on_session_complete(self.session)
        else:
            self.timer.reset(self.session.round_timer_seconds)
            self._start_ticking()
            if self.on_round_complete:
                self.on_round_complete(result)
        return result
