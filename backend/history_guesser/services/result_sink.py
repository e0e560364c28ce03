import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..database.models import GameSessionRecord, RoundResultRecord
from ..errors import PersistenceError
from ..models.game import RoundResult

logger = logging.getLogger(__name__)


class SqlResultSink:
    """Writes finished rounds to the game database."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def persist_round_result(self, session_id: str, result: RoundResult) -> None:
        """
        Store one round and refresh the session totals.

        A round already stored for the same index is left untouched.

        Raises:
            PersistenceError: If the database write fails
        """
        try:
            async with self.session_factory() as db:
                game = await db.get(GameSessionRecord, session_id)
                if game is None:
                    game = GameSessionRecord(id=session_id, total_xp=0, total_accuracy=0.0, rounds_completed=0)
                    db.add(game)
                    await db.flush()

                existing = await db.execute(
                    select(RoundResultRecord).where(
                        RoundResultRecord.game_session_id == session_id,
                        RoundResultRecord.round_index == result.round_index
                    )
                )
                if existing.scalar_one_or_none() is not None:
                    logger.warning("Round %d of session %s already stored", result.round_index, session_id)
                    return

                guess = result.guess_coordinates
                db.add(RoundResultRecord(
                    game_session_id=session_id,
                    round_index=result.round_index,
                    subject_id=result.subject_id,
                    guess_latitude=guess.lat if guess else None,
                    guess_longitude=guess.lng if guess else None,
                    guess_year=result.guess_year,
                    distance_km=result.distance_km,
                    location_score=result.location_score,
                    time_score=result.time_score,
                    accuracy_percent=result.accuracy_percent,
                    xp_earned=result.xp_earned,
                    hints_used=result.hints_used_this_round,
                    time_taken_seconds=result.time_taken_seconds,
                    timed_out=result.timed_out,
                ))

                # Totals are recomputed from the stored rounds
                await db.flush()
                rows = await db.execute(
                    select(RoundResultRecord).where(RoundResultRecord.game_session_id == session_id)
                )
                rounds = rows.scalars().all()
                game.rounds_completed = len(rounds)
                game.total_xp = sum(r.xp_earned for r in rounds)
                game.total_accuracy = sum(r.accuracy_percent for r in rounds) / len(rounds)

                await db.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to store round %d of session %s: %s", result.round_index, session_id, e)
            raise PersistenceError("Failed to save round result") from e
