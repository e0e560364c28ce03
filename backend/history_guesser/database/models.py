from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from .session import Base


class GameSessionRecord(Base):
    """Game session tracking a complete game."""
    __tablename__ = "game_sessions"

    id = Column(String(64), primary_key=True, index=True)
    total_xp = Column(Integer, default=0)
    total_accuracy = Column(Float, default=0.0)
    rounds_completed = Column(Integer, default=0)
    started_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    rounds = relationship("RoundResultRecord", back_populates="game_session", cascade="all, delete-orphan")


class RoundResultRecord(Base):
    """Individual finished round within a game session."""
    __tablename__ = "round_results"
    __table_args__ = (UniqueConstraint("game_session_id", "round_index", name="uq_round_per_session"),)

    id = Column(Integer, primary_key=True, index=True)
    game_session_id = Column(String(64), ForeignKey("game_sessions.id"), nullable=False)
    round_index = Column(Integer, nullable=False)
    subject_id = Column(String(100), nullable=False)

    # Guess information
    guess_latitude = Column(Float, nullable=True)
    guess_longitude = Column(Float, nullable=True)
    guess_year = Column(Integer, nullable=False)

    # Scores
    distance_km = Column(Float, nullable=False)
    location_score = Column(Float, nullable=False)
    time_score = Column(Float, nullable=False)
    accuracy_percent = Column(Float, nullable=False)
    xp_earned = Column(Integer, default=0)
    hints_used = Column(Integer, default=0)
    time_taken_seconds = Column(Float, nullable=False)
    timed_out = Column(Boolean, default=False)

    completed_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    game_session = relationship("GameSessionRecord", back_populates="rounds")
