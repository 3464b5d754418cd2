"""
Database models and session management for Dataset Validation API.

Uses SQLAlchemy with SQLite for the standalone service.
Can be configured for PostgreSQL in production.

Uniqueness constraints on outcomes and reward grants are what make
finalization exactly-once; do not drop them in migrations.
"""

from datetime import datetime, UTC
from typing import Optional, List

from sqlalchemy import (
    Integer, String, Float, Text, DateTime, Boolean,
    ForeignKey, Index, UniqueConstraint, CheckConstraint, create_engine
)
from sqlalchemy.orm import (
    DeclarativeBase, relationship, sessionmaker, Mapped, mapped_column
)

from validation_api.config import get_settings
from validation_api.models import RecordStatus


# =============================================================================
# Database Setup
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def get_engine(database_url: Optional[str] = None):
    """Create database engine."""
    settings = get_settings()
    url = database_url or settings.database_url
    return create_engine(
        url,
        connect_args={"check_same_thread": False} if "sqlite" in url else {},
        echo=settings.debug
    )


engine = get_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Initialize database tables."""
    Base.metadata.create_all(bind=bind or engine)


# =============================================================================
# Database Models
# =============================================================================


class Record(Base):
    """
    A data record awaiting community validation.

    The payload fields are immutable; only ``status`` changes, and only
    once, from pending to a terminal value.
    """

    __tablename__ = "records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    data_1: Mapped[str] = mapped_column(Text, nullable=False)
    data_2: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=RecordStatus.PENDING.value,
        index=True,
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC), nullable=False
    )
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    votes: Mapped[List["Vote"]] = relationship("Vote", back_populates="record")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'verified', 'rejected')", name="ck_records_status"
        ),
    )


class Vote(Base):
    """
    A single correctness vote cast by a user on a record.

    Append-only. The same voter may vote on a record more than once
    unless ``one_vote_per_user`` is enabled.
    """

    __tablename__ = "votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    record_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("records.id", ondelete="CASCADE"), index=True, nullable=False
    )
    voter_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)

    verdict: Mapped[bool] = mapped_column(Boolean, nullable=False)

    # Client idempotency key for safe retries
    submission_id: Mapped[Optional[str]] = mapped_column(
        String(64), unique=True, nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC), nullable=False
    )

    record: Mapped["Record"] = relationship("Record", back_populates="votes")

    __table_args__ = (
        Index('ix_votes_record_verdict', 'record_id', 'verdict'),
    )


class Outcome(Base):
    """
    The finalized outcome artifact of a record.

    Holds a copy of the payload and the ids of the voters whose votes
    matched the winning verdict.
    """

    __tablename__ = "outcomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    record_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("records.id", ondelete="CASCADE"), index=True, nullable=False
    )
    polarity: Mapped[str] = mapped_column(String(20), nullable=False)

    data_1: Mapped[str] = mapped_column(Text, nullable=False)
    data_2: Mapped[str] = mapped_column(Text, nullable=False)

    contributors: Mapped[str] = mapped_column(Text, default="[]")  # JSON array of user IDs

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC), nullable=False
    )

    __table_args__ = (
        # At most one artifact per record per polarity
        UniqueConstraint('record_id', 'polarity', name='uq_outcome_record_polarity'),
    )


class UserPoints(Base):
    """Reward point balance of a user."""

    __tablename__ = "user_points"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, unique=True, index=True, nullable=False)

    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_user_points_non_negative"),
    )


class RewardGrant(Base):
    """Award history: one row per user per finalized record."""

    __tablename__ = "reward_grants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    user_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    record_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("records.id", ondelete="CASCADE"), index=True, nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC), nullable=False
    )

    __table_args__ = (
        UniqueConstraint('user_id', 'record_id', name='uq_reward_user_record'),
    )


class ReconcileRun(Base):
    """
    Log of reconciliation sweeps.

    Tracks when pending records were re-checked and how many were finalized.
    """

    __tablename__ = "reconcile_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Results
    records_examined: Mapped[int] = mapped_column(Integer, default=0)
    records_finalized: Mapped[int] = mapped_column(Integer, default=0)

    # Performance
    duration_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Errors
    success: Mapped[bool] = mapped_column(Boolean, default=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Configuration used
    config_snapshot: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON


class VoteAdmission(Base):
    """
    One row per (voter, record) when ``one_vote_per_user`` is enabled.

    Written in the same transaction as the vote; the unique key rejects
    a second vote by the same voter even under concurrent submissions.
    """

    __tablename__ = "vote_admissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    voter_id: Mapped[int] = mapped_column(Integer, nullable=False)
    record_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("records.id", ondelete="CASCADE"), index=True, nullable=False
    )
    vote_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("votes.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint('voter_id', 'record_id', name='uq_admission_voter_record'),
    )
