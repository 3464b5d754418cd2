"""
Pydantic models for Dataset Validation API requests and responses.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================


class RecordStatus(str, Enum):
    """Status of a record based on community votes."""
    PENDING = "pending"
    VERIFIED = "verified"    # Enough votes agree the record is correct
    REJECTED = "rejected"    # Enough votes agree the record is incorrect


class Polarity(str, Enum):
    """Which terminal outcome a tally is progressing toward."""
    VERIFIED = "verified"
    REJECTED = "rejected"

    @classmethod
    def for_verdict(cls, verdict: bool) -> "Polarity":
        return cls.VERIFIED if verdict else cls.REJECTED

    @property
    def verdict(self) -> bool:
        return self is Polarity.VERIFIED

    @property
    def status(self) -> RecordStatus:
        return RecordStatus(self.value)


class VoteOutcomeStatus(str, Enum):
    """Result of a single vote submission."""
    RECORDED = "recorded"
    FINALIZED = "finalized"


# =============================================================================
# Request Models
# =============================================================================


class SubmitVoteRequest(BaseModel):
    """Request to cast a correctness vote on a record."""

    voter_id: int = Field(..., description="User ID of the voter")
    record_id: int = Field(..., description="ID of the record being judged")
    verdict: bool = Field(..., description="True if the record is correct")

    submission_id: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=64,
        description="Client idempotency key; retries with the same key are not counted twice"
    )


class CreateRecordRequest(BaseModel):
    """Request to add a record to the validation pool."""

    data_1: str = Field(..., min_length=1, description="First payload field")
    data_2: str = Field(..., min_length=1, description="Second payload field")


class TriggerReconcileRequest(BaseModel):
    """Request to manually trigger a reconciliation sweep (admin only)."""

    record_ids: Optional[List[int]] = Field(
        default=None,
        description="Specific record IDs to reconcile (None = all pending)"
    )


# =============================================================================
# Response Models
# =============================================================================


class VoteOutcomeResponse(BaseModel):
    """Response to a vote submission."""

    vote_id: int
    record_id: int
    status: VoteOutcomeStatus
    final_polarity: Optional[Polarity] = None
    record_status: RecordStatus


class RecordResponse(BaseModel):
    """Response containing a single record."""

    id: int
    data_1: str
    data_2: str
    status: RecordStatus

    created_at: datetime
    finalized_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TallyResponse(BaseModel):
    """Vote counts for a record."""

    record_id: int
    status: RecordStatus
    correct_votes: int = 0
    incorrect_votes: int = 0
    threshold: int


class OutcomeResponse(BaseModel):
    """A finalized outcome artifact."""

    id: int
    record_id: int
    polarity: Polarity
    data_1: str
    data_2: str
    contributors: List[int]
    created_at: datetime


class UserPointsResponse(BaseModel):
    """A user's reward balance."""

    user_id: int
    points: int = 0
    records_rewarded: int = 0
    updated_at: Optional[datetime] = None


class RewardGrantResponse(BaseModel):
    """A single reward issued to a user for a finalized record."""

    record_id: int
    amount: int
    created_at: datetime

    class Config:
        from_attributes = True


class ReconcileResultResponse(BaseModel):
    """Response from a reconciliation sweep."""

    success: bool
    records_examined: int
    records_finalized: int
    duration_seconds: float
    errors: List[str] = Field(default_factory=list)
    reconciled_at: datetime


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    database_connected: bool
    last_reconcile_run: Optional[datetime] = None
    records_count: int = 0
    pending_records_count: int = 0
    votes_count: int = 0
