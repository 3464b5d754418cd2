"""
API routes for casting votes on records.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from validation_api.config import Settings, get_settings
from validation_api.consensus_service import ConsensusEngine
from validation_api.database import get_db
from validation_api.errors import (
    DuplicateVote, RecordAlreadyFinalized, RecordNotFound, StorageFailure,
    SubmissionConflict
)
from validation_api.models import (
    RecordStatus, SubmitVoteRequest, TallyResponse, VoteOutcomeResponse
)
from validation_api.record_store import RecordStore
from validation_api.vote_store import VoteStore


router = APIRouter(prefix="/votes", tags=["Votes"])


# =============================================================================
# Submit Vote
# =============================================================================


@router.post("/", response_model=VoteOutcomeResponse, status_code=201)
def submit_vote(
    request: SubmitVoteRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> VoteOutcomeResponse:
    """
    Vote on whether a record is correct.

    Once more than ``consensus_threshold`` votes agree, the record is
    finalized as verified or rejected and every voter who agreed earns
    points. Only the submission that performs the finalization reports
    ``finalized``; every other submission reports ``recorded``.
    """
    engine = ConsensusEngine(db, settings)

    try:
        outcome = engine.submit_vote(
            voter_id=request.voter_id,
            record_id=request.record_id,
            verdict=request.verdict,
            submission_id=request.submission_id,
        )
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Record not found")
    except (RecordAlreadyFinalized, DuplicateVote, SubmissionConflict) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StorageFailure:
        raise HTTPException(
            status_code=503,
            detail="Vote could not be stored, please retry"
        )

    return VoteOutcomeResponse(
        vote_id=outcome.vote_id,
        record_id=outcome.record_id,
        status=outcome.status,
        final_polarity=outcome.final_polarity,
        record_status=outcome.record_status,
    )


# =============================================================================
# Tally
# =============================================================================


@router.get("/record/{record_id}/tally", response_model=TallyResponse)
def get_tally(
    record_id: int,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> TallyResponse:
    """Get the current vote counts for a record."""
    record = RecordStore(db).get(record_id)
    if not record:
        raise HTTPException(status_code=404, detail="Record not found")

    counts = VoteStore(db).tally(record_id)

    return TallyResponse(
        record_id=record_id,
        status=RecordStatus(record.status),
        correct_votes=counts[True],
        incorrect_votes=counts[False],
        threshold=settings.consensus_threshold,
    )
