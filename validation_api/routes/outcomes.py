"""
API routes for finalized outcomes.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from validation_api.database import get_db, Outcome
from validation_api.models import OutcomeResponse, Polarity
from validation_api.outcome_store import OutcomeStore
from validation_api.record_store import RecordStore


router = APIRouter(prefix="/outcomes", tags=["Outcomes"])


@router.get("/", response_model=List[OutcomeResponse])
def list_outcomes(
    polarity: Optional[Polarity] = None,
    limit: int = Query(default=100, le=500),
    offset: int = 0,
    db: Session = Depends(get_db)
) -> List[OutcomeResponse]:
    """List finalized outcomes, newest first."""
    outcomes = OutcomeStore(db).list_outcomes(polarity=polarity, limit=limit, offset=offset)
    return [_outcome_to_response(o) for o in outcomes]


@router.get("/record/{record_id}", response_model=List[OutcomeResponse])
def get_outcomes_for_record(
    record_id: int,
    db: Session = Depends(get_db)
) -> List[OutcomeResponse]:
    """Get the finalized outcome of a record (empty while pending)."""
    if not RecordStore(db).get(record_id):
        raise HTTPException(status_code=404, detail="Record not found")

    return [_outcome_to_response(o) for o in OutcomeStore(db).list_for_record(record_id)]


def _outcome_to_response(outcome: Outcome) -> OutcomeResponse:
    """Convert database Outcome to response model."""
    return OutcomeResponse(
        id=outcome.id,
        record_id=outcome.record_id,
        polarity=outcome.polarity,
        data_1=outcome.data_1,
        data_2=outcome.data_2,
        contributors=OutcomeStore.contributors_of(outcome),
        created_at=outcome.created_at,
    )
