"""
API routes for user reward balances.
"""

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from validation_api.database import get_db
from validation_api.models import RewardGrantResponse, UserPointsResponse
from validation_api.reward_ledger import RewardLedger


router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/{user_id}/points", response_model=UserPointsResponse)
def get_user_points(
    user_id: int,
    db: Session = Depends(get_db)
) -> UserPointsResponse:
    """
    Get a user's reward balance.

    Users who were never rewarded have a zero balance.
    """
    ledger = RewardLedger(db)
    points = ledger.get_points(user_id)

    if not points:
        return UserPointsResponse(user_id=user_id)

    return UserPointsResponse(
        user_id=user_id,
        points=points.points,
        records_rewarded=ledger.grant_count(user_id),
        updated_at=points.updated_at
    )


@router.get("/{user_id}/rewards", response_model=List[RewardGrantResponse])
def get_user_rewards(
    user_id: int,
    limit: int = Query(default=100, le=500),
    offset: int = 0,
    db: Session = Depends(get_db)
) -> List[RewardGrantResponse]:
    """Get the rewards a user earned, newest first."""
    grants = RewardLedger(db).grants_for_user(user_id, limit=limit, offset=offset)
    return [RewardGrantResponse.model_validate(g) for g in grants]
