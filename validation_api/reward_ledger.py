"""
Reward points issued to voters whose votes matched a finalized outcome.
"""

import logging
from datetime import datetime, UTC
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from validation_api.database import RewardGrant, UserPoints


logger = logging.getLogger(__name__)


class RewardLedger:
    """
    Per-user point balances plus the history of grants.

    A ``reward_grants`` row is inserted before any balance change; its
    (user_id, record_id) uniqueness keeps awards idempotent per pair.
    Nothing is committed here.
    """

    def __init__(self, db: Session):
        self.db = db

    def award_once(self, user_id: int, record_id: int, amount: int = 1) -> bool:
        """
        Award ``amount`` points to a user for a record.

        Returns:
            True if points were awarded, False if this pair was already rewarded
        """
        if amount < 0:
            raise ValueError("Reward amount must be non-negative")

        try:
            with self.db.begin_nested():
                self.db.add(RewardGrant(user_id=user_id, record_id=record_id, amount=amount))
        except IntegrityError:
            logger.info(f"User {user_id} already rewarded for record {record_id}")
            return False

        self._increment(user_id, amount)
        return True

    def award_many(self, user_ids: Iterable[int], record_id: int, amount: int = 1) -> List[int]:
        """Award each user once; returns the users actually awarded."""
        return [
            user_id for user_id in sorted(set(user_ids))
            if self.award_once(user_id, record_id, amount)
        ]

    def balance(self, user_id: int) -> int:
        row = self.get_points(user_id)
        return row.points if row else 0

    def get_points(self, user_id: int) -> Optional[UserPoints]:
        return self.db.query(UserPoints).filter(UserPoints.user_id == user_id).first()

    def grants_for_user(self, user_id: int, limit: int = 100, offset: int = 0) -> List[RewardGrant]:
        return self.db.query(RewardGrant).filter(
            RewardGrant.user_id == user_id
        ).order_by(RewardGrant.created_at.desc(), RewardGrant.id.desc()).offset(offset).limit(limit).all()

    def grant_count(self, user_id: int) -> int:
        return self.db.query(RewardGrant).filter(RewardGrant.user_id == user_id).count()

    def _increment(self, user_id: int, amount: int):
        """Add to a balance in SQL, creating the balance row on first award."""
        if self._add_points(user_id, amount):
            return

        try:
            with self.db.begin_nested():
                self.db.add(UserPoints(user_id=user_id, points=amount))
        except IntegrityError:
            # Row created concurrently
            self._add_points(user_id, amount)

    def _add_points(self, user_id: int, amount: int) -> bool:
        updated = self.db.query(UserPoints).filter(
            UserPoints.user_id == user_id
        ).update(
            {
                UserPoints.points: UserPoints.points + amount,
                UserPoints.updated_at: datetime.now(UTC),
            },
            synchronize_session=False
        )
        return updated > 0
