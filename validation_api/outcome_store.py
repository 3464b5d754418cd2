"""
Storage for finalized outcome artifacts.

One artifact per (record, polarity). Creation relies on the
``uq_outcome_record_polarity`` constraint rather than a prior lookup, so
two concurrent finalizers cannot both succeed.
"""

import json
import logging
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from validation_api.database import Outcome, Record
from validation_api.errors import ArtifactAlreadyExists
from validation_api.models import Polarity


logger = logging.getLogger(__name__)


class OutcomeStore:
    """Access to the ``outcomes`` table."""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, record_id: int, polarity: Polarity) -> bool:
        return self.get(record_id, polarity) is not None

    def get(self, record_id: int, polarity: Polarity) -> Optional[Outcome]:
        return self.db.query(Outcome).filter(
            Outcome.record_id == record_id,
            Outcome.polarity == polarity.value
        ).first()

    def create(
        self,
        record: Record,
        polarity: Polarity,
        contributors: Iterable[int]
    ) -> Outcome:
        """
        Materialize the outcome artifact for a record.

        Runs in a savepoint so a unique violation only discards the insert.
        Not committed here.

        Raises:
            ArtifactAlreadyExists: an artifact for (record, polarity) exists
        """
        outcome = Outcome(
            record_id=record.id,
            polarity=polarity.value,
            data_1=record.data_1,
            data_2=record.data_2,
            contributors=json.dumps(sorted(set(contributors))),
        )
        try:
            with self.db.begin_nested():
                self.db.add(outcome)
        except IntegrityError as e:
            logger.info(f"Outcome {polarity.value} for record {record.id} already exists")
            raise ArtifactAlreadyExists(record.id, polarity.value) from e

        return outcome

    def list_for_record(self, record_id: int) -> List[Outcome]:
        return self.db.query(Outcome).filter(
            Outcome.record_id == record_id
        ).order_by(Outcome.id).all()

    def list_outcomes(
        self,
        polarity: Optional[Polarity] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Outcome]:
        query = self.db.query(Outcome)
        if polarity is not None:
            query = query.filter(Outcome.polarity == polarity.value)
        return query.order_by(Outcome.created_at.desc(), Outcome.id.desc()).offset(offset).limit(limit).all()

    @staticmethod
    def contributors_of(outcome: Outcome) -> List[int]:
        return json.loads(outcome.contributors) if outcome.contributors else []
