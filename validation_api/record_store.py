"""
Storage for records and their validation status.
"""

from datetime import datetime, UTC
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from validation_api.database import Record
from validation_api.models import RecordStatus


class RecordStore:
    """Access to the ``records`` table."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, record_id: int) -> Optional[Record]:
        return self.db.query(Record).filter(Record.id == record_id).first()

    def create(self, data_1: str, data_2: str) -> Record:
        """Add a new pending record."""
        record = Record(data_1=data_1, data_2=data_2, status=RecordStatus.PENDING.value)
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def next_pending(self) -> Optional[Record]:
        """Pick a random pending record to show to a voter."""
        return self.db.query(Record).filter(
            Record.status == RecordStatus.PENDING.value
        ).order_by(func.random()).first()

    def count(self, status: Optional[RecordStatus] = None) -> int:
        query = self.db.query(func.count(Record.id))
        if status is not None:
            query = query.filter(Record.status == status.value)
        return query.scalar() or 0

    def transition(self, record_id: int, status: RecordStatus) -> bool:
        """
        Move a pending record to a terminal status.

        Compare-and-swap on ``status = 'pending'``: returns True only for
        the single caller whose update changed the row. The change is not
        committed here.
        """
        if status is RecordStatus.PENDING:
            raise ValueError("Cannot transition a record back to pending")

        updated = self.db.query(Record).filter(
            Record.id == record_id,
            Record.status == RecordStatus.PENDING.value
        ).update(
            {Record.status: status.value, Record.finalized_at: datetime.now(UTC)},
            synchronize_session=False
        )
        return updated == 1
