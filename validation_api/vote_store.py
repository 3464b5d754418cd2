"""
Append-only ledger of votes.
"""

import logging
from typing import Dict, Optional, Set, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from validation_api.database import Vote, VoteAdmission
from validation_api.errors import DuplicateVote


logger = logging.getLogger(__name__)


class VoteStore:
    """
    Read/append access to the ``votes`` table.

    Appends are committed immediately so the tally that follows in the
    same submission sees the new vote.
    """

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        voter_id: int,
        record_id: int,
        verdict: bool,
        submission_id: Optional[str] = None,
        exclusive: bool = False
    ) -> Tuple[Vote, bool]:
        """
        Append a vote and commit it.

        Args:
            exclusive: Also claim the (voter, record) admission row in the
                same transaction, so the voter can vote on the record only once.

        Returns:
            (vote, created). ``created`` is False when ``submission_id``
            was already used; the previously stored vote is returned.

        Raises:
            DuplicateVote: ``exclusive`` and the voter already voted on the record
        """
        if submission_id:
            existing = self.find_submission(submission_id)
            if existing is not None:
                return existing, False

        # Votes cast before the policy was enabled have no admission row
        if exclusive and self.has_voted(voter_id, record_id):
            raise DuplicateVote(voter_id, record_id)

        vote = Vote(
            voter_id=voter_id,
            record_id=record_id,
            verdict=verdict,
            submission_id=submission_id,
        )
        self.db.add(vote)
        try:
            if exclusive:
                self.db.flush()
                self.db.add(VoteAdmission(voter_id=voter_id, record_id=record_id, vote_id=vote.id))
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if submission_id:
                # Same submission raced us
                existing = self.find_submission(submission_id)
                if existing is not None:
                    logger.info(f"Submission {submission_id} was stored concurrently")
                    return existing, False
            if exclusive and self.has_voted(voter_id, record_id):
                logger.info(f"User {voter_id} voted on record {record_id} concurrently")
                raise DuplicateVote(voter_id, record_id)
            raise

        self.db.refresh(vote)
        return vote, True

    def find_submission(self, submission_id: str) -> Optional[Vote]:
        """Get the vote stored under a client submission id."""
        return self.db.query(Vote).filter(Vote.submission_id == submission_id).first()

    def count_where(self, record_id: int, verdict: bool) -> int:
        """Count votes on a record with the given verdict."""
        return self.db.query(func.count(Vote.id)).filter(
            Vote.record_id == record_id,
            Vote.verdict == verdict
        ).scalar() or 0

    def voters_where(self, record_id: int, verdict: bool) -> Set[int]:
        """Distinct voters who cast the given verdict on a record."""
        rows = self.db.query(Vote.voter_id).filter(
            Vote.record_id == record_id,
            Vote.verdict == verdict
        ).distinct().all()
        return {row[0] for row in rows}

    def has_voted(self, voter_id: int, record_id: int) -> bool:
        return self.db.query(Vote.id).filter(
            Vote.record_id == record_id,
            Vote.voter_id == voter_id
        ).first() is not None

    def tally(self, record_id: int) -> Dict[bool, int]:
        """Vote counts on a record keyed by verdict."""
        rows = self.db.query(Vote.verdict, func.count(Vote.id)).filter(
            Vote.record_id == record_id
        ).group_by(Vote.verdict).all()

        counts = {True: 0, False: 0}
        for verdict, count in rows:
            counts[bool(verdict)] = count
        return counts
