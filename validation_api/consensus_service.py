"""
Consensus engine turning per-user votes into a final record status.

A record is finalized when more than ``consensus_threshold`` votes share
the same verdict while it is still pending. Finalization moves the record
to ``verified`` or ``rejected``, materializes the outcome artifact with the
contributing voters, and awards each contributor once.

Finalization happens exactly once per record even when several
submissions observe the crossing concurrently:

1. the status change is a compare-and-swap on ``status = 'pending'``;
   only the submission whose update hits the row continues
2. the outcome insert is guarded by a (record_id, polarity) unique key
3. each reward is guarded by a (user_id, record_id) unique key

A periodic reconciliation sweep finalizes records whose tally crossed the
threshold but whose finalization never committed.
"""

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Dict, List, Optional, Tuple

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from validation_api.config import Settings, get_settings
from validation_api.database import Record, Vote, ReconcileRun
from validation_api.errors import (
    ArtifactAlreadyExists, RecordAlreadyFinalized, RecordNotFound,
    StorageFailure, SubmissionConflict
)
from validation_api.models import Polarity, RecordStatus, VoteOutcomeStatus
from validation_api.outcome_store import OutcomeStore
from validation_api.record_store import RecordStore
from validation_api.reward_ledger import RewardLedger
from validation_api.vote_store import VoteStore


logger = logging.getLogger(__name__)


@dataclass
class VoteOutcome:
    """Result of ``ConsensusEngine.submit_vote``."""

    vote_id: int
    record_id: int
    status: VoteOutcomeStatus
    record_status: RecordStatus
    final_polarity: Optional[Polarity] = None

    @property
    def finalized(self) -> bool:
        return self.status is VoteOutcomeStatus.FINALIZED


def next_status(
    current: RecordStatus,
    matching_count: int,
    verdict: bool,
    threshold: int
) -> RecordStatus:
    """
    Status a record should move to after a vote.

    Terminal statuses never change. A pending record becomes terminal once
    the votes matching ``verdict`` strictly exceed ``threshold``.
    """
    if current is not RecordStatus.PENDING:
        return current
    if matching_count > threshold:
        return Polarity.for_verdict(verdict).status
    return current


class ConsensusEngine:
    """
    Vote submission and finalization.

    One engine per database session; it commits on the session it is given.
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.votes = VoteStore(db)
        self.records = RecordStore(db)
        self.outcomes = OutcomeStore(db)
        self.rewards = RewardLedger(db)

    # =========================================================================
    # Vote Submission
    # =========================================================================

    def submit_vote(
        self,
        voter_id: int,
        record_id: int,
        verdict: bool,
        submission_id: Optional[str] = None
    ) -> VoteOutcome:
        """
        Record a vote and finalize the record if consensus was reached.

        Args:
            voter_id: User casting the vote
            record_id: Record being judged
            verdict: True if the voter says the record is correct
            submission_id: Optional idempotency key. A retry with the same
                key returns without appending another vote.

        Raises:
            RecordNotFound: record_id is unknown (nothing is written)
            RecordAlreadyFinalized: record is terminal and
                ``accept_votes_on_finalized`` is off
            DuplicateVote: voter already voted and ``one_vote_per_user`` is on
            SubmissionConflict: submission_id was used for a different vote
            StorageFailure: the database failed; the submission may be retried
        """
        try:
            return self._submit_vote(voter_id, record_id, verdict, submission_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"Storage failure while recording vote on record {record_id}")
            raise StorageFailure(str(e)) from e

    def _submit_vote(
        self,
        voter_id: int,
        record_id: int,
        verdict: bool,
        submission_id: Optional[str]
    ) -> VoteOutcome:
        record = self.records.get(record_id)
        if record is None:
            raise RecordNotFound(record_id)

        vote = self.votes.find_submission(submission_id) if submission_id else None
        if vote is None:
            self._check_admission(record)
            vote, created = self.votes.append(
                voter_id, record_id, verdict, submission_id,
                exclusive=self.settings.one_vote_per_user
            )
        else:
            created = False

        if not created:
            self._check_replay(vote, voter_id, record_id, verdict, submission_id)
            logger.info(f"Replayed submission {submission_id} for record {record_id}")

        polarity = Polarity.for_verdict(verdict)
        matching = self.votes.count_where(record_id, verdict)

        # The append committed, so this reloads the current status
        current = RecordStatus(record.status)
        target = next_status(current, matching, verdict, self.settings.consensus_threshold)

        if target is not current and self._finalize(record, polarity):
            return VoteOutcome(
                vote_id=vote.id,
                record_id=record_id,
                status=VoteOutcomeStatus.FINALIZED,
                record_status=polarity.status,
                final_polarity=polarity,
            )

        return VoteOutcome(
            vote_id=vote.id,
            record_id=record_id,
            status=VoteOutcomeStatus.RECORDED,
            record_status=RecordStatus(record.status),
        )

    def _check_admission(self, record: Record):
        """
        Refuse votes on finalized records when configured to.

        The one-vote-per-user policy is enforced by ``VoteStore.append``
        in the same transaction as the vote.
        """
        if record.status != RecordStatus.PENDING.value and not self.settings.accept_votes_on_finalized:
            raise RecordAlreadyFinalized(record.id, record.status)

    @staticmethod
    def _check_replay(
        vote: Vote,
        voter_id: int,
        record_id: int,
        verdict: bool,
        submission_id: Optional[str]
    ):
        """A replayed submission id must describe the same vote."""
        if (vote.voter_id, vote.record_id, bool(vote.verdict)) != (voter_id, record_id, verdict):
            raise SubmissionConflict(submission_id)

    # =========================================================================
    # Finalization
    # =========================================================================

    def _finalize(self, record: Record, polarity: Polarity) -> bool:
        """
        Finalize a record toward ``polarity`` in a single transaction.

        Returns:
            True if this call performed the finalization, False if another
            submission got there first.
        """
        record_id = record.id
        data_1, data_2 = record.data_1, record.data_2

        if not self.records.transition(record_id, polarity.status):
            self.db.rollback()
            logger.info(f"Record {record_id} was already finalized elsewhere")
            return False

        contributors = sorted(self.votes.voters_where(record_id, polarity.verdict))

        try:
            self.outcomes.create(record, polarity, contributors)
        except ArtifactAlreadyExists:
            # Status change stands; rewards went out with the existing artifact
            logger.warning(
                f"Record {record_id} had a {polarity.value} outcome before its status changed"
            )
            self.db.commit()
            return False

        awarded = self.rewards.award_many(contributors, record_id, self.settings.reward_amount)
        self.db.commit()

        logger.info(
            f"Record {record_id} finalized as {polarity.value}: "
            f"{len(contributors)} contributors, {len(awarded)} rewarded "
            f"({data_1[:40]!r} / {data_2[:40]!r})"
        )
        return True

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def reconcile(self, record_ids: Optional[List[int]] = None) -> Dict:
        """
        Finalize pending records whose tally already crossed the threshold.

        Args:
            record_ids: Specific record IDs to check (None = all pending)

        Returns:
            Dictionary with reconciliation results
        """
        start_time = time.time()

        run = ReconcileRun(
            started_at=datetime.now(UTC),
            config_snapshot=json.dumps({
                "consensus_threshold": self.settings.consensus_threshold,
                "reward_amount": self.settings.reward_amount,
            })
        )
        self.db.add(run)
        self.db.commit()

        try:
            query = self.db.query(Vote).join(Record).filter(
                Record.status == RecordStatus.PENDING.value
            )
            if record_ids is not None:
                query = query.filter(Vote.record_id.in_(record_ids))
            votes = query.all()

            if not votes:
                logger.info("No votes on pending records, nothing to reconcile")
                return self._finalize_run(run, 0, 0, start_time, [])

            votes_df = self._votes_to_dataframe(votes)
            examined = int(votes_df['record_id'].nunique())

            finalized = 0
            for record_id, polarity in self._find_crossings(votes_df):
                record = self.records.get(record_id)
                if record is not None and self._finalize(record, polarity):
                    finalized += 1

            return self._finalize_run(run, examined, finalized, start_time, [])

        except Exception as e:
            logger.exception("Error during reconciliation")
            self.db.rollback()
            run.success = False
            run.error_message = str(e)
            run.completed_at = datetime.now(UTC)
            self.db.commit()
            raise

    def _votes_to_dataframe(self, votes: List[Vote]) -> pd.DataFrame:
        return pd.DataFrame([
            {
                'vote_id': v.id,
                'record_id': v.record_id,
                'voter_id': v.voter_id,
                'verdict': bool(v.verdict),
                'created_at': v.created_at,
            }
            for v in votes
        ])

    def _find_crossings(self, votes_df: pd.DataFrame) -> List[Tuple[int, Polarity]]:
        """
        Records whose matching votes exceed the threshold, with the winning polarity.

        If both verdicts crossed (e.g. the threshold was lowered), the verdict
        whose crossing vote was cast first wins.
        """
        threshold = self.settings.consensus_threshold

        ordered = votes_df.sort_values(['created_at', 'vote_id']).copy()
        ordered['position'] = ordered.groupby(['record_id', 'verdict']).cumcount() + 1

        crossing = ordered[ordered['position'] == threshold + 1]
        first = crossing.drop_duplicates('record_id', keep='first')

        return [
            (int(row.record_id), Polarity.for_verdict(bool(row.verdict)))
            for row in first.itertuples(index=False)
        ]

    def _finalize_run(
        self,
        run: ReconcileRun,
        examined: int,
        finalized: int,
        start_time: float,
        errors: List[str]
    ) -> Dict:
        """Finalize and log the reconciliation run."""
        duration = time.time() - start_time
        now = datetime.now(UTC)

        run.completed_at = now
        run.records_examined = examined
        run.records_finalized = finalized
        run.duration_seconds = duration
        run.success = len(errors) == 0
        if errors:
            run.error_message = "; ".join(errors)

        self.db.commit()

        logger.info(
            f"Reconciliation complete: {examined} records examined, "
            f"{finalized} finalized in {duration:.2f}s"
        )

        return {
            "success": run.success,
            "records_examined": examined,
            "records_finalized": finalized,
            "duration_seconds": duration,
            "errors": errors,
            "reconciled_at": now.isoformat()
        }
