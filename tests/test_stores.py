"""
Tests for the vote, record, outcome and reward stores.
"""

import pytest

from validation_api.database import Outcome, RewardGrant, Vote, VoteAdmission
from validation_api.errors import ArtifactAlreadyExists, DuplicateVote
from validation_api.models import Polarity, RecordStatus
from validation_api.outcome_store import OutcomeStore
from validation_api.record_store import RecordStore
from validation_api.reward_ledger import RewardLedger
from validation_api.vote_store import VoteStore


class TestVoteStore:
    """VoteStore append and tally queries."""

    def test_append_is_visible_to_counts(self, db, make_record):
        record = make_record()
        store = VoteStore(db)

        vote, created = store.append(1, record.id, True)

        assert created is True
        assert vote.id is not None
        assert store.count_where(record.id, True) == 1
        assert store.count_where(record.id, False) == 0

    def test_repeat_votes_are_kept(self, db, make_record):
        record = make_record()
        store = VoteStore(db)

        store.append(1, record.id, True)
        store.append(1, record.id, True)

        assert store.count_where(record.id, True) == 2
        assert store.voters_where(record.id, True) == {1}

    def test_voters_where_filters_by_verdict(self, db, make_record):
        record = make_record()
        store = VoteStore(db)

        store.append(1, record.id, True)
        store.append(2, record.id, False)
        store.append(3, record.id, True)

        assert store.voters_where(record.id, True) == {1, 3}
        assert store.voters_where(record.id, False) == {2}

    def test_submission_id_deduplicates(self, db, make_record):
        record = make_record()
        store = VoteStore(db)

        first, created_first = store.append(1, record.id, True, submission_id="sub-1")
        second, created_second = store.append(1, record.id, True, submission_id="sub-1")

        assert created_first is True
        assert created_second is False
        assert second.id == first.id
        assert store.count_where(record.id, True) == 1

    def test_exclusive_append_claims_admission(self, db, make_record):
        record = make_record()
        store = VoteStore(db)

        vote, _ = store.append(1, record.id, True, exclusive=True)
        with pytest.raises(DuplicateVote):
            store.append(1, record.id, False, exclusive=True)

        admissions = db.query(VoteAdmission).filter(VoteAdmission.record_id == record.id).all()
        assert [a.vote_id for a in admissions] == [vote.id]
        assert store.tally(record.id) == {True: 1, False: 0}

    def test_tally_and_has_voted(self, db, make_record):
        record = make_record()
        store = VoteStore(db)

        store.append(1, record.id, True)
        store.append(2, record.id, False)
        store.append(3, record.id, False)

        assert store.tally(record.id) == {True: 1, False: 2}
        assert store.has_voted(2, record.id)
        assert not store.has_voted(9, record.id)

    def test_tally_of_unvoted_record(self, db, make_record):
        record = make_record()
        assert VoteStore(db).tally(record.id) == {True: 0, False: 0}


class TestRecordStore:
    """RecordStore lookups and the pending -> terminal compare-and-swap."""

    def test_create_defaults_to_pending(self, db):
        record = RecordStore(db).create("a", "b")

        assert record.status == RecordStatus.PENDING.value
        assert record.finalized_at is None

    def test_next_pending_skips_terminal_records(self, db, make_record):
        store = RecordStore(db)
        done = make_record()
        pending = make_record("x", "y")

        assert store.transition(done.id, RecordStatus.VERIFIED)
        db.commit()

        for _ in range(5):
            assert store.next_pending().id == pending.id

    def test_next_pending_none_when_empty(self, db):
        assert RecordStore(db).next_pending() is None

    def test_transition_only_once(self, db, make_record):
        store = RecordStore(db)
        record = make_record()

        assert store.transition(record.id, RecordStatus.VERIFIED) is True
        db.commit()
        assert store.transition(record.id, RecordStatus.REJECTED) is False
        db.commit()

        db.refresh(record)
        assert record.status == RecordStatus.VERIFIED.value
        assert record.finalized_at is not None

    def test_transition_to_pending_is_refused(self, db, make_record):
        record = make_record()
        with pytest.raises(ValueError):
            RecordStore(db).transition(record.id, RecordStatus.PENDING)

    def test_count_by_status(self, db, make_record):
        store = RecordStore(db)
        make_record()
        make_record()

        assert store.count() == 2
        assert store.count(RecordStatus.PENDING) == 2
        assert store.count(RecordStatus.REJECTED) == 0


class TestOutcomeStore:
    """OutcomeStore test-and-set creation."""

    def test_create_and_read_back(self, db, make_record):
        record = make_record()
        store = OutcomeStore(db)

        store.create(record, Polarity.VERIFIED, [3, 1, 2, 1])
        db.commit()

        outcome = store.get(record.id, Polarity.VERIFIED)
        assert outcome is not None
        assert outcome.data_1 == record.data_1
        assert outcome.data_2 == record.data_2
        assert OutcomeStore.contributors_of(outcome) == [1, 2, 3]
        assert store.exists(record.id, Polarity.VERIFIED)
        assert not store.exists(record.id, Polarity.REJECTED)

    def test_second_create_for_same_polarity_fails(self, db, make_record):
        record = make_record()
        store = OutcomeStore(db)

        store.create(record, Polarity.VERIFIED, [1])
        db.commit()

        with pytest.raises(ArtifactAlreadyExists):
            store.create(record, Polarity.VERIFIED, [2])
        db.commit()

        assert db.query(Outcome).filter(Outcome.record_id == record.id).count() == 1
        assert OutcomeStore.contributors_of(store.get(record.id, Polarity.VERIFIED)) == [1]

    def test_each_polarity_has_its_own_slot(self, db, make_record):
        record = make_record()
        store = OutcomeStore(db)

        store.create(record, Polarity.VERIFIED, [1])
        store.create(record, Polarity.REJECTED, [2])
        db.commit()

        assert len(store.list_for_record(record.id)) == 2
        assert [o.polarity for o in store.list_outcomes(polarity=Polarity.REJECTED)] == ["rejected"]


class TestRewardLedger:
    """RewardLedger once-per-(user, record) awards."""

    def test_award_once_is_idempotent(self, db, make_record):
        record = make_record()
        ledger = RewardLedger(db)

        assert ledger.award_once(7, record.id, 1) is True
        db.commit()
        assert ledger.award_once(7, record.id, 1) is False
        db.commit()

        assert ledger.balance(7) == 1
        assert db.query(RewardGrant).filter(RewardGrant.user_id == 7).count() == 1

    def test_awards_accumulate_across_records(self, db, make_record):
        first = make_record()
        second = make_record("p", "q")
        ledger = RewardLedger(db)

        ledger.award_once(7, first.id, 2)
        ledger.award_once(7, second.id, 3)
        db.commit()

        assert ledger.balance(7) == 5
        assert ledger.grant_count(7) == 2
        assert {g.record_id for g in ledger.grants_for_user(7)} == {first.id, second.id}

    def test_award_many_skips_already_rewarded(self, db, make_record):
        record = make_record()
        ledger = RewardLedger(db)

        ledger.award_once(2, record.id)
        db.commit()

        awarded = ledger.award_many([1, 2, 3, 3], record.id)
        db.commit()

        assert awarded == [1, 3]
        assert [ledger.balance(u) for u in (1, 2, 3)] == [1, 1, 1]

    def test_unknown_user_has_zero_balance(self, db):
        assert RewardLedger(db).balance(404) == 0

    def test_negative_amount_rejected(self, db, make_record):
        record = make_record()
        with pytest.raises(ValueError):
            RewardLedger(db).award_once(1, record.id, -1)

    def test_votes_untouched_by_rewards(self, db, make_record):
        record = make_record()
        RewardLedger(db).award_once(1, record.id)
        db.commit()
        assert db.query(Vote).count() == 0
