"""
Exceptions raised by the consensus engine and its stores.
"""


class ConsensusError(Exception):
    """Base class for all vote/consensus errors."""


class RecordNotFound(ConsensusError):
    """The record a vote refers to does not exist. No state was mutated."""

    def __init__(self, record_id: int):
        super().__init__(f"Record {record_id} not found")
        self.record_id = record_id


class RecordAlreadyFinalized(ConsensusError):
    """Vote rejected because the record already has a terminal status."""

    def __init__(self, record_id: int, status: str):
        super().__init__(f"Record {record_id} is already {status}")
        self.record_id = record_id
        self.status = status


class DuplicateVote(ConsensusError):
    """Vote rejected because this voter already voted on the record."""

    def __init__(self, voter_id: int, record_id: int):
        super().__init__(f"User {voter_id} already voted on record {record_id}")
        self.voter_id = voter_id
        self.record_id = record_id


class StorageFailure(ConsensusError):
    """
    The storage layer failed mid-submission.

    The submission has no guaranteed effect; callers may retry, ideally
    with the same submission id so the vote is not appended twice.
    """


class ArtifactAlreadyExists(ConsensusError):
    """An outcome for this (record, polarity) was already materialized."""

    def __init__(self, record_id: int, polarity: str):
        super().__init__(f"Outcome {polarity} already exists for record {record_id}")
        self.record_id = record_id
        self.polarity = polarity


class SubmissionConflict(ConsensusError):
    """A submission id was reused for a different voter, record or verdict."""

    def __init__(self, submission_id: str):
        super().__init__(f"Submission {submission_id} was already used for a different vote")
        self.submission_id = submission_id
