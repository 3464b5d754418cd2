"""
Dataset Validation API Service.

Contributors cast true/false votes on data records. Once enough votes
agree, the consensus engine finalizes the record as verified or rejected,
stores the outcome with its contributors, and rewards each contributor.

The service allows users to:
- Fetch a pending record to judge
- Vote on whether the record is correct
- Retrieve finalized outcomes and reward balances
"""

__version__ = "0.1.0"
