# lance_node/voting_runtime/__init__.py
"""
Anonymous weighted dispute voting runtime.

    keys          KeyManager (RSA-OAEP ballot key pairs)
    ballot_codec  VoteEncoder (tagged plaintexts + encryption)
    commitments   CommitmentOracle client
    ballots       BallotSubmitter (register / cast / submit)
    tally         TallyDecryptor (weighted aggregation)
    finalize      ProofSubmitter (verified reveal via execute)
    lifecycle     DisputeLifecycleCoordinator
    models        shared records
"""

from .ballot_codec import VoteEncoder
from .ballots import BallotSubmitter
from .commitments import CommitmentOracle, LedgerCommitmentOracle, request_commitments
from .finalize import ProofSubmitter, outcome_for, winner_for
from .keys import KeyManager, KeyPair
from .lifecycle import BallotState, DisputeLifecycleCoordinator, LifecycleState
from .models import AnonymousVotingConfig, Ballot, Choice, Dispute, DisputeStatus, TallyResult
from .tally import TallyDecryptor

__all__ = [
    "AnonymousVotingConfig",
    "Ballot",
    "BallotState",
    "BallotSubmitter",
    "Choice",
    "CommitmentOracle",
    "Dispute",
    "DisputeLifecycleCoordinator",
    "DisputeStatus",
    "KeyManager",
    "KeyPair",
    "LedgerCommitmentOracle",
    "LifecycleState",
    "ProofSubmitter",
    "TallyDecryptor",
    "TallyResult",
    "VoteEncoder",
    "outcome_for",
    "request_commitments",
    "winner_for",
]
