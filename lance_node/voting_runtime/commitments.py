"""
lance_node/voting_runtime/commitments.py
----------------------------------------

Commitment oracle client.

Commitments are never computed locally. The ledger exposes a read-only
``build_commitments_from_votes(project_id, votes, seeds)`` entry point that
returns one opaque commitment per choice slot; we simulate it and hand the
result to the ballot unchanged.

Any failure on the way (transport, simulation, wrong count, empty value) is
a CommitmentRequestError, and a ballot is never submitted without a full set
of commitments.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence, Tuple

from ..errors import CommitmentRequestError, LanceError
from .models import NUM_CHOICES, commitment_text, check_u128_vector

log = logging.getLogger(__name__)


class CommitmentOracle(Protocol):
    async def build_commitments(
        self, project_id: int, votes: Sequence[int], seeds: Sequence[int]
    ) -> Tuple[str, ...]: ...


class LedgerCommitmentOracle:
    """Default oracle: simulates the contract's commitment builder."""

    def __init__(self, ledger) -> None:
        self.ledger = ledger

    async def build_commitments(
        self, project_id: int, votes: Sequence[int], seeds: Sequence[int]
    ) -> Tuple[str, ...]:
        try:
            raw = await self.ledger.build_commitments_from_votes(project_id, votes, seeds)
        except LanceError as e:
            raise CommitmentRequestError(f"commitment oracle failed: {e.message}", detail=e.detail) from e
        return _normalize(raw)


def _normalize(raw: Any) -> Tuple[str, ...]:
    if not isinstance(raw, (list, tuple)) or len(raw) != NUM_CHOICES:
        got = len(raw) if isinstance(raw, (list, tuple)) else type(raw).__name__
        raise CommitmentRequestError(f"expected {NUM_CHOICES} commitments, got {got}")
    if any(c is None for c in raw):
        raise CommitmentRequestError("commitment oracle returned an empty commitment")
    out = tuple(commitment_text(c) for c in raw)
    if not all(out):
        raise CommitmentRequestError("commitment oracle returned an empty commitment")
    return out


async def request_commitments(
    oracle: CommitmentOracle, project_id: int, votes: Sequence[int], seeds: Sequence[int]
) -> Tuple[str, ...]:
    """
    Ask ``oracle`` for the three commitments of one ballot.

    The plaintext votes/seeds only travel to the ledger's read-only
    simulation; they are not logged.
    """
    votes = check_u128_vector(votes, "votes")
    seeds = check_u128_vector(seeds, "seeds")
    try:
        raw = await oracle.build_commitments(int(project_id), votes, seeds)
    except CommitmentRequestError:
        raise
    except LanceError as e:
        raise CommitmentRequestError(f"commitment oracle failed: {e.message}", detail=e.detail) from e
    commitments = _normalize(raw)
    log.debug("received %d commitments for project %s", len(commitments), project_id)
    return commitments
