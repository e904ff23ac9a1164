"""
lance_node/voting_runtime/finalize.py
-------------------------------------

Verified reveal: submit aggregated tallies + seeds to the ledger's
``execute`` entry point.

The ledger checks the submission against the aggregate of all stored
commitments and either finalizes the dispute or rejects the whole call
atomically. That check is never re-implemented here; ``verify`` only
dry-runs the ledger's own read-only ``proof`` entry point.

Winner policy (mirrors the ledger):

    tallies[0] > tallies[1]   creator wins
    tallies[1] > tallies[0]   counterpart wins
    otherwise                 no winner (abstain)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence, Set

from ..errors import AuthorizationError, StateError
from .lifecycle import DisputeLifecycleCoordinator
from .models import Dispute, DisputeStatus, check_u128_vector, validate_address

log = logging.getLogger(__name__)


def winner_for(dispute: Dispute, tallies: Sequence[int]) -> Optional[str]:
    approve, reject = int(tallies[0]), int(tallies[1])
    if approve > reject:
        return dispute.creator
    if reject > approve:
        return dispute.counterpart
    return None


def outcome_for(tallies: Sequence[int]) -> DisputeStatus:
    approve, reject = int(tallies[0]), int(tallies[1])
    if approve > reject:
        return DisputeStatus.CREATOR
    if reject > approve:
        return DisputeStatus.COUNTERPART
    return DisputeStatus.ABSTAIN


class ProofSubmitter:
    def __init__(self, ledger, coordinator: DisputeLifecycleCoordinator, *, project_id: int = 1) -> None:
        self.ledger = ledger
        self.coordinator = coordinator
        self.project_id = int(project_id)
        self._in_flight: Set[int] = set()

    def _settled(self, dispute_id: int, task: "asyncio.Future") -> None:
        self._in_flight.discard(dispute_id)
        if task.cancelled():
            return
        # reported even when the caller was cancelled
        err = task.exception()
        if err is not None:
            log.warning("execute for dispute %s failed: %s", dispute_id, err)

    async def verify(self, dispute_id: int, tallies: Sequence[int], seeds: Sequence[int]) -> bool:
        tallies = check_u128_vector(tallies, "tallies")
        seeds = check_u128_vector(seeds, "seeds")
        ok = await self.ledger.proof(dispute_id, tallies, seeds)
        log.info("proof dry-run for dispute %s: %s", dispute_id, "ok" if ok else "mismatch")
        return ok

    async def finalize(
        self,
        maintainer: str,
        dispute_id: int,
        tallies: Sequence[int],
        seeds: Sequence[int],
    ) -> Dispute:
        """
        Finalize ``dispute_id`` with an aggregated tally.

        Parameters
        ----------
        maintainer : str
            Must equal the configured maintainer address.
        dispute_id : int
            Dispute past its voting deadline and not yet finalized.
        tallies, seeds : sequence of int
            Three u128 values each, canonical choice order.

        Returns
        -------
        Dispute
            Refreshed snapshot after the ledger accepted the execute call.

        Raises
        ------
        AuthorizationError
            ``maintainer`` is not the configured maintainer.
        ValidationError
            Wrong shape or a value outside u128.
        StateError
            Dispute still open, already finalized, below the vote threshold,
            the recorded tally is stale, or another finalize is in flight.
        LedgerError
            The ledger rejected the reveal or confirmation timed out.
        """
        maintainer = validate_address(maintainer, field_name="maintainer")
        if not self.coordinator.is_maintainer(maintainer):
            raise AuthorizationError("only the configured maintainer may finalize disputes")
        tallies = check_u128_vector(tallies, "tallies")
        seeds = check_u128_vector(seeds, "seeds")

        if dispute_id in self._in_flight:
            raise StateError(f"finalize for dispute {dispute_id} is already in flight")
        self._in_flight.add(dispute_id)
        try:
            dispute = await self.ledger.get_dispute(dispute_id)
            self.coordinator.require_can_finalize(dispute, maintainer)
            self.coordinator.require_tally_current(dispute)

            log.info(
                "submitting execute for dispute %s tallies=%s expected=%s",
                dispute_id,
                list(tallies),
                outcome_for(tallies).value,
            )
        except BaseException:
            self._in_flight.discard(dispute_id)
            raise

        # the sent tx outlives a cancelled caller; the dispute stays locked until it settles
        task = asyncio.ensure_future(
            self.ledger.execute(maintainer, self.project_id, dispute_id, tallies, seeds)
        )
        task.add_done_callback(lambda t: self._settled(dispute_id, t))
        await asyncio.shield(task)

        refreshed = await self.ledger.get_dispute(dispute_id)
        self.coordinator.observe(refreshed)
        log.info("dispute %s finalized: %s", dispute_id, refreshed.status.value)
        return refreshed
