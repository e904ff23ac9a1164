"""
lance_node/voting_runtime/lifecycle.py
--------------------------------------

Lifecycle projection over ledger dispute snapshots.

The ledger only knows ``Open`` and the three terminal outcomes. The local
projection adds the window between the voting deadline and execution:

    OPEN                 now <  voting_ends_at, ledger status Open
    AWAITING_EXECUTION   now >= voting_ends_at, ledger status Open
    FINALIZED            ledger status Creator | Counterpart | Abstain

FINALIZED is terminal. A snapshot that shows a dispute going back to Open
after we already saw it finalized is reported as a StateError instead of
being silently accepted.

Ballots move through a small local state machine as well:

    CAST              record_cast() after the vote tx confirmed
    STORED            observe() saw the ballot in a ledger snapshot
    INCLUDED_IN_TALLY record_tally() aggregated it

The coordinator keeps the last tally per dispute so finalize can refuse a
tally that predates ballots now on the ledger.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, Dict, Optional, Set

from ..errors import AuthorizationError, StateError
from .models import Dispute, TallyResult

log = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    OPEN = "open"
    AWAITING_EXECUTION = "awaiting_execution"
    FINALIZED = "finalized"


class BallotState(str, Enum):
    CAST = "cast"
    STORED = "stored"
    INCLUDED_IN_TALLY = "included_in_tally"


_BALLOT_ORDER = {BallotState.CAST: 0, BallotState.STORED: 1, BallotState.INCLUDED_IN_TALLY: 2}


class DisputeLifecycleCoordinator:
    def __init__(
        self,
        maintainer_address: str,
        *,
        min_votes: int = 1,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.maintainer_address = (maintainer_address or "").strip()
        self.min_votes = max(0, int(min_votes))
        self._clock = clock or time.time

        self._finalized: Set[int] = set()
        self._ballots: Dict[int, Dict[str, BallotState]] = {}
        self._tallies: Dict[int, TallyResult] = {}

    def now(self) -> int:
        return int(self._clock())

    # ------------------------------------------------------------------
    # projection
    # ------------------------------------------------------------------

    def state_of(self, dispute: Dispute) -> LifecycleState:
        if dispute.is_finalized:
            self._finalized.add(dispute.dispute_id)
            return LifecycleState.FINALIZED
        if dispute.dispute_id in self._finalized:
            raise StateError(
                f"dispute {dispute.dispute_id} reported open after finalization",
                detail={"dispute_id": dispute.dispute_id},
            )
        if self.now() >= dispute.voting_ends_at:
            return LifecycleState.AWAITING_EXECUTION
        return LifecycleState.OPEN

    def is_maintainer(self, address: str) -> bool:
        return bool(self.maintainer_address) and address == self.maintainer_address

    # ------------------------------------------------------------------
    # guards
    # ------------------------------------------------------------------

    def require_can_register(self, dispute: Dispute, voter: str) -> None:
        if self.state_of(dispute) is not LifecycleState.OPEN:
            raise StateError(f"dispute {dispute.dispute_id} is not open for registration")
        if voter in (dispute.creator, dispute.counterpart):
            raise AuthorizationError("dispute parties cannot register to vote")
        if dispute.is_registered(voter):
            raise StateError(f"{voter} is already registered for dispute {dispute.dispute_id}")

    def require_can_vote(self, dispute: Dispute, voter: str) -> None:
        state = self.state_of(dispute)
        if state is LifecycleState.FINALIZED:
            raise StateError(f"dispute {dispute.dispute_id} is already finalized")
        if state is not LifecycleState.OPEN:
            raise StateError(f"voting window for dispute {dispute.dispute_id} has closed")
        if not dispute.is_registered(voter):
            raise AuthorizationError(f"{voter} is not registered for dispute {dispute.dispute_id}")
        if dispute.has_voted(voter):
            raise StateError(f"{voter} has already voted on dispute {dispute.dispute_id}")

    def require_can_finalize(self, dispute: Dispute, maintainer: str) -> None:
        if not self.is_maintainer(maintainer):
            raise AuthorizationError("only the configured maintainer may finalize disputes")
        state = self.state_of(dispute)
        if state is LifecycleState.FINALIZED:
            raise StateError(f"dispute {dispute.dispute_id} is already finalized")
        if state is LifecycleState.OPEN:
            raise StateError(f"voting for dispute {dispute.dispute_id} is still open")
        if len(dispute.ballots) < self.min_votes:
            raise StateError(
                f"dispute {dispute.dispute_id} has {len(dispute.ballots)} ballots, needs {self.min_votes}",
                detail={"ballots": len(dispute.ballots), "min_votes": self.min_votes},
            )

    def require_tally_current(self, dispute: Dispute) -> None:
        tally = self._tallies.get(dispute.dispute_id)
        if tally is None:
            return
        accounted = set(tally.included) | {x.address for x in tally.excluded}
        missing = [a for a in dispute.voters if a not in accounted]
        if missing:
            raise StateError(
                f"tally for dispute {dispute.dispute_id} is stale; re-run aggregation",
                detail={"new_ballots": missing},
            )

    # ------------------------------------------------------------------
    # ballot tracking
    # ------------------------------------------------------------------

    def _promote(self, dispute_id: int, address: str, state: BallotState) -> None:
        ballots = self._ballots.setdefault(dispute_id, {})
        current = ballots.get(address)
        if current is None or _BALLOT_ORDER[state] > _BALLOT_ORDER[current]:
            ballots[address] = state

    def record_cast(self, dispute_id: int, address: str) -> None:
        self._promote(dispute_id, address, BallotState.CAST)

    def observe(self, dispute: Dispute) -> LifecycleState:
        state = self.state_of(dispute)
        for address in dispute.voters:
            self._promote(dispute.dispute_id, address, BallotState.STORED)
        return state

    def record_tally(self, dispute_id: int, result: TallyResult) -> None:
        for address in result.included:
            self._promote(dispute_id, address, BallotState.INCLUDED_IN_TALLY)
        self._tallies[dispute_id] = result
        log.info(
            "recorded tally for dispute %s: %d included, %d excluded",
            dispute_id,
            len(result.included),
            len(result.excluded),
        )

    def ballot_state(self, dispute_id: int, address: str) -> Optional[BallotState]:
        return self._ballots.get(dispute_id, {}).get(address)

    def last_tally(self, dispute_id: int) -> Optional[TallyResult]:
        return self._tallies.get(dispute_id)
