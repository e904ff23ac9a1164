"""
lance_node/voting_runtime/ballots.py
------------------------------------

Voter-side flow: register, build a ballot, submit it.

    register(voter, dispute_id)            -> register_to_vote tx
    cast(voter, dispute_id, choice)        -> encode + commitments + submit
    submit(voter, dispute_id, ballot)      -> vote tx

Every precondition is checked against a fresh dispute snapshot before a
request is built, so a doomed transaction is never signed. The ledger still
enforces the same rules; these checks only fail earlier and with a clearer
error.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..errors import ValidationError
from .ballot_codec import VoteEncoder
from .commitments import CommitmentOracle, request_commitments
from .lifecycle import DisputeLifecycleCoordinator
from .models import NUM_CHOICES, Ballot, Choice, Dispute, validate_address

log = logging.getLogger(__name__)


class BallotSubmitter:
    def __init__(
        self,
        ledger,
        coordinator: DisputeLifecycleCoordinator,
        oracle: CommitmentOracle,
        *,
        encoder: Optional[VoteEncoder] = None,
        project_id: int = 1,
        default_weight: int = 3,
        max_weight: int = 100,
    ) -> None:
        self.ledger = ledger
        self.coordinator = coordinator
        self.oracle = oracle
        self.encoder = encoder or VoteEncoder()
        self.project_id = int(project_id)
        self.default_weight = int(default_weight)
        self.max_weight = int(max_weight)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def weight_for(self, dispute: Dispute, voter: str) -> int:
        """
        Registration weight of ``voter``; the default when the ledger does not
        expose per-voter weights.
        """
        weight = dispute.voter_weights.get(voter, self.default_weight)
        if not 1 <= weight <= self.max_weight:
            raise ValidationError(f"voter weight {weight} outside 1..{self.max_weight}")
        return weight

    def _check_ballot(self, dispute: Dispute, voter: str, ballot: Ballot) -> None:
        if not isinstance(ballot, Ballot):
            raise ValidationError("ballot must be a Ballot record")
        if ballot.malformed is not None:
            raise ValidationError(f"malformed ballot: {ballot.malformed}")
        if ballot.address != voter:
            raise ValidationError("ballot address does not match the voter")
        for name in ("encrypted_votes", "encrypted_seeds", "commitments"):
            if len(getattr(ballot, name)) != NUM_CHOICES:
                raise ValidationError(f"ballot {name} must have exactly {NUM_CHOICES} entries")
        expected = self.weight_for(dispute, voter)
        if ballot.weight != expected:
            raise ValidationError(
                f"ballot weight {ballot.weight} differs from registration weight {expected}",
                detail={"weight": ballot.weight, "expected": expected},
            )

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------

    async def register(self, voter: str, dispute_id: int) -> Dispute:
        voter = validate_address(voter, field_name="voter")
        dispute = await self.ledger.get_dispute(dispute_id)
        self.coordinator.require_can_register(dispute, voter)

        await self.ledger.register_to_vote(voter, dispute_id)
        log.info("registered %s for dispute %s", voter, dispute_id)
        return await self.ledger.get_dispute(dispute_id)

    async def submit(self, voter: str, dispute_id: int, ballot: Ballot) -> Any:
        voter = validate_address(voter, field_name="voter")
        dispute = await self.ledger.get_dispute(dispute_id)
        self.coordinator.require_can_vote(dispute, voter)
        self._check_ballot(dispute, voter, ballot)

        result = await self.ledger.vote(voter, dispute_id, ballot)
        self.coordinator.record_cast(dispute_id, voter)
        log.info("ballot from %s stored for dispute %s", voter, dispute_id)
        return result

    async def cast(self, voter: str, dispute_id: int, choice: Any) -> Ballot:
        """
        Full voting flow for one voter.

        Parameters
        ----------
        voter : str
            Stellar address of a registered voter.
        dispute_id : int
            Target dispute.
        choice : Choice | int | str
            ``approve`` / ``reject`` / ``abstain`` (or 0/1/2).

        Returns
        -------
        Ballot
            The ballot as submitted (ciphertexts + commitments only).
        """
        choice = Choice.parse(choice)
        voter = validate_address(voter, field_name="voter")

        dispute = await self.ledger.get_dispute(dispute_id)
        self.coordinator.require_can_vote(dispute, voter)

        config = await self.ledger.get_anonymous_voting_config(self.project_id)

        weight = self.weight_for(dispute, voter)
        encoded = self.encoder.encode_ballot(choice, config.public_key)
        commitments = await request_commitments(self.oracle, self.project_id, encoded.votes, encoded.seeds)

        ballot = Ballot(
            address=voter,
            weight=weight,
            encrypted_votes=encoded.encrypted_votes,
            encrypted_seeds=encoded.encrypted_seeds,
            commitments=commitments,
        )
        await self.submit(voter, dispute_id, ballot)
        return ballot
