"""
lance_node/ledger/client.py
---------------------------

Typed access to the lance-protocol contract on top of a LedgerGateway.

Reads are simulations (no signature, no side effect). Writes go through:

    prepare -> external signer -> send -> bounded confirmation polling

Polling makes at most ``max_attempts`` getTransaction calls, sleeping
``delay_sec`` between them, then raises ConfirmationTimeout. Nothing else is
retried.

The ledger accepts one in-flight transaction per account, so writes from the
same source address are serialized here with a per-account lock.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

from ..errors import ConfirmationTimeout, LedgerError, StateError, TransactionRejected, ValidationError
from ..voting_runtime.models import AnonymousVotingConfig, Ballot, Dispute, check_u128_vector
from .gateway import LedgerGateway, address_arg, option_arg, scval, u128_vec_arg, u32_arg
from .signer import Signer

log = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class LedgerClient:
    def __init__(
        self,
        gateway: LedgerGateway,
        signer: Optional[Signer] = None,
        *,
        network_passphrase: str = "",
        max_attempts: int = 10,
        delay_sec: float = 1.0,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.gateway = gateway
        self.signer = signer
        self.network_passphrase = network_passphrase
        self.max_attempts = max(1, int(max_attempts))
        self.delay_sec = max(0.0, float(delay_sec))
        self._sleep = sleep or asyncio.sleep
        self._account_locks: Dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # generic read / write
    # ------------------------------------------------------------------

    async def simulate(self, function: str, args: List[Dict[str, Any]]) -> Any:
        return await self.gateway.simulate(function, args)

    def _lock_for(self, source: str) -> asyncio.Lock:
        lock = self._account_locks.get(source)
        if lock is None:
            lock = asyncio.Lock()
            self._account_locks[source] = lock
        return lock

    async def invoke(self, function: str, args: List[Dict[str, Any]], source: str) -> Any:
        if self.signer is None:
            raise LedgerError("no signer configured; cannot submit transactions")

        async with self._lock_for(source):
            unsigned = await self.gateway.prepare(function, args, source)
            signed = await self.signer.sign(unsigned, address=source, network_passphrase=self.network_passphrase)
            sent = await self.gateway.send(signed)

            status = str(sent.get("status", "")).upper()
            tx_hash = sent.get("hash")
            if status != "PENDING" or not tx_hash:
                raise TransactionRejected(
                    f"{function} not accepted by ledger: {status or 'no status'}",
                    detail={"status": status, "error": sent.get("errorResult")},
                )
            log.info("%s submitted by %s tx=%s", function, source, tx_hash)
            return await self.confirm(str(tx_hash), function=function)

    async def confirm(self, tx_hash: str, *, function: str = "tx") -> Any:
        for attempt in range(1, self.max_attempts + 1):
            res = await self.gateway.get_transaction(tx_hash)
            status = str(res.get("status", "NOT_FOUND")).upper()
            if status == "SUCCESS":
                log.info("%s confirmed tx=%s attempt=%d", function, tx_hash, attempt)
                return res.get("returnValue")
            if status == "FAILED":
                raise TransactionRejected(
                    f"{function} failed on ledger",
                    detail={"hash": tx_hash, "result": res.get("resultXdr") or res.get("error")},
                )
            if attempt < self.max_attempts:
                await self._sleep(self.delay_sec)
        raise ConfirmationTimeout(
            f"{function} not confirmed after {self.max_attempts} attempts",
            detail={"hash": tx_hash},
        )

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    async def get_dispute(self, dispute_id: int) -> Dispute:
        raw = await self.simulate("get_dispute", [u32_arg(dispute_id)])
        return Dispute.from_ledger(raw)

    async def get_dispute_count(self) -> int:
        raw = await self.simulate("get_dispute_count", [])
        try:
            return int(raw)
        except (TypeError, ValueError) as e:
            raise LedgerError(f"invalid dispute count: {raw!r}") from e

    async def iter_disputes(self) -> AsyncIterator[Dispute]:
        # ids are 1..count, assigned by the contract's counter
        count = await self.get_dispute_count()
        for dispute_id in range(1, count + 1):
            yield await self.get_dispute(dispute_id)

    async def get_anonymous_voting_config(self, project_id: int) -> AnonymousVotingConfig:
        raw = await self.simulate("get_anonymous_voting_config", [u32_arg(project_id)])
        if not isinstance(raw, dict):
            raise LedgerError("voting config is not an object")
        public_key = str(raw.get("public_key") or "").strip()
        if not public_key:
            raise StateError(f"project {project_id} has no anonymous voting public key")
        return AnonymousVotingConfig(project_id=int(project_id), public_key=public_key)

    async def build_commitments_from_votes(
        self, project_id: int, votes: Sequence[int], seeds: Sequence[int]
    ) -> List[Any]:
        raw = await self.simulate(
            "build_commitments_from_votes",
            [u32_arg(project_id), u128_vec_arg(votes), u128_vec_arg(seeds)],
        )
        if not isinstance(raw, list):
            raise LedgerError("commitment oracle returned a non-list")
        return raw

    async def proof(self, dispute_id: int, tallies: Sequence[int], seeds: Sequence[int]) -> bool:
        raw = await self.simulate("proof", [u32_arg(dispute_id), u128_vec_arg(tallies), u128_vec_arg(seeds)])
        return raw is True

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    async def anonymous_voting_setup(self, maintainer: str, project_id: int, public_key: str) -> Any:
        if not isinstance(public_key, str) or not public_key.strip():
            raise ValidationError("public key must be a non-empty string")
        return await self.invoke(
            "anonymous_voting_setup",
            [address_arg(maintainer), u32_arg(project_id), scval("string", public_key.strip())],
            maintainer,
        )

    async def register_to_vote(self, voter: str, dispute_id: int) -> Any:
        return await self.invoke("register_to_vote", [address_arg(voter), u32_arg(dispute_id)], voter)

    async def vote(self, voter: str, dispute_id: int, ballot: Ballot) -> Any:
        body = ballot.to_ledger()["AnonymousVote"]
        vote_arg = scval(
            "enum",
            [
                "AnonymousVote",
                scval(
                    "map",
                    {
                        "address": address_arg(body["address"]),
                        "commitments": scval("vec", [scval("bytes", c) for c in body["commitments"]]),
                        "encrypted_seeds": scval("vec", [scval("string", s) for s in body["encrypted_seeds"]]),
                        "encrypted_votes": scval("vec", [scval("string", v) for v in body["encrypted_votes"]]),
                        "weight": u32_arg(body["weight"]),
                    },
                ),
            ],
        )
        return await self.invoke("vote", [address_arg(voter), u32_arg(dispute_id), vote_arg], voter)

    async def execute(
        self,
        maintainer: str,
        project_id: int,
        dispute_id: int,
        tallies: Optional[Sequence[int]] = None,
        seeds: Optional[Sequence[int]] = None,
    ) -> Any:
        if (tallies is None) != (seeds is None):
            raise ValidationError("tallies and seeds must be given together")
        tallies_arg = option_arg(u128_vec_arg(check_u128_vector(tallies, "tallies")) if tallies is not None else None)
        seeds_arg = option_arg(u128_vec_arg(check_u128_vector(seeds, "seeds")) if seeds is not None else None)
        return await self.invoke(
            "execute",
            [address_arg(maintainer), u32_arg(project_id), u32_arg(dispute_id), tallies_arg, seeds_arg],
            maintainer,
        )
