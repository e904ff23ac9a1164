"""
lance_node/voting_runtime/tally.py
----------------------------------

Weighted tally aggregation from encrypted ballots.

For every ballot b and choice slot i:

    tallies[i] += vote_i(b) * weight(b)
    seeds[i]   += seed_i(b) * weight(b)

The summed seeds are what lets the ledger open the aggregate of the per-ballot
commitments; a tally submitted without matching seeds is rejected there.

Decryption is per ballot and independent. Each ballot yields a contribution
(or a DecryptionError); contributions are summed once at the end, in a single
pass, so ballot order and worker scheduling can never change the result.

Malformed ballot policy
-----------------------
By default a ballot that is malformed or fails to decrypt is excluded, logged
at WARNING and listed in ``TallyResult.excluded``. With ``strict=True`` the
first failure aborts the whole aggregation. Either way the ledger's
commitment check decides whether the resulting tally is acceptable.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple, Union

from .. import crypto_utils
from ..errors import DecryptionError, ValidationError
from .ballot_codec import SEED_TAG, VOTE_TAG, decrypt_vector
from .models import MAX_U128, NUM_CHOICES, Ballot, BallotExclusion, TallyResult

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Contribution:
    address: str
    tallies: Tuple[int, ...]
    seeds: Tuple[int, ...]

    def __repr__(self) -> str:
        return f"Contribution(address={self.address!r})"


Outcome = Union[Contribution, BallotExclusion]


class TallyDecryptor:
    def __init__(self, *, strict: bool = False, max_workers: int = 4) -> None:
        self.strict = bool(strict)
        self.max_workers = max(1, int(max_workers))

    @staticmethod
    def _private_key(private_key):
        if isinstance(private_key, str):
            return crypto_utils.load_private_key(private_key)
        return private_key

    def decrypt_ballot(self, ballot: Ballot, private_key) -> Contribution:
        """
        Decrypt one ballot and scale it by its weight.

        Raises DecryptionError if the ballot is malformed or any of the six
        values fails.
        """
        if ballot.malformed is not None:
            raise DecryptionError(f"ballot from {ballot.address or '<unknown>'} is malformed: {ballot.malformed}")
        votes = decrypt_vector(ballot.encrypted_votes, VOTE_TAG, private_key)
        seeds = decrypt_vector(ballot.encrypted_seeds, SEED_TAG, private_key)
        if len(votes) != NUM_CHOICES or len(seeds) != NUM_CHOICES:
            raise DecryptionError(f"ballot from {ballot.address} does not carry {NUM_CHOICES} values")
        if sum(votes) != 1 or any(v not in (0, 1) for v in votes):
            raise DecryptionError(f"ballot from {ballot.address} is not a single one-hot choice")
        w = ballot.weight
        return Contribution(
            address=ballot.address,
            tallies=tuple(v * w for v in votes),
            seeds=tuple(s * w for s in seeds),
        )

    def _outcome(self, ballot: Ballot, private_key) -> Outcome:
        try:
            return self.decrypt_ballot(ballot, private_key)
        except DecryptionError as e:
            if self.strict:
                raise
            log.warning("excluding ballot from %s: %s", ballot.address, e.message)
            return BallotExclusion(address=ballot.address, reason=e.message)

    @staticmethod
    def _reduce(outcomes: Iterable[Outcome]) -> TallyResult:
        tallies = [0] * NUM_CHOICES
        seeds = [0] * NUM_CHOICES
        included: List[str] = []
        excluded: List[BallotExclusion] = []

        for item in outcomes:
            if isinstance(item, BallotExclusion):
                excluded.append(item)
                continue
            for i in range(NUM_CHOICES):
                tallies[i] += item.tallies[i]
                seeds[i] += item.seeds[i]
            included.append(item.address)

        for name, values in (("tallies", tallies), ("seeds", seeds)):
            if any(v > MAX_U128 for v in values):
                raise ValidationError(f"aggregated {name} exceed the u128 range")

        return TallyResult(
            tallies=tuple(tallies),
            seeds=tuple(seeds),
            included=tuple(sorted(included)),
            excluded=tuple(sorted(excluded, key=lambda x: x.address)),
        )

    def aggregate(self, ballots: Sequence[Ballot], private_key) -> TallyResult:
        key = self._private_key(private_key)
        result = self._reduce(self._outcome(b, key) for b in ballots)
        log.info(
            "aggregated %d ballots (%d excluded) tallies=%s",
            len(result.included),
            len(result.excluded),
            list(result.tallies),
        )
        return result

    async def aggregate_async(self, ballots: Sequence[Ballot], private_key) -> TallyResult:
        """
        Same result as :meth:`aggregate`, with per-ballot decryption running on
        worker threads (at most ``max_workers`` at a time).

        Cancelling the awaiting task drops every partial contribution.
        """
        key = self._private_key(private_key)

        gate = asyncio.Semaphore(self.max_workers)

        async def one(ballot: Ballot) -> Outcome:
            async with gate:
                return await asyncio.to_thread(self._outcome, ballot, key)

        outcomes = await asyncio.gather(*(one(b) for b in ballots))
        result = self._reduce(outcomes)
        log.info(
            "aggregated %d ballots (%d excluded) tallies=%s",
            len(result.included),
            len(result.excluded),
            list(result.tallies),
        )
        return result

