"""
lance_node/voting_runtime/models.py
-----------------------------------

Domain records shared by the voting runtime.

The ledger owns every Dispute; these are read-only snapshots parsed from the
JSON the gateway returns for ``get_dispute``. Parsing is lenient about the
shapes the Soroban -> JSON conversion produces, and a ballot that fails the
local checks is kept with ``Ballot.malformed`` set instead of failing the
whole snapshot:

    status:  "OPEN" | "Open" | ["Open"]
    ballot:  {"AnonymousVote": {...}} | ["AnonymousVote", {...}] | {...}

Ballot arrays are always indexed by the canonical choice order:

    0 = approve (creator), 1 = reject (counterpart), 2 = abstain
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import ValidationError

NUM_CHOICES = 3
MAX_U128 = (1 << 128) - 1

# Stellar strkey: G... (account) or C... (contract), 56 chars base32
_ADDRESS_RE = re.compile(r"^[GC][A-Z2-7]{55}$")


class Choice(IntEnum):
    APPROVE = 0
    REJECT = 1
    ABSTAIN = 2

    @classmethod
    def parse(cls, raw: Any) -> "Choice":
        if isinstance(raw, Choice):
            return raw
        if raw is None or raw == "":
            raise ValidationError("no vote choice selected")
        if isinstance(raw, bool):
            raise ValidationError(f"invalid vote choice: {raw!r}")
        if isinstance(raw, str) and raw.strip().isdigit():
            raw = int(raw.strip())
        if isinstance(raw, int):
            try:
                return cls(raw)
            except ValueError:
                raise ValidationError(f"invalid vote choice: {raw!r}") from None
        name = str(raw).strip().upper()
        if name in cls.__members__:
            return cls[name]
        raise ValidationError(f"invalid vote choice: {raw!r}")


class DisputeStatus(str, Enum):
    OPEN = "Open"
    CREATOR = "Creator"
    COUNTERPART = "Counterpart"
    ABSTAIN = "Abstain"

    @property
    def is_final(self) -> bool:
        return self is not DisputeStatus.OPEN


def validate_address(address: Any, *, field_name: str = "address") -> str:
    if not isinstance(address, str) or not _ADDRESS_RE.match(address.strip()):
        raise ValidationError(f"malformed {field_name}: {address!r}")
    return address.strip()


def _check_u128(values: Sequence[int], name: str) -> Tuple[int, ...]:
    if len(values) != NUM_CHOICES:
        raise ValidationError(f"{name} must have exactly {NUM_CHOICES} entries")
    out = []
    for v in values:
        if isinstance(v, bool):
            raise ValidationError(f"{name} entries must be integers")
        try:
            iv = int(v)
        except (TypeError, ValueError):
            raise ValidationError(f"{name} entries must be integers") from None
        if not 0 <= iv <= MAX_U128:
            raise ValidationError(f"{name} entry out of u128 range: {iv}")
        out.append(iv)
    return tuple(out)


def _unwrap_enum(raw: Any) -> Any:
    # Soroban enums: ["Variant"] or ["Variant", payload]
    if isinstance(raw, list) and raw and isinstance(raw[0], str):
        return raw[0] if len(raw) == 1 else raw[1]
    return raw


def commitment_text(raw: Any) -> str:
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw).hex()
    if isinstance(raw, list) and all(isinstance(x, int) for x in raw):
        return bytes(raw).hex()
    return str(raw)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnonymousVotingConfig:
    project_id: int
    public_key: str

    def __post_init__(self) -> None:
        if not isinstance(self.public_key, str) or not self.public_key.strip():
            raise ValidationError("voting config has no public key")


@dataclass(frozen=True)
class Ballot:
    """
    One voter's encrypted, weighted submission (ledger: AnonymousVote).

    Ballots read back from the ledger are only as well-formed as the contract
    enforced. Those that fail the local checks are kept with ``malformed``
    set to the reason, so one bad ballot never hides the rest of a dispute.
    """

    address: str
    weight: int
    encrypted_votes: Tuple[str, ...]
    encrypted_seeds: Tuple[str, ...]
    commitments: Tuple[str, ...]
    malformed: Optional[str] = None

    def __post_init__(self) -> None:
        if self.malformed is not None:
            for name in ("encrypted_votes", "encrypted_seeds", "commitments"):
                object.__setattr__(self, name, tuple(getattr(self, name)))
            return
        validate_address(self.address)
        if isinstance(self.weight, bool) or not isinstance(self.weight, int) or self.weight < 1:
            raise ValidationError(f"ballot weight must be an integer >= 1, got {self.weight!r}")
        for name in ("encrypted_votes", "encrypted_seeds", "commitments"):
            values = tuple(getattr(self, name))
            if len(values) != NUM_CHOICES:
                raise ValidationError(f"ballot {name} must have exactly {NUM_CHOICES} entries")
            if not all(isinstance(v, str) and v for v in values):
                raise ValidationError(f"ballot {name} entries must be non-empty strings")
            object.__setattr__(self, name, values)

    def to_ledger(self) -> Dict[str, Any]:
        return {
            "AnonymousVote": {
                "address": self.address,
                "weight": self.weight,
                "encrypted_votes": list(self.encrypted_votes),
                "encrypted_seeds": list(self.encrypted_seeds),
                "commitments": list(self.commitments),
            }
        }

    @classmethod
    def from_ledger(cls, raw: Any) -> "Ballot":
        body = _unwrap_enum(raw)
        if isinstance(body, dict) and "AnonymousVote" in body:
            body = body["AnonymousVote"]
        if not isinstance(body, dict):
            return cls("", 0, (), (), (), malformed="ballot payload is not an object")

        address = str(body.get("address") or "")
        try:
            weight = int(body.get("weight"))
        except (TypeError, ValueError):
            weight = 0
        fields = {}
        for name, conv in (
            ("encrypted_votes", str),
            ("encrypted_seeds", str),
            ("commitments", commitment_text),
        ):
            items = body.get(name)
            fields[name] = tuple(conv(x) for x in items) if isinstance(items, (list, tuple)) else ()

        try:
            return cls(address=address, weight=weight, **fields)
        except ValidationError as e:
            return cls(address=address, weight=weight, malformed=e.message, **fields)


@dataclass(frozen=True)
class Dispute:
    dispute_id: int
    project_id: int
    creator: str
    counterpart: str
    proof: str
    voting_ends_at: int
    status: DisputeStatus = DisputeStatus.OPEN
    winner: Optional[str] = None
    vote_counts: Tuple[int, int, int] = (0, 0, 0)
    ballots: Tuple[Ballot, ...] = ()
    able_to_vote: Tuple[str, ...] = ()
    voter_weights: Dict[str, int] = field(default_factory=dict)
    initial_timestamp: Optional[int] = None
    finish_timestamp: Optional[int] = None

    @property
    def is_finalized(self) -> bool:
        return self.status.is_final

    @property
    def voters(self) -> Tuple[str, ...]:
        return tuple(b.address for b in self.ballots)

    def has_voted(self, address: str) -> bool:
        return any(b.address == address for b in self.ballots)

    def is_registered(self, address: str) -> bool:
        return address in self.able_to_vote

    @classmethod
    def from_ledger(cls, raw: Dict[str, Any]) -> "Dispute":
        if not isinstance(raw, dict):
            raise ValidationError("dispute snapshot is not an object")
        try:
            vote_data = raw.get("vote_data") or {}
            creator = str(raw["creator"])
            counterpart = str(raw["counterpart"])
            winner = raw.get("winner")
            winner = str(_unwrap_enum(winner)) if winner not in (None, [], "") else None
            status = _parse_status(raw.get("status", raw.get("dispute_status", "Open")), winner, creator, counterpart)

            counts = raw.get("vote_counts")
            if counts is None:
                counts = [raw.get("votes_for", 0), raw.get("votes_against", 0), raw.get("votes_abstain", 0)]
            ballots_raw = raw.get("ballots", vote_data.get("votes", []))
            voting_ends_at = raw.get("voting_ends_at", vote_data.get("voting_ends_at"))
            weights = raw.get("voter_weights") or {}

            return cls(
                dispute_id=int(raw["dispute_id"]),
                project_id=int(raw.get("project_id", 0)),
                creator=creator,
                counterpart=counterpart,
                proof=str(raw.get("proof", raw.get("creator_proves", ""))),
                voting_ends_at=int(voting_ends_at),
                status=status,
                winner=winner,
                vote_counts=tuple(int(c) for c in counts),
                ballots=tuple(Ballot.from_ledger(b) for b in ballots_raw),
                able_to_vote=tuple(str(a) for a in raw.get("able_to_vote", [])),
                voter_weights={str(k): int(v) for k, v in weights.items()},
                initial_timestamp=_opt_int(raw.get("initial_timestamp")),
                finish_timestamp=_opt_int(raw.get("finish_timestamp")),
            )
        except ValidationError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"malformed dispute snapshot: {e}") from e


def _opt_int(raw: Any) -> Optional[int]:
    raw = _unwrap_enum(raw)
    if raw in (None, [], ""):
        return None
    return int(raw)


def _parse_status(raw: Any, winner: Optional[str], creator: str, counterpart: str) -> DisputeStatus:
    name = str(_unwrap_enum(raw)).strip().lower()
    for st in DisputeStatus:
        if st.value.lower() == name:
            return st
    if name == "voting":
        return DisputeStatus.OPEN
    # older contract builds: EXECUTED/FINISHED + winner address
    if name in ("executed", "finished"):
        if winner == creator:
            return DisputeStatus.CREATOR
        if winner == counterpart:
            return DisputeStatus.COUNTERPART
        return DisputeStatus.ABSTAIN
    raise ValidationError(f"unknown dispute status: {raw!r}")


@dataclass(frozen=True)
class BallotExclusion:
    address: str
    reason: str


@dataclass(frozen=True)
class TallyResult:
    """Weighted per-choice sums; derived, never stored outside the ledger."""

    tallies: Tuple[int, int, int]
    seeds: Tuple[int, int, int]
    included: Tuple[str, ...] = ()
    excluded: Tuple[BallotExclusion, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "tallies", _check_u128(self.tallies, "tallies"))
        object.__setattr__(self, "seeds", _check_u128(self.seeds, "seeds"))

    def as_strings(self) -> Tuple[List[str], List[str]]:
        # u128 values travel as decimal strings (no float/JS precision loss)
        return [str(t) for t in self.tallies], [str(s) for s in self.seeds]


def check_u128_vector(values: Sequence[int], name: str) -> Tuple[int, ...]:
    return _check_u128(values, name)
