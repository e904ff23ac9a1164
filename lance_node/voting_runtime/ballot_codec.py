"""
lance_node/voting_runtime/ballot_codec.py
-----------------------------------------

Plaintext encoding + encryption of a ballot's six values.

Each of the three choice slots carries a vote value and a blinding seed:

    vote vector  [1,0,0] approve | [0,1,0] reject | [0,0,1] abstain
    seed vector  three independent random integers

Every value is tagged before encryption ("vote:1", "seed:8812...") so a
decrypted seed can never be read back as a vote or vice versa. The tag is
part of the wire contract with the tally side; changing it orphans every
ballot already cast.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .. import crypto_utils
from ..errors import CryptoError, DecryptionError, ValidationError
from .models import MAX_U128, NUM_CHOICES, Choice

VOTE_TAG = "vote"
SEED_TAG = "seed"
VALID_TAGS = {VOTE_TAG, SEED_TAG}

DEFAULT_SEED_BITS = 64

_DIGITS = re.compile(r"[0-9]+")


def encode_choice(tag: str, value: int) -> str:
    if tag not in VALID_TAGS:
        raise ValidationError(f"unknown plaintext tag: {tag!r}")
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_U128:
        raise ValidationError(f"{tag} value must be a u128 integer, got {value!r}")
    return f"{tag}:{value}"


def decode_tagged(text: str, expected_tag: str) -> int:
    """
    Parse ``"<tag>:<integer>"`` and check the tag matches the slot.
    """
    tag, sep, body = text.partition(":")
    if not sep:
        raise DecryptionError("plaintext has no tag separator")
    if tag != expected_tag:
        raise DecryptionError(f"expected {expected_tag!r} tag, found {tag!r}")
    body = body.strip()
    if not _DIGITS.fullmatch(body):
        raise DecryptionError(f"{expected_tag} value is not a non-negative integer")
    value = int(body)
    if value > MAX_U128:
        raise DecryptionError(f"{expected_tag} value exceeds u128")
    return value


def vote_vector(choice) -> Tuple[int, int, int]:
    c = Choice.parse(choice)
    out = [0] * NUM_CHOICES
    out[int(c)] = 1
    return tuple(out)


def generate_seeds(
    n: int = NUM_CHOICES,
    *,
    bits: int = DEFAULT_SEED_BITS,
    randbits: Callable[[int], int] = secrets.randbits,
) -> Tuple[int, ...]:
    return tuple(randbits(bits) for _ in range(n))


@dataclass(frozen=True)
class EncodedBallot:
    """
    Plaintext vectors (needed once, for the commitment request) + ciphertexts.

    The plaintext half must not be persisted or logged.
    """

    votes: Tuple[int, int, int]
    seeds: Tuple[int, int, int]
    encrypted_votes: Tuple[str, str, str]
    encrypted_seeds: Tuple[str, str, str]

    def __repr__(self) -> str:
        return "EncodedBallot(<sealed>)"


class VoteEncoder:
    def __init__(self, *, seed_bits: int = DEFAULT_SEED_BITS, randbits: Optional[Callable[[int], int]] = None) -> None:
        self.seed_bits = int(seed_bits)
        self._randbits = randbits or secrets.randbits

    def encrypt(self, tagged_plaintext: str, public_key) -> str:
        return crypto_utils.encrypt_with_public_key(tagged_plaintext, public_key)

    def encrypt_vector(self, tag: str, values: Sequence[int], public_key) -> Tuple[str, ...]:
        key = crypto_utils.load_public_key(public_key) if isinstance(public_key, str) else public_key
        return tuple(self.encrypt(encode_choice(tag, int(v)), key) for v in values)

    def encode_ballot(self, choice, public_key, *, seeds: Optional[Sequence[int]] = None) -> EncodedBallot:
        votes = vote_vector(choice)
        if seeds is None:
            seeds = generate_seeds(bits=self.seed_bits, randbits=self._randbits)
        seeds = tuple(int(s) for s in seeds)
        if len(seeds) != NUM_CHOICES:
            raise ValidationError(f"exactly {NUM_CHOICES} seeds are required")

        key = crypto_utils.load_public_key(public_key) if isinstance(public_key, str) else public_key
        return EncodedBallot(
            votes=votes,
            seeds=seeds,
            encrypted_votes=self.encrypt_vector(VOTE_TAG, votes, key),
            encrypted_seeds=self.encrypt_vector(SEED_TAG, seeds, key),
        )


def decrypt_vector(ciphertexts: Sequence[str], tag: str, private_key) -> List[int]:
    out = []
    for i, ct in enumerate(ciphertexts):
        try:
            text = crypto_utils.decrypt_with_private_key(ct, private_key)
        except CryptoError as e:
            raise DecryptionError(f"{tag}[{i}]: {e.message}") from e
        try:
            out.append(decode_tagged(text, tag))
        except DecryptionError as e:
            raise DecryptionError(f"{tag}[{i}]: {e.message}") from e
    return out
