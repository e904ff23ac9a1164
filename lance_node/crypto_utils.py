# lance_node/crypto_utils.py
from __future__ import annotations

"""
Core cryptographic helpers for lance_node.

This module provides:

- RSA-OAEP key pair generation (2048-bit, e=65537)
- Key import/export as base64 DER (SPKI public, PKCS#8 private), the same
  encoding browser WebCrypto produces with exportKey("spki"/"pkcs8")
- RSA-OAEP (SHA-256, MGF1-SHA-256) encryption/decryption of short UTF-8 strings

Notes
-----
* OAEP padding is randomized: encrypting the same plaintext twice yields
  different ciphertexts. Ballot secrecy depends on this.
* Every failure is raised as ``CryptoError`` (never a bare cryptography or
  binascii exception) so callers only deal with the lance taxonomy.
"""

import base64
import binascii
import re
from typing import Tuple

from cryptography.exceptions import InvalidKey, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .errors import CryptoError

RSA_KEY_BITS = 2048
RSA_PUBLIC_EXPONENT = 65537

_NON_B64 = re.compile(r"[^A-Za-z0-9+/=]")


def _oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


# ---------------------------------------------------------------------------
# Base64 helpers
# ---------------------------------------------------------------------------


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")


def b64d(s: str) -> bytes:
    """
    Decode base64, tolerating whitespace/newlines pasted into key files.
    """
    if not isinstance(s, str):
        raise CryptoError("base64 value must be a string")
    clean = _NON_B64.sub("", s)
    if not clean:
        raise CryptoError("empty base64 value")
    try:
        return base64.b64decode(clean, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoError(f"malformed base64: {e}") from e


# ---------------------------------------------------------------------------
# Key pairs
# ---------------------------------------------------------------------------


def rsa_generate_keypair() -> Tuple[str, str]:
    """
    Generate a new RSA-OAEP key pair.

    Returns
    -------
    (public_b64, private_b64) : Tuple[str, str]
        Base64 SPKI DER public key and base64 PKCS#8 DER private key.
    """
    try:
        sk = rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=RSA_KEY_BITS)
        pub_der = sk.public_key().public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        priv_der = sk.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    except (ValueError, UnsupportedAlgorithm) as e:
        raise CryptoError(f"key generation failed: {e}") from e
    return b64e(pub_der), b64e(priv_der)


def load_public_key(public_b64: str) -> rsa.RSAPublicKey:
    try:
        key = serialization.load_der_public_key(b64d(public_b64))
    except (ValueError, UnsupportedAlgorithm) as e:
        raise CryptoError(f"invalid public key: {e}") from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise CryptoError("public key is not an RSA key")
    return key


def load_private_key(private_b64: str) -> rsa.RSAPrivateKey:
    try:
        key = serialization.load_der_private_key(b64d(private_b64), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CryptoError(f"invalid private key: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CryptoError("private key is not an RSA key")
    return key


def keys_match(public_b64: str, private_b64: str) -> bool:
    """
    True if the private key's public half equals the given public key.
    """
    pub = load_public_key(public_b64)
    sk = load_private_key(private_b64)
    return pub.public_numbers() == sk.public_key().public_numbers()


# ---------------------------------------------------------------------------
# RSA-OAEP encrypt / decrypt
# ---------------------------------------------------------------------------


def encrypt_with_public_key(plaintext: str, public_key) -> str:
    """
    Encrypt a short UTF-8 string with RSA-OAEP.

    Parameters
    ----------
    plaintext : str
        Plaintext, e.g. ``"vote:1"``.
    public_key : str | RSAPublicKey
        Base64 SPKI public key or an already-loaded key object.

    Returns
    -------
    ciphertext_b64 : str
    """
    if not isinstance(plaintext, str):
        raise TypeError("plaintext must be a str")
    key = load_public_key(public_key) if isinstance(public_key, str) else public_key
    try:
        ct = key.encrypt(plaintext.encode("utf-8"), _oaep())
    except ValueError as e:
        # plaintext too long for the modulus
        raise CryptoError(f"encryption failed: {e}") from e
    return b64e(ct)


def decrypt_with_private_key(ciphertext_b64: str, private_key) -> str:
    """
    Decrypt an RSA-OAEP ciphertext produced by encrypt_with_public_key.

    ``private_key`` may be a base64 PKCS#8 string or a loaded key object;
    pass the loaded object when decrypting many ciphertexts.
    """
    key = load_private_key(private_key) if isinstance(private_key, str) else private_key
    ct = b64d(ciphertext_b64)
    try:
        pt = key.decrypt(ct, _oaep())
    except (ValueError, InvalidKey) as e:
        raise CryptoError("decryption failed") from e
    try:
        return pt.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CryptoError("decrypted payload is not UTF-8") from e
