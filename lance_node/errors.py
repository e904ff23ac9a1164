# lance_node/errors.py
from __future__ import annotations

"""
Error taxonomy for the anonymous dispute voting core.

Every failure surfaced by ``lance_node`` derives from :class:`LanceError` so
callers (API layer, CLI) can map a whole family at once:

- ValidationError     malformed input (address, empty text, no choice, shape)
- CryptoError         key generation/import/export, encrypt/decrypt failures
    - InvalidKeyFile  key pair record missing a key half or metadata
    - DecryptionError a single ballot could not be decrypted/decoded
- OracleError         ledger commitment oracle failures
    - CommitmentRequestError
- LedgerError         simulation failure, rejected tx, confirmation timeout
    - SimulationError
    - TransactionRejected
    - ConfirmationTimeout
- AuthorizationError  non-maintainer setup/finalize, unregistered voter
- StateError          double vote, closed window, premature/re-finalize

Only ConfirmationTimeout is ever retried, and only inside the bounded polling
window of the ledger client.
"""

from typing import Optional


class LanceError(Exception):
    """Base class for every error raised by lance_node."""

    code = "lance_error"

    def __init__(self, message: str = "", *, detail: Optional[dict] = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.detail = dict(detail or {})

    def to_dict(self) -> dict:
        out = {"error": self.code, "message": self.message}
        if self.detail:
            out["detail"] = self.detail
        return out


class ValidationError(LanceError):
    code = "validation_error"


class CryptoError(LanceError):
    code = "crypto_error"


class InvalidKeyFile(CryptoError):
    code = "invalid_key_file"


class DecryptionError(CryptoError):
    code = "decryption_error"


class OracleError(LanceError):
    code = "oracle_error"


class CommitmentRequestError(OracleError):
    code = "commitment_request_error"


class LedgerError(LanceError):
    code = "ledger_error"


class SimulationError(LedgerError):
    code = "simulation_error"


class TransactionRejected(LedgerError):
    code = "transaction_rejected"


class ConfirmationTimeout(LedgerError):
    code = "confirmation_timeout"


class AuthorizationError(LanceError):
    code = "authorization_error"


class StateError(LanceError):
    code = "state_error"
