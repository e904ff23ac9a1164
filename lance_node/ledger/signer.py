"""
lance_node/ledger/signer.py
---------------------------

Transaction signing is always external (wallet / signing relay). This node
never holds account keys; it hands the prepared transaction over and gets a
signed one back.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from ..errors import AuthorizationError, LedgerError

log = logging.getLogger(__name__)


class Signer(Protocol):
    async def sign(self, unsigned_tx: str, *, address: str, network_passphrase: str) -> str: ...


class HttpSigner:
    """
    POST {"transaction", "address", "networkPassphrase"} -> {"signedTransaction"}

    A 401/403 from the signer means the wallet refused to sign for that
    address.
    """

    def __init__(self, url: str, *, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def sign(self, unsigned_tx: str, *, address: str, network_passphrase: str) -> str:
        payload = {"transaction": unsigned_tx, "address": address, "networkPassphrase": network_passphrase}
        try:
            r = await self._client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            raise LedgerError(f"signer unreachable: {e}") from e

        if r.status_code in (401, 403):
            raise AuthorizationError(f"signer refused to sign for {address}")
        try:
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise LedgerError(f"signer failed: {e}") from e

        signed = data.get("signedTransaction") if isinstance(data, dict) else None
        if not signed:
            raise LedgerError("signer returned no signed transaction")
        return str(signed)
