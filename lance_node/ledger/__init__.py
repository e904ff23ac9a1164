# lance_node/ledger/__init__.py
"""
Ledger access: JSON-RPC gateway, external signer, typed contract client.
"""

from .client import LedgerClient
from .gateway import HttpLedgerGateway, LedgerGateway, map_contract_error
from .signer import HttpSigner, Signer

__all__ = [
    "HttpLedgerGateway",
    "HttpSigner",
    "LedgerClient",
    "LedgerGateway",
    "Signer",
    "map_contract_error",
]
