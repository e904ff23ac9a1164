"""
lance_node/ledger/gateway.py
----------------------------

Transport boundary to the ledger node.

The contract is consumed as opaque entry points. A gateway only knows how to
move four kinds of request, mirroring the Soroban RPC flow:

    simulate(function, args)          read-only, side-effect free
    prepare(function, args, source)   -> unsigned tx (simulated + assembled)
    send(signed_tx)                   -> {"status": "PENDING", "hash": ...}
    get_transaction(hash)             -> {"status": SUCCESS|FAILED|NOT_FOUND, ...}

HttpLedgerGateway speaks JSON-RPC 2.0 over httpx to a node/relay URL.
Contract arguments travel as typed values ``{"type": "u32", "value": 7}``;
u128 values are decimal strings so nothing is rounded through floats.
"""

from __future__ import annotations

import itertools
import logging
import re
from typing import Any, Dict, List, Optional, Protocol

import httpx

from ..errors import AuthorizationError, LedgerError, SimulationError, StateError, TransactionRejected

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Typed contract arguments
# ---------------------------------------------------------------------------


def scval(type_: str, value: Any) -> Dict[str, Any]:
    return {"type": type_, "value": value}


def address_arg(address: str) -> Dict[str, Any]:
    return scval("address", address)


def u32_arg(value: int) -> Dict[str, Any]:
    return scval("u32", int(value))


def u128_vec_arg(values) -> Dict[str, Any]:
    return scval("vec", [scval("u128", str(int(v))) for v in values])


def option_arg(inner: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return scval("option", inner)


# ---------------------------------------------------------------------------
# Contract error mapping
# ---------------------------------------------------------------------------

# numeric codes as declared by the lance-protocol contract
CONTRACT_ERROR_CODES = {
    2: "NotAuthorized",
    5: "DisputeNotFound",
    9: "InvalidStatus",
    13: "InvalidDisputeStatus",
    19: "DisputeAlreadyResolved",
    20: "DisputeNotOpen",
    21: "JudgeNotAllowedToVote",
    22: "JudgeAlreadyVoted",
    23: "InvalidReveal",
    25: "UnauthorizedSigner",
    27: "TallySeedError",
    28: "NoAnonymousVotingConfig",
}

_AUTH_ERRORS = {"NotAuthorized", "UnauthorizedSigner", "JudgeNotAllowedToVote", "WrongVoter", "UnknownMember"}
_STATE_ERRORS = {
    "AlreadyVoted",
    "JudgeAlreadyVoted",
    "DisputeAlreadyResolved",
    "DisputeNotOpen",
    "InvalidDisputeStatus",
    "InvalidStatus",
    "ProposalVotingTime",
    "VoteLimitExceeded",
    "NoAnonymousVotingConfig",
    "DisputeNotFound",
}

_REJECT_ERRORS = {"BadCommitment", "InvalidReveal", "TallySeedError", "VoterWeight"}

_CONTRACT_ERR_RE = re.compile(r"Error\(Contract,\s*#(\d+)\)")


def contract_error_name(error: Dict[str, Any]) -> Optional[str]:
    data = error.get("data")
    if isinstance(data, dict) and data.get("contractError"):
        return str(data["contractError"])
    m = _CONTRACT_ERR_RE.search(str(error.get("message", "")))
    if m:
        return CONTRACT_ERROR_CODES.get(int(m.group(1)), f"Contract#{m.group(1)}")
    return None


def map_contract_error(error: Dict[str, Any], *, simulation: bool = False) -> Exception:
    name = contract_error_name(error)
    message = str(error.get("message") or name or "ledger error")
    detail = {"contract_error": name} if name else {}
    if name in _AUTH_ERRORS:
        return AuthorizationError(message, detail=detail)
    if name in _STATE_ERRORS:
        return StateError(message, detail=detail)
    if name in _REJECT_ERRORS:
        return TransactionRejected(message, detail=detail)
    if simulation:
        return SimulationError(message, detail=detail)
    return TransactionRejected(message, detail=detail)


# ---------------------------------------------------------------------------
# Gateway protocol + HTTP implementation
# ---------------------------------------------------------------------------


class LedgerGateway(Protocol):
    async def simulate(self, function: str, args: List[Dict[str, Any]]) -> Any: ...

    async def prepare(self, function: str, args: List[Dict[str, Any]], source: str) -> str: ...

    async def send(self, signed_tx: str) -> Dict[str, Any]: ...

    async def get_transaction(self, tx_hash: str) -> Dict[str, Any]: ...


class HttpLedgerGateway:
    def __init__(
        self,
        rpc_url: str,
        contract_id: str,
        *,
        network_passphrase: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.contract_id = contract_id
        self.network_passphrase = network_passphrase
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, params: Dict[str, Any], *, simulation: bool = False) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            r = await self._client.post(self.rpc_url, json=body)
            r.raise_for_status()
            data = r.json()
        except httpx.HTTPError as e:
            log.debug("ledger rpc %s failed: %s", method, e)
            raise LedgerError(f"ledger rpc {method} failed: {e}") from e
        except ValueError as e:
            raise LedgerError(f"ledger rpc {method} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise LedgerError(f"ledger rpc {method} returned a non-object")
        if data.get("error"):
            err = data["error"] if isinstance(data["error"], dict) else {"message": str(data["error"])}
            raise map_contract_error(err, simulation=simulation)
        return data.get("result")

    async def simulate(self, function: str, args: List[Dict[str, Any]]) -> Any:
        result = await self._call(
            "simulateContractCall",
            {"contractId": self.contract_id, "function": function, "args": args},
            simulation=True,
        )
        if not isinstance(result, dict) or "retval" not in result:
            raise SimulationError(f"simulation of {function} returned no value")
        return result["retval"]

    async def prepare(self, function: str, args: List[Dict[str, Any]], source: str) -> str:
        result = await self._call(
            "prepareContractCall",
            {
                "contractId": self.contract_id,
                "function": function,
                "args": args,
                "source": source,
                "networkPassphrase": self.network_passphrase,
            },
            simulation=True,
        )
        if not isinstance(result, dict) or not result.get("transaction"):
            raise SimulationError(f"prepare of {function} returned no transaction")
        return str(result["transaction"])

    async def send(self, signed_tx: str) -> Dict[str, Any]:
        result = await self._call("sendTransaction", {"transaction": signed_tx})
        return result if isinstance(result, dict) else {}

    async def get_transaction(self, tx_hash: str) -> Dict[str, Any]:
        result = await self._call("getTransaction", {"hash": tx_hash})
        return result if isinstance(result, dict) else {"status": "NOT_FOUND"}
