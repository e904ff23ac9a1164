from __future__ import annotations

"""
Dispute voting API.

Routes
------
- GET  /disputes
- GET  /disputes/{dispute_id}
- POST /disputes/{dispute_id}/register   {voter}
- POST /disputes/{dispute_id}/vote       {voter, choice}
- POST /disputes/{dispute_id}/tally      {keyfile}
- POST /disputes/{dispute_id}/finalize   {maintainer, tallies, seeds}

``tally`` takes a path to a key file on this machine. The private key is
read locally and never travels over HTTP.

u128 values (tallies, seeds) are returned as decimal strings and accepted
as strings or integers.
"""

from typing import Any, Dict, List, NoReturn, Union

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from ..errors import (
    AuthorizationError,
    CryptoError,
    LanceError,
    LedgerError,
    OracleError,
    StateError,
    ValidationError,
)
from ..service import VotingService

router = APIRouter(prefix="/disputes", tags=["disputes"])

U128 = Union[int, str]


def get_service(request: Request) -> VotingService:
    svc = getattr(request.app.state, "service", None)
    if svc is None:
        raise HTTPException(status_code=503, detail="service_not_ready")
    return svc


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

_STATUS_BY_ERROR = [
    (ValidationError, 400),
    (AuthorizationError, 403),
    (StateError, 409),
    (CryptoError, 422),
    (OracleError, 502),
    (LedgerError, 502),
]


def status_for(err: LanceError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(err, cls):
            return status
    return 500


def _raise_http(err: LanceError) -> NoReturn:
    raise HTTPException(status_code=status_for(err), detail=err.to_dict()) from err


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class RegisterBody(BaseModel):
    voter: str


class VoteBody(BaseModel):
    voter: str
    choice: Union[int, str]


class TallyBody(BaseModel):
    keyfile: str


class FinalizeBody(BaseModel):
    maintainer: str
    tallies: List[U128] = Field(..., description="Three u128 values: approve, reject, abstain.")
    seeds: List[U128] = Field(..., description="Three u128 aggregated seeds.")


def _ints(values: List[U128], name: str) -> List[int]:
    out = []
    for v in values:
        try:
            out.append(int(v))
        except (TypeError, ValueError):
            _raise_http(ValidationError(f"{name} entries must be integers"))
    return out


def _tally_payload(dispute_id: int, result) -> Dict[str, Any]:
    tallies, seeds = result.as_strings()
    return {
        "ok": True,
        "dispute_id": dispute_id,
        "tallies": tallies,
        "seeds": seeds,
        "included": list(result.included),
        "excluded": [{"address": x.address, "reason": x.reason} for x in result.excluded],
    }


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("")
async def list_disputes(svc: VotingService = Depends(get_service)):
    try:
        disputes = await svc.list_disputes()
    except LanceError as e:
        _raise_http(e)
    return {"ok": True, "disputes": disputes}


@router.get("/{dispute_id}")
async def get_dispute(dispute_id: int, svc: VotingService = Depends(get_service)):
    try:
        dispute = await svc.get_dispute(dispute_id)
    except LanceError as e:
        _raise_http(e)
    return {"ok": True, "dispute": dispute}


@router.post("/{dispute_id}/register")
async def register(dispute_id: int, payload: RegisterBody, svc: VotingService = Depends(get_service)):
    try:
        dispute = await svc.ballots.register(payload.voter, dispute_id)
        body = svc.describe(dispute)
    except LanceError as e:
        _raise_http(e)
    return {"ok": True, "dispute": body}


@router.post("/{dispute_id}/vote")
async def vote(dispute_id: int, payload: VoteBody, svc: VotingService = Depends(get_service)):
    try:
        ballot = await svc.ballots.cast(payload.voter, dispute_id, payload.choice)
    except LanceError as e:
        _raise_http(e)
    # ciphertexts and commitments only; the choice is never echoed back
    return {
        "ok": True,
        "dispute_id": dispute_id,
        "voter": ballot.address,
        "weight": ballot.weight,
        "commitments": list(ballot.commitments),
    }


@router.post("/{dispute_id}/tally")
async def tally(dispute_id: int, payload: TallyBody, svc: VotingService = Depends(get_service)):
    try:
        result = await svc.tally(dispute_id, payload.keyfile)
    except LanceError as e:
        _raise_http(e)
    return _tally_payload(dispute_id, result)


@router.post("/{dispute_id}/finalize")
async def finalize(dispute_id: int, payload: FinalizeBody, svc: VotingService = Depends(get_service)):
    tallies = _ints(payload.tallies, "tallies")
    seeds = _ints(payload.seeds, "seeds")
    try:
        dispute = await svc.proofs.finalize(payload.maintainer, dispute_id, tallies, seeds)
        body = svc.describe(dispute)
    except LanceError as e:
        _raise_http(e)
    return {"ok": True, "dispute": body}
