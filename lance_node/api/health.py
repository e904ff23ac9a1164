# lance_node/api/health.py
from __future__ import annotations

"""
Health API.

Routes
------
- GET /healthz
    Heartbeat + static node info. Does not touch the ledger.
"""

import time

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from .. import __version__
from ..service import VotingService
from .disputes import get_service

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    ok: bool = True
    ts: float = Field(..., description="Server timestamp.")
    version: str = __version__
    project_id: int
    contract_id: str
    signer_configured: bool


@router.get("/healthz", response_model=HealthResponse)
def healthz(svc: VotingService = Depends(get_service)) -> HealthResponse:
    s = svc.settings
    return HealthResponse(
        ts=time.time(),
        project_id=s.voting.project_id,
        contract_id=s.ledger.contract_id,
        signer_configured=svc.ledger.signer is not None,
    )
