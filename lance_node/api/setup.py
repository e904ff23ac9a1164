# lance_node/api/setup.py
from __future__ import annotations

"""
Anonymous voting setup API (maintainer only).

Routes
------
- POST /voting/setup   {maintainer, project_id?, dispute_id?}
    Generates a ballot key pair, publishes the public key on the ledger and
    writes the key file under the node's keys directory. The response names
    the key file; the private key itself is never returned.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..errors import LanceError
from ..service import VotingService
from .disputes import _raise_http, get_service

router = APIRouter(prefix="/voting", tags=["voting"])


class SetupBody(BaseModel):
    maintainer: str
    project_id: Optional[int] = None
    dispute_id: Optional[int] = None


@router.post("/setup")
async def setup(payload: SetupBody, svc: VotingService = Depends(get_service)):
    try:
        kp, path = await svc.setup_voting(payload.maintainer, payload.project_id, payload.dispute_id)
    except LanceError as e:
        _raise_http(e)
    return {
        "ok": True,
        "project_id": kp.project_id,
        "dispute_id": kp.dispute_id,
        "public_key": kp.public_key,
        "keyfile": str(path),
    }
