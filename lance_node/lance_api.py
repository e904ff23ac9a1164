from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import disputes, health, setup
from .logging_setup import configure_logging
from .service import VotingService
from .settings import Settings, get_settings

log = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, service: Optional[VotingService] = None) -> FastAPI:
    settings = settings or (service.settings if service is not None else get_settings())
    configure_logging(settings.logging)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if service is not None:
            # injected service: the caller closes it
            app.state.service = service
            yield
            return

        svc = VotingService.from_settings(settings)
        app.state.service = svc
        log.info(
            "lance-node API up: project=%s contract=%s",
            settings.voting.project_id,
            settings.ledger.contract_id or "<unset>",
        )
        try:
            yield
        finally:
            await svc.aclose()
            log.info("lance-node API stopped")

    app = FastAPI(title="Lance Node API", lifespan=lifespan)
    if service is not None:
        app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(disputes.router)
    app.include_router(setup.router)
    return app
