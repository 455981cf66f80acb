"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from perspective_service import __version__
from perspective_service.api.routes import SERVICE_NAME, router
from perspective_service.config import Settings
from perspective_service.logging_setup import init_logging
from perspective_service.services import CorrectionService, build_sweeper, worker_status

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    service: CorrectionService | None = None,
    run_sweeper: bool = True,
) -> FastAPI:
    """Build the HTTP app around one shared ``CorrectionService``."""

    resolved_settings = settings or (service.settings if service else Settings.from_env())
    correction_service = service or CorrectionService(settings=resolved_settings)
    sweeper = build_sweeper(resolved_settings, correction_service.supervisor)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        init_logging(resolved_settings.server.log_level)
        correction_service.ensure_directories()
        worker = worker_status(resolved_settings)
        logger.info("Worker executable: %s exists=%s", worker.executable, worker.exists)
        if run_sweeper:
            sweeper.start()
        try:
            yield
        finally:
            correction_service.supervisor.shutdown()
            sweeper.stop()

    app = FastAPI(title=SERVICE_NAME, version=__version__, lifespan=lifespan)
    app.state.service = correction_service
    app.state.sweeper = sweeper
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(resolved_settings.server.cors_origins),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Origin",
            "X-Requested-With",
            "Content-Type",
            "Accept",
            "Authorization",
            "X-API-Key",
        ],
    )
    app.include_router(router)
    return app
