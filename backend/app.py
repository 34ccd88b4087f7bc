"""
AssetChain Backend FastAPI Application

Served by:

    uvicorn backend.app:app --port 3001

Startup (lifespan):

* Configures logging.
* Loads AppConfig and builds the ledger gateway. A missing or malformed
  signing key or package id aborts startup with ConfigError.
* Starts the sensor scheduler, which recovers persisted jobs.

Shutdown cancels every job runner and in-flight tick; persisted jobs are
kept for the next start.

Error mapping: every AssetChainError becomes a JSON body
``{success: false, error, message, retryable}`` with the status code of its
kind. Request-shape errors are reported as invalid_parameter (400).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from assetchain import __version__
from assetchain.config import AppConfig, load_config
from assetchain.errors import AssetChainError, InvalidParameter
from backend import aircraft_surface, building_surface, healthz, part_surface, sensor_surface, telemetry_surface
from backend.services import Services, build_services

LOGGER = logging.getLogger("assetchain.backend.app")


def _configure_logging() -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )


def create_app(services: Optional[Services] = None, config: Optional[AppConfig] = None) -> FastAPI:
    """
    Build the API application.

    Passing ``services`` skips production wiring (tests hand in a container
    around a fake gateway); the scheduler is still started and stopped by
    the lifespan.
    """
    if config is None:
        config = services.config if services is not None else load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        _configure_logging()
        current = services if services is not None else build_services(config)
        app.state.services = current
        await current.scheduler.start()
        LOGGER.info("AssetChain backend started (package=%s)", config.package_id or "-")
        try:
            yield
        finally:
            await current.scheduler.stop()
            LOGGER.info("AssetChain backend stopped")

    app = FastAPI(
        title="AssetChain Backend",
        version=__version__,
        description="Asset registry and live telemetry on the Sui ledger.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.allowed_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AssetChainError)
    async def _asset_chain_error(_request: Request, exc: AssetChainError) -> JSONResponse:
        if exc.status_code >= 500:
            LOGGER.error("%s: %s", exc.kind, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = [
            f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
            for err in exc.errors()
        ]
        error = InvalidParameter("; ".join(problems) or "Invalid request")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    app.include_router(healthz.router)
    app.include_router(aircraft_surface.router)
    app.include_router(part_surface.router)
    app.include_router(building_surface.router)
    app.include_router(sensor_surface.router)
    app.include_router(telemetry_surface.router)
    return app


app = create_app()
