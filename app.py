# app.py
from __future__ import annotations

from typing import Optional
import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from auth import AuthGate
from axeos import HttpDeviceTransport, SimulatedDeviceTransport
from config_store import ConfigStore, JsonDocumentStore
from dashboard_api import ROUTERS, Services
from errors import DashboardError
from field_mappings import MappingStore
from mining_core import HttpMiningCoreTransport, SimulatedMiningCoreTransport
from settings import ServerSettings, load_settings

LOGGER = logging.getLogger(__name__)


def build_services(settings: ServerSettings) -> Services:
    documents = JsonDocumentStore(settings.config_dir)
    config = ConfigStore(documents)

    if settings.transport == "simulated":
        LOGGER.info("Using simulated device and mining core transports")
        devices = SimulatedDeviceTransport()
        mining_core = SimulatedMiningCoreTransport()
    else:
        devices = HttpDeviceTransport(settings.read_timeout, settings.write_timeout)
        mining_core = HttpMiningCoreTransport(settings.read_timeout)

    return Services(
        settings=settings,
        config=config,
        mappings=MappingStore(documents),
        auth=AuthGate(config.get),
        devices=devices,
        mining_core=mining_core,
    )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DashboardError)
    async def dashboard_error(request: Request, exc: DashboardError):
        if exc.status_code >= 500:
            LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = errors[0].get("msg") if errors else "Invalid request"
        return _error(400, f"Invalid request: {detail}")

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")


def _install_spa(app: FastAPI, static_dir: str) -> None:
    root = os.path.realpath(static_dir)
    index = os.path.join(root, "index.html")

    @app.get("/{full_path:path}", include_in_schema=False)
    async def spa(full_path: str):
        if full_path == "api" or full_path.startswith("api/"):
            return _error(404, "API endpoint not found")

        candidate = os.path.realpath(os.path.join(root, full_path))
        if candidate.startswith(root + os.sep) and os.path.isfile(candidate):
            return FileResponse(candidate)
        if os.path.isfile(index):
            return FileResponse(index)
        return _error(404, "Not found")


def create_app(
    settings: Optional[ServerSettings] = None,
    services: Optional[Services] = None,
) -> FastAPI:
    settings = settings or load_settings()
    services = services or build_services(settings)

    app = FastAPI(title="Bitaxe Dashboard")
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _install_error_handlers(app)
    for router in ROUTERS:
        app.include_router(router)

    # registered last so it never shadows an API route
    _install_spa(app, settings.static_dir)
    return app


def main() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    LOGGER.info("Bitaxe dashboard listening on %s:%d", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
