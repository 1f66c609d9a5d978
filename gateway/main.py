"""Device Gateway - FastAPI Application Entry Point."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gateway.config import settings
from gateway.database import init_db
from gateway.services.device_client import DeviceClient
from gateway.services.forwarder import Forwarder
from gateway.services.monitoring import metrics
from gateway.services.probe import ProbeEngine
from gateway.services.registry import DeviceRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the device registry and start background probing."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()

    registry = DeviceRegistry(settings.registry_path, default_port=settings.device_port)
    registry.load()

    client = DeviceClient()
    probe_engine = ProbeEngine(
        registry,
        client,
        candidate_addresses=settings.candidate_addresses,
        device_port=settings.device_port,
        discovery_interval=settings.discovery_interval,
        health_check_multiplier=settings.health_check_multiplier,
        probe_timeout=settings.probe_timeout,
        health_check_timeout=settings.health_check_timeout,
        telemetry=metrics,
    )
    app.state.registry = registry
    app.state.probe_engine = probe_engine
    app.state.forwarder = Forwarder(registry, client, timeout=settings.forward_timeout, telemetry=metrics)

    if settings.auto_discovery:
        probe_engine.start()
    logger.info(
        "%s ready with %d device(s) (%d online)",
        settings.server_name,
        len(registry),
        len(registry.list_online()),
    )

    yield

    await probe_engine.stop()
    await registry.save()
    await client.aclose()


app = FastAPI(
    title="Device Gateway",
    description="Authenticated gateway to devices on a private overlay network",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logger(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    metrics.record_request(request.method, request.url.path, response.status_code, duration_ms)
    return response


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


# --- Register API routers ---
from gateway.api.auth import router as auth_router  # noqa: E402
from gateway.api.admin import router as admin_router  # noqa: E402
from gateway.api.deps import limit_api, screen_request  # noqa: E402
from gateway.api.players import router as players_router  # noqa: E402
from gateway.api.system import router as system_router  # noqa: E402

API_PREFIX = "/api"
# Screening runs before throttling
API_GUARDS = [Depends(screen_request), Depends(limit_api)]

app.include_router(auth_router, prefix=API_PREFIX, dependencies=API_GUARDS)
app.include_router(admin_router, prefix=API_PREFIX, dependencies=API_GUARDS)
app.include_router(players_router, prefix=API_PREFIX, dependencies=API_GUARDS)
app.include_router(system_router)


@app.get("/")
def root():
    """Server info."""
    return {
        "name": settings.server_name,
        "version": "0.1.0",
        "status": "running",
    }
