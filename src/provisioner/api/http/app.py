"""FastAPI application factory and setup."""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from loguru import logger
from starlette.responses import JSONResponse

from src.provisioner.api.http.routers.health import router as health_router
from src.provisioner.api.http.routers.provisioning import router as provisioning_router
from src.provisioner.api.utils.app_startup import configure_logging
from src.provisioner.core.errors import (
    AuthenticationError,
    ProtocolError,
    ProvisioningError,
    RemoteApiError,
    TransportError,
)
from src.provisioner.core.services.directory.session import reset_session_registry
from src.provisioner.core.services.provisioning_service import ProvisioningService
from src.provisioner.core.services.store.provisioning_store import close_all
from src.provisioner.runtime.context import get_config

configure_logging()

# Failures on the directory side rather than in our own setup
_UPSTREAM_ERRORS = (AuthenticationError, TransportError, RemoteApiError, ProtocolError)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup(app)
    try:
        yield
    finally:
        await shutdown()


async def startup(app: FastAPI) -> None:
    config = get_config()
    logger.info(
        "Starting provisioner for domain {} ({})",
        config.directory.domain or "<unset>",
        config.app.environment,
    )
    service = ProvisioningService()
    # Unknown or nested filter names fail here rather than on the first login
    logger.info("Provisioning pipeline: {!r}", service.pipeline())
    app.state.provisioning_service = service


async def shutdown() -> None:
    reset_session_registry()
    close_all()
    logger.info("Provisioner stopped")


app = FastAPI(
    title="Directory Provisioner",
    lifespan=lifespan,
    docs_url=None if get_config().app.environment == "production" else "/docs",
    redoc_url=None,
)

__all__ = ["app", "startup", "shutdown"]


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    start = time.perf_counter()

    with logger.contextualize(request_id=request_id):
        logger.info("request.start {} {}", request.method, request.url.path)
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "request.end {} {} -> {} ({:.1f} ms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        response.headers.setdefault("X-Request-ID", request_id)
        return response


@app.exception_handler(ProvisioningError)
async def provisioning_error_handler(request: Request, exc: ProvisioningError):
    status_code = 502 if isinstance(exc, _UPSTREAM_ERRORS) else 500
    logger.bind(error_type=type(exc).__name__).error("Provisioning failed: {}", exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": "Provisioning failed", "retryable": exc.retryable},
    )


app.include_router(health_router)
app.include_router(provisioning_router)
