"""Health check endpoints router for monitoring service availability."""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import JSONResponse

from src.provisioner.api.http.deps import get_provisioning_service
from src.provisioner.core.services.provisioning_service import ProvisioningService

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health() -> dict[str, str]:
    """Liveness probe; does not check dependencies."""
    return {"status": "healthy", "service": "provisioner"}


@router.get("/ready", response_model=None)
async def readiness(
    service: ProvisioningService = Depends(get_provisioning_service),
) -> dict[str, Any] | JSONResponse:
    """Readiness probe: the record database must answer, the session cache may degrade."""
    checks: dict[str, dict[str, str]] = {}
    all_healthy = True

    try:
        with service.store.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy"}
    except SQLAlchemyError as e:
        checks["database"] = {"status": "unhealthy", "error": type(e).__name__}
        all_healthy = False

    storage = await service.session_storage()
    checks["session_cache"] = {
        "status": "healthy" if storage.is_available() else "degraded",
        "type": type(storage).__name__,
    }

    body = {"status": "ready" if all_healthy else "not_ready", "checks": checks}
    if not all_healthy:
        return JSONResponse(status_code=503, content=body)
    return body
