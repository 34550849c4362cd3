"""Endpoints for the "please wait" page of a suspended login."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.responses import JSONResponse

from src.provisioner.api.http.deps import get_provisioning_service
from src.provisioner.core.models.outcome import Suspended
from src.provisioner.core.services.provisioning_service import (
    ProvisioningService,
    refresh_seconds,
)
from src.provisioner.core.services.store.provisioning_store import utc_now

router = APIRouter(prefix="/provisioning", tags=["provisioning"])


@router.get("/delay", status_code=202)
async def delay(
    state_id: str = Query(..., min_length=1),
    service: ProvisioningService = Depends(get_provisioning_service),
) -> JSONResponse:
    """Describe a suspended login and when the browser should come back.

    A ``Refresh`` header points the browser at the restart URL once the
    delay has passed.
    """
    request = await service.pending(state_id)
    if request is None:
        raise HTTPException(status_code=404, detail="Unknown or expired login state")
    if request.delay_until is None or request.delay_reason is None:
        raise HTTPException(status_code=400, detail="Login state is not delayed")

    refresh = refresh_seconds(request.delay_until, utc_now())
    headers = {}
    if refresh is not None:
        headers["Refresh"] = (
            f"{refresh}; url={request.restart_url}" if request.restart_url else str(refresh)
        )

    content: dict[str, Any] = {
        "until": request.delay_until.isoformat(),
        "reason": request.delay_reason.value,
        "restart_url": request.restart_url,
        "refresh": refresh,
    }
    return JSONResponse(status_code=202, content=content, headers=headers)


@router.post("/resume", response_model=None)
async def resume(
    state_id: str = Query(..., min_length=1),
    service: ProvisioningService = Depends(get_provisioning_service),
) -> dict[str, str] | JSONResponse:
    """Re-run provisioning for a suspended login."""
    result = await service.resume(state_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Unknown or expired login state")

    if isinstance(result, Suspended):
        return JSONResponse(
            status_code=202,
            content={
                "status": "delayed",
                "state_id": result.token,
                "until": result.delay_until.isoformat(),
                "reason": result.reason.value,
            },
        )
    return {"status": "proceed"}
