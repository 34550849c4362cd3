"""FastAPI dependency implementations."""

from fastapi import Request

from src.provisioner.core.services.provisioning_service import ProvisioningService


def get_provisioning_service(request: Request) -> ProvisioningService:
    """Get the provisioning service created at startup."""
    return request.app.state.provisioning_service
