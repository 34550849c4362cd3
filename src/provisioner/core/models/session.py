"""Directory API session models."""

import time

from pydantic import BaseModel, Field


class TokenResponse(BaseModel):
    """Credential exchange response from the directory API."""

    access_token: str = Field(min_length=1)
    token_type: str = "Bearer"
    expires_in: int | None = None  # Lifetime in seconds, absent on some tenants


class ApiSession(BaseModel):
    """Authenticated connection data for one directory domain."""

    domain: str = Field(description="Directory domain the session belongs to")
    bearer_token: str = Field(description="Token sent in the Authorization header")
    tenant_id: str = Field(description="Tenant identifier used in org unit paths")
    expires_at: int = Field(description="Expiration timestamp")
    timeout: int = Field(default=30, description="Request timeout in seconds")

    @classmethod
    def create(
        cls,
        domain: str,
        bearer_token: str,
        tenant_id: str,
        lifetime_seconds: int,
        timeout: int = 30,
    ) -> "ApiSession":
        """Create a new session expiring ``lifetime_seconds`` from now."""
        return cls(
            domain=domain,
            bearer_token=bearer_token,
            tenant_id=tenant_id,
            expires_at=int(time.time()) + lifetime_seconds,
            timeout=timeout,
        )

    def is_expired(self) -> bool:
        """Check if session is expired."""
        return time.time() >= self.expires_at

    def ttl_seconds(self) -> int:
        return max(0, self.expires_at - int(time.time()))

    @property
    def token_preview(self) -> str:
        """Truncated token that is safe to log."""
        return f"{self.bearer_token[:6]}..."
