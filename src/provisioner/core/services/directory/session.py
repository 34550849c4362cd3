"""Directory API session acquisition and caching.

One ``ApiSession`` is kept per directory domain. Lookups go to the live
in-memory session first, then to the secondary ``SessionStorage`` (so a
restarted process can reuse a token), and only then authenticate. Concurrent
first use of a domain is single-flight: callers wait on a per-domain lock and
share the session the first caller obtained.
"""

from __future__ import annotations

import asyncio

import httpx
from loguru import logger
from pydantic import ValidationError

from src.provisioner.core.errors import AuthenticationError, ConfigurationError
from src.provisioner.core.models.session import ApiSession, TokenResponse
from src.provisioner.core.services.directory.transport import (
    open_http_client,
    send,
    substitute,
)
from src.provisioner.core.storage.session_storage import (
    SessionStorage,
    get_session_storage,
)
from src.provisioner.runtime.config.config_data import DirectoryConfig

SESSION_KEY_PREFIX = "directory:session:"


def session_key(domain: str) -> str:
    return f"{SESSION_KEY_PREFIX}{domain.lower()}"


def _validate(config: DirectoryConfig) -> None:
    missing = [
        name for name in ("domain", "username", "password") if not getattr(config, name)
    ]
    if missing:
        raise ConfigurationError(
            f"Directory configuration is missing: {', '.join(missing)}"
        )


async def authenticate(
    config: DirectoryConfig, transport: httpx.AsyncBaseTransport | None = None
) -> ApiSession:
    """Exchange the admin credentials for a bearer token and look up the tenant."""
    _validate(config)

    async with open_http_client(config, transport) as http:
        response = await send(
            http,
            "POST",
            substitute(config.auth_path, config.domain),
            json={
                "username": config.admin_login,
                "password": config.password,
                "domain": config.domain,
                "source": config.source,
            },
        )
        if not response.is_success:
            raise AuthenticationError(
                f"Credential exchange for {config.admin_login} failed with status "
                f"{response.status_code}: {response.text}"
            )
        try:
            token = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise AuthenticationError(
                f"Credential exchange for {config.admin_login} returned no access token"
            ) from e

        headers = {"Authorization": f"Bearer {token.access_token}"}
        response = await send(
            http, "GET", substitute(config.tenant_path, config.domain), headers=headers
        )
        if not response.is_success:
            raise AuthenticationError(
                f"Tenant lookup for {config.domain} failed with status "
                f"{response.status_code}: {response.text}"
            )
        try:
            tenant_id = response.json().get("tenantId")
        except (ValueError, AttributeError) as e:
            raise AuthenticationError(
                f"Tenant lookup for {config.domain} returned an unreadable response"
            ) from e
        if not tenant_id:
            raise AuthenticationError(
                f"Tenant lookup for {config.domain} returned no tenantId"
            )

    session = ApiSession.create(
        domain=config.domain,
        bearer_token=token.access_token,
        tenant_id=str(tenant_id),
        lifetime_seconds=token.expires_in or config.session_lifetime,
        timeout=config.timeout,
    )
    logger.info(
        "Authenticated to directory domain {} (token {}, tenant {})",
        session.domain,
        session.token_preview,
        session.tenant_id,
    )
    return session


class DirectorySessionRegistry:
    """Keyed registry of live directory sessions, one per domain."""

    def __init__(
        self,
        storage: SessionStorage | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._sessions: dict[str, ApiSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._storage = storage
        self.transport = transport

    async def _get_storage(self) -> SessionStorage:
        if self._storage is None:
            self._storage = await get_session_storage()
        return self._storage

    def _live(self, domain: str) -> ApiSession | None:
        session = self._sessions.get(domain.lower())
        if session is not None and not session.is_expired():
            return session
        return None

    async def acquire(self, config: DirectoryConfig) -> ApiSession:
        """Return a non-expired session for ``config.domain``, authenticating if needed."""
        _validate(config)
        domain = config.domain.lower()

        session = self._live(domain)
        if session is not None:
            return session

        if domain not in self._locks:
            self._locks[domain] = asyncio.Lock()
        async with self._locks[domain]:
            # Another caller may have finished while we waited
            session = self._live(domain)
            if session is not None:
                return session

            session = await self._load_cached(domain)
            if session is None:
                session = await authenticate(config, self.transport)
                await self._store_cached(session)

            self._sessions[domain] = session
            return session

    async def _load_cached(self, domain: str) -> ApiSession | None:
        try:
            storage = await self._get_storage()
            session = await storage.get(session_key(domain), ApiSession)
        except RuntimeError as e:
            logger.warning("Session cache read failed for {}: {}", domain, e)
            return None

        if session is None:
            return None
        if session.is_expired():
            logger.debug("Cached directory session for {} has expired", domain)
            return None

        logger.debug(
            "Reusing cached directory session for {} (token {})",
            domain,
            session.token_preview,
        )
        return session

    async def _store_cached(self, session: ApiSession) -> None:
        try:
            storage = await self._get_storage()
            await storage.set(session_key(session.domain), session, session.ttl_seconds())
        except RuntimeError as e:
            logger.warning("Unable to cache directory session for {}: {}", session.domain, e)

    async def invalidate(self, domain: str) -> None:
        """Drop the session for ``domain`` from memory and from the secondary cache."""
        self._sessions.pop(domain.lower(), None)
        try:
            storage = await self._get_storage()
            await storage.delete(session_key(domain))
        except RuntimeError as e:
            logger.warning("Unable to remove cached directory session for {}: {}", domain, e)

    def clear(self) -> None:
        self._sessions.clear()
        self._locks.clear()


_registry: DirectorySessionRegistry | None = None


def get_session_registry() -> DirectorySessionRegistry:
    """Process-wide session registry, created on first use."""
    global _registry
    if _registry is None:
        _registry = DirectorySessionRegistry()
    return _registry


def reset_session_registry() -> None:
    """Tear down the process-wide registry (shutdown and tests)."""
    global _registry
    if _registry is not None:
        _registry.clear()
    _registry = None
