"""Entry point used by the identity-provider integration.

``authenticate`` runs the configured provisioning pipeline for one login.
When the pipeline suspends, the login request is stored and the caller gets
a state token to hand to the waiting page; ``resume`` picks it up again once
the browser comes back.
"""

from __future__ import annotations

from datetime import datetime

import httpx
from loguru import logger

from src.provisioner.core.models.identity import LoginRequest
from src.provisioner.core.models.outcome import PROCEED, LoginResult, Suspend, Suspended
from src.provisioner.core.services.continuation import (
    CONTINUATION_GRACE_SECONDS,
    ContinuationService,
)
from src.provisioner.core.services.directory.client import DirectoryClient
from src.provisioner.core.services.directory.session import DirectorySessionRegistry
from src.provisioner.core.services.filters.base import FilterContext
from src.provisioner.core.services.filters.chain import Pipeline, build_pipeline
from src.provisioner.core.services.store.provisioning_store import (
    ProvisioningStore,
    get_provisioning_store,
)
from src.provisioner.core.storage.session_storage import (
    SessionStorage,
    get_session_storage,
)
from src.provisioner.runtime.config.config_data import ConfigData
from src.provisioner.runtime.context import get_config

# Extra seconds the waiting page waits past the delay before reloading.
REFRESH_MARGIN_SECONDS = 5


def refresh_seconds(delay_until: datetime, now: datetime) -> int | None:
    """Seconds until the waiting page should reload, or None when overdue."""
    seconds = int((delay_until - now).total_seconds()) + REFRESH_MARGIN_SECONDS
    if seconds < 0:
        return None
    return seconds


class ProvisioningService:
    """Runs provisioning for logins and resumes suspended ones.

    Every collaborator is optional; by default the process-wide registries
    and the active configuration are used, looked up afresh on each call.
    """

    def __init__(
        self,
        config: ConfigData | None = None,
        *,
        store: ProvisioningStore | None = None,
        storage: SessionStorage | None = None,
        registry: DirectorySessionRegistry | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config
        self._store = store
        self._storage = storage
        self._registry = registry
        self._transport = transport

    @property
    def config(self) -> ConfigData:
        return self._config or get_config()

    @property
    def store(self) -> ProvisioningStore:
        return self._store or get_provisioning_store(self.config)

    async def session_storage(self) -> SessionStorage:
        return self._storage or await get_session_storage()

    async def continuations(self) -> ContinuationService:
        return ContinuationService(await self.session_storage())

    def pipeline(self) -> Pipeline:
        config = self.config
        client = DirectoryClient(
            config.directory, registry=self._registry, transport=self._transport
        )
        return build_pipeline(FilterContext.build(config, client, self.store))

    async def authenticate(self, request: LoginRequest) -> LoginResult:
        """Provision the identity behind ``request``.

        Returns:
            ``PROCEED`` when the login may complete, or ``Suspended`` with the
            state token of the stored request

        Raises:
            ProvisioningError: the login must fail
        """
        outcome = await self.pipeline().run(request)
        if not isinstance(outcome, Suspend):
            return PROCEED

        ttl = self.config.provisioning.delay + CONTINUATION_GRACE_SECONDS
        token = await (await self.continuations()).save(outcome.request, ttl)
        logger.info(
            "Login suspended until {} ({})",
            outcome.delay_until.isoformat(),
            outcome.reason.value,
        )
        return Suspended(token=token, delay_until=outcome.delay_until, reason=outcome.reason)

    async def pending(self, token: str) -> LoginRequest | None:
        """The suspended request stored under ``token``, left in place."""
        return await (await self.continuations()).load(token)

    async def resume(self, token: str) -> LoginResult | None:
        """Re-run provisioning for a suspended login.

        Returns:
            None when the token is unknown or has expired
        """
        continuations = await self.continuations()
        request = await continuations.load(token)
        if request is None:
            logger.info("No suspended login for state {}...", token[:8])
            return None

        request.delay_until = None
        request.delay_reason = None
        # Deleted only after the re-run succeeds
        result = await self.authenticate(request)
        await continuations.delete(token)
        return result
