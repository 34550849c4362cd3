"""Provisioning filter interface and the context filters share."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar

from src.provisioner.core.models.identity import DelayReason, IdentityRecord, LoginRequest
from src.provisioner.core.models.outcome import PROCEED, FilterOutcome, Skip, Suspend
from src.provisioner.core.services.attributes import AttributeReader
from src.provisioner.core.services.directory.client import DirectoryClient
from src.provisioner.core.services.gate import LoginGate
from src.provisioner.core.services.store.provisioning_store import ProvisioningStore
from src.provisioner.runtime.config.config_data import ConfigData

DEFAULT_PRIORITY = 50


@dataclass
class FilterContext:
    """Resources shared by every filter handling one login attempt."""

    config: ConfigData
    client: DirectoryClient
    store: ProvisioningStore
    gate: LoginGate
    attributes: AttributeReader

    @classmethod
    def build(
        cls, config: ConfigData, client: DirectoryClient, store: ProvisioningStore
    ) -> FilterContext:
        attributes = AttributeReader(config.attributes.as_dict())
        gate = LoginGate(store, attributes, interval_seconds=config.provisioning.interval)
        return cls(
            config=config, client=client, store=store, gate=gate, attributes=attributes
        )


class IdentityFilter(ABC):
    """One provisioning step run during login.

    Run on its own, a filter consults the login gate first. Inside a
    ``FilterChain`` the chain consults the gate once and constructs its
    members with ``chained=True`` so they go straight to ``process``.
    """

    filter_id: ClassVar[str] = ""
    default_priority: ClassVar[int] = DEFAULT_PRIORITY

    def __init__(
        self, context: FilterContext, *, chained: bool = False, priority: int | None = None
    ):
        self.context = context
        self.chained = chained
        self.priority = self.default_priority if priority is None else priority

    async def run(self, request: LoginRequest) -> FilterOutcome:
        if not self.chained:
            decision = self.context.gate.check(request)
            if isinstance(decision, Suspend):
                return decision
            if isinstance(decision, Skip):
                return PROCEED
        return await self.process(request)

    @abstractmethod
    async def process(self, request: LoginRequest) -> FilterOutcome:
        """Reconcile the identity with the directory."""

    def local_id(self, request: LoginRequest) -> str:
        return self.context.attributes.get(request, "userid")

    def stored_record(self, request: LoginRequest) -> IdentityRecord | None:
        return self.context.store.get_record(self.local_id(request))

    def touch(self, request: LoginRequest, username: str) -> IdentityRecord:
        """Record a confirmed sync that needs no login delay."""
        return self.context.store.upsert_record(self.local_id(request), username, delay=False)

    def record_and_maybe_suspend(
        self, request: LoginRequest, username: str, reason: DelayReason | None
    ) -> FilterOutcome:
        """Record a remote write; hold the login when ``reason`` is given."""
        self.context.store.upsert_record(
            self.local_id(request), username, delay=reason is not None
        )
        if reason is None:
            return PROCEED
        return self.context.gate.suspend(request, reason)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(priority={self.priority}, chained={self.chained})"
