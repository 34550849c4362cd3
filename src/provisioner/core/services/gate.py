"""Shared pre-check run once per authentication request."""

from datetime import timedelta

from loguru import logger

from src.provisioner.core.errors import ProvisioningError
from src.provisioner.core.models.identity import DelayReason, IdentityRecord, LoginRequest
from src.provisioner.core.models.outcome import PROCEED, SKIP, GateDecision, Suspend
from src.provisioner.core.services.attributes import AttributeReader
from src.provisioner.core.services.store.provisioning_store import ProvisioningStore


class LoginGate:
    """Decides whether a login is held, skips provisioning, or proceeds.

    The checks run in order against the identity's stored record:

    1. ``delay_until`` in the future: suspend the login.
    2. Synced within ``interval_seconds`` and not itself mid-delay: skip
       provisioning.
    3. Otherwise: proceed.
    """

    def __init__(
        self,
        store: ProvisioningStore,
        attributes: AttributeReader,
        interval_seconds: int = 86400,
    ):
        self.store = store
        self.attributes = attributes
        self.interval = timedelta(seconds=interval_seconds)

    def check(self, request: LoginRequest) -> GateDecision:
        local_id = self.attributes.get(request, "userid")
        record = self.store.get_record(local_id)
        if record is None:
            logger.debug("No provisioning record for {}, proceeding", local_id)
            return PROCEED

        now = self.store.now()
        if record.delay_until > now:
            logger.info(
                "Login for {} is delayed until {}", local_id, record.delay_until.isoformat()
            )
            return self._hold(request, record, DelayReason.DEFAULT)

        if record.last_updated > now - self.interval and record.last_updated > record.delay_until:
            logger.info("{} was provisioned recently, skipping", local_id)
            return SKIP

        return PROCEED

    def suspend(self, request: LoginRequest, reason: DelayReason) -> Suspend:
        """Hold the login until the delay stored for this identity.

        The record must already have been written with its delay.
        """
        local_id = self.attributes.get(request, "userid")
        record = self.store.get_record(local_id)
        if record is None:
            raise ProvisioningError(
                f"Cannot delay login for {local_id}: no provisioning record"
            )
        logger.info(
            "Suspending login for {} until {} ({})",
            local_id,
            record.delay_until.isoformat(),
            reason.value,
        )
        return self._hold(request, record, reason)

    @staticmethod
    def _hold(request: LoginRequest, record: IdentityRecord, reason: DelayReason) -> Suspend:
        request.delay_until = record.delay_until
        request.delay_reason = reason
        return Suspend(reason=reason, request=request)
