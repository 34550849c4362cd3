"""Results returned by the login gate, the filters and the provisioning service.

Suspension is a value, not an exception: whoever receives a ``Suspend``
stops running filters and hands the continuation back to its caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from src.provisioner.core.errors import ProvisioningError
from src.provisioner.core.models.identity import DelayReason, LoginRequest


@dataclass(frozen=True)
class Proceed:
    """Provisioning may continue (from the gate) or the login may complete."""


@dataclass(frozen=True)
class Skip:
    """The identity was synced recently; run no provisioning filters."""


@dataclass(frozen=True)
class Suspend:
    """Hold the login until ``request.delay_until``."""

    reason: DelayReason
    request: LoginRequest

    @property
    def delay_until(self) -> datetime:
        if self.request.delay_until is None:
            raise ProvisioningError("Suspended login request has no delay_until")
        return self.request.delay_until


@dataclass(frozen=True)
class Suspended:
    """A suspended login whose continuation has been stored under ``token``."""

    token: str
    delay_until: datetime
    reason: DelayReason


PROCEED = Proceed()
SKIP = Skip()

GateDecision = Proceed | Skip | Suspend
FilterOutcome = Proceed | Suspend
LoginResult = Proceed | Suspended
