"""Provisioning domain models."""

from .identity import DelayReason, IdentityRecord, LoginRequest, OrgUnitPath, RemoteAccount
from .outcome import PROCEED, SKIP, Proceed, Skip, Suspend, Suspended
from .session import ApiSession, TokenResponse

__all__ = [
    "ApiSession",
    "DelayReason",
    "IdentityRecord",
    "LoginRequest",
    "OrgUnitPath",
    "PROCEED",
    "Proceed",
    "RemoteAccount",
    "SKIP",
    "Skip",
    "Suspend",
    "Suspended",
    "TokenResponse",
]
