"""Identity, remote account and login continuation models."""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_UNESCAPED_COMMA = re.compile(r"(?<!\\),")


class DelayReason(str, Enum):
    """Why a login is being held back."""

    CREATED = "created"
    RENAMED = "renamed"
    DEFAULT = "default"


class IdentityRecord(BaseModel):
    """Provisioning state stored for one local identity."""

    model_config = ConfigDict(frozen=True)

    local_id: str = Field(description="Stable local identifier, the join key")
    remote_username: str = Field(description="Username last synced to the directory")
    last_updated: datetime = Field(description="When the record was last written")
    delay_until: datetime = Field(description="Login may not complete before this time")


class RemoteAccount(BaseModel):
    """The directory's current view of an account, fetched on demand."""

    username: str = ""
    first_name: str = ""
    last_name: str = ""
    exists: bool = False


class OrgUnitPath(BaseModel):
    """Root-to-leaf organizational unit path."""

    model_config = ConfigDict(frozen=True)

    units: tuple[str, ...] = ()

    @classmethod
    def from_dn(cls, dn: str) -> OrgUnitPath:
        """Derive the path from a distinguished name.

        ``OU=Sales,OU=East,DC=example,DC=com`` becomes ``East/Sales``: only
        OU components are kept and their order is reversed.
        """
        units = []
        for rdn in _UNESCAPED_COMMA.split(dn):
            if "=" not in rdn:
                continue
            kind, value = rdn.split("=", 1)
            if kind.strip().upper() == "OU":
                units.append(value.strip().replace("\\,", ","))
        return cls(units=tuple(reversed(units)))

    @classmethod
    def parse(cls, path: str) -> OrgUnitPath:
        """Parse a directory path such as ``/East/Sales``; ``/`` and ``""`` are root."""
        return cls(units=tuple(unit for unit in path.strip("/").split("/") if unit))

    @property
    def is_root(self) -> bool:
        return not self.units

    @property
    def parent(self) -> OrgUnitPath:
        return OrgUnitPath(units=self.units[:-1])

    @property
    def name(self) -> str:
        return self.units[-1] if self.units else ""

    def __str__(self) -> str:
        return "/".join(self.units) if self.units else "/"


def _normalize_value(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [item for v in value for item in _normalize_value(v)]
    if isinstance(value, (bytes, bytearray)):
        return [bytes(value).hex()]
    return [str(value)]


class LoginRequest(BaseModel):
    """The in-flight authentication, as seen by the provisioning filters.

    This is also the suspended-login continuation: it must stay plain data
    so it can be serialized while the user waits.
    """

    attributes: dict[str, list[str]] = Field(
        default_factory=dict, description="Asserted identity attributes"
    )
    delay_until: datetime | None = Field(
        default=None, description="Set when the login is suspended"
    )
    delay_reason: DelayReason | None = Field(
        default=None, description="Why the login is suspended"
    )
    restart_url: str | None = Field(
        default=None, description="Where the waiting page sends the browser back to"
    )
    state: dict[str, Any] = Field(
        default_factory=dict, description="Opaque caller data carried through a suspend"
    )

    @field_validator("attributes", mode="before")
    @classmethod
    def _normalize_attributes(cls, value: Any) -> Any:
        # Binary identifiers (e.g. objectGUID) are surfaced as hex strings
        if isinstance(value, dict):
            return {str(k): _normalize_value(v) for k, v in value.items()}
        return value

    @property
    def is_suspended(self) -> bool:
        return self.delay_until is not None
