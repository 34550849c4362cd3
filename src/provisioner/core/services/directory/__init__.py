"""Remote directory API client and session management."""

from .client import (
    DirectoryClient,
    is_not_found,
    org_unit_path,
    org_units_path,
    org_user_path,
    user_path,
    users_path,
)
from .session import (
    DirectorySessionRegistry,
    authenticate,
    get_session_registry,
    reset_session_registry,
)

__all__ = [
    "DirectoryClient",
    "DirectorySessionRegistry",
    "authenticate",
    "get_session_registry",
    "is_not_found",
    "org_unit_path",
    "org_units_path",
    "org_user_path",
    "reset_session_registry",
    "user_path",
    "users_path",
]
