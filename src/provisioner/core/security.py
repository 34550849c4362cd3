"""Security utilities for account passwords and continuation tokens."""

import base64
import hashlib
import secrets
import string
from contextvars import ContextVar
from dataclasses import dataclass

PASSWORD_ALPHABET = string.ascii_letters + string.digits
RANDOM_PASSWORD_LENGTH = 10

# Digest name the directory expects alongside a pre-hashed password.
PASSWORD_HASH_FUNCTION = "SHA-1"


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure random token.

    Args:
        length: Number of random bytes to generate (default 32)

    Returns:
        URL-safe base64 encoded token
    """
    return (
        base64.urlsafe_b64encode(secrets.token_bytes(length))
        .decode("utf-8")
        .rstrip("=")
    )


def generate_password(length: int = RANDOM_PASSWORD_LENGTH) -> str:
    """Random mixed-case alphanumeric password."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def hash_password(password: str) -> str:
    """One-way digest sent to the directory instead of the plaintext."""
    return hashlib.sha1(password.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CapturedPassword:
    password: str
    username: str | None = None


_captured_password: ContextVar[CapturedPassword | None] = ContextVar(
    "captured_password", default=None
)


def capture_password(password: str, username: str | None = None) -> None:
    """Hand over the plaintext password the user just authenticated with.

    Called by the identity-provider integration before provisioning runs
    when password sync is enabled. Surrounding whitespace is dropped.
    """
    _captured_password.set(CapturedPassword(password=password.strip(), username=username))


def get_captured_password(username: str | None = None) -> str | None:
    """Return the captured password, if one was captured for ``username``."""
    captured = _captured_password.get()
    if captured is None:
        return None
    if username and captured.username and captured.username.lower() != username.lower():
        return None
    return captured.password


def clear_captured_password() -> None:
    _captured_password.set(None)
