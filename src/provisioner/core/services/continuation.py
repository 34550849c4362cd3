"""Persistence of suspended logins."""

from loguru import logger

from src.provisioner.core.errors import StorageError
from src.provisioner.core.models.identity import LoginRequest
from src.provisioner.core.security import generate_secure_token
from src.provisioner.core.storage.session_storage import SessionStorage

CONTINUATION_KEY_PREFIX = "continuation:"

# Continuations outlive the delay so a slow browser can still resume.
CONTINUATION_GRACE_SECONDS = 3600


def continuation_key(token: str) -> str:
    return f"{CONTINUATION_KEY_PREFIX}{token}"


class ContinuationService:
    """Stores a suspended ``LoginRequest`` under an opaque token."""

    def __init__(self, storage: SessionStorage):
        self._storage = storage

    async def save(self, request: LoginRequest, ttl_seconds: int) -> str:
        token = generate_secure_token(32)
        try:
            await self._storage.set(continuation_key(token), request, ttl_seconds)
        except RuntimeError as e:
            raise StorageError(f"Unable to store suspended login: {e}") from e
        logger.debug("Stored suspended login (state {}...)", token[:8])
        return token

    async def load(self, token: str) -> LoginRequest | None:
        try:
            return await self._storage.get(continuation_key(token), LoginRequest)
        except RuntimeError as e:
            raise StorageError(f"Unable to load suspended login: {e}") from e

    async def delete(self, token: str) -> None:
        try:
            await self._storage.delete(continuation_key(token))
        except RuntimeError as e:
            logger.warning("Unable to delete suspended login {}...: {}", token[:8], e)
