"""Create, rename and update the remote directory account."""

from typing import Any

from loguru import logger

from src.provisioner.core.errors import NOT_FOUND, ConfigurationError, ProtocolError
from src.provisioner.core.models.identity import DelayReason, LoginRequest, RemoteAccount
from src.provisioner.core.models.outcome import PROCEED, FilterOutcome
from src.provisioner.core.security import (
    PASSWORD_HASH_FUNCTION,
    generate_password,
    get_captured_password,
    hash_password,
)
from src.provisioner.core.services.directory.client import user_path, users_path
from src.provisioner.core.services.filters.base import IdentityFilter

# Remote field names of a directory account document.
REMOTE_FIELDS = {
    "username": "username",
    "first_name": "firstName",
    "last_name": "lastName",
}


def parse_account(document: Any) -> RemoteAccount:
    """Build a ``RemoteAccount`` from a found account document.

    Raises:
        ProtocolError: the document is not structured or lacks a field
    """
    if not isinstance(document, dict):
        raise ProtocolError(f"Unparsable account document from directory: {document!r}")

    values = {}
    for attr, remote in REMOTE_FIELDS.items():
        if remote not in document or document[remote] is None:
            raise ProtocolError(f"Directory account document has no '{remote}'")
        values[attr] = str(document[remote])
    return RemoteAccount(exists=True, **values)


def diff_account(
    remote: RemoteAccount, username: str, first_name: str, last_name: str
) -> dict[str, str]:
    """Remote fields whose local value differs.

    Usernames compare case-insensitively, names exactly. A missing remote
    account differs in every field.
    """
    changes: dict[str, str] = {}
    if not remote.exists or remote.username.lower() != username.lower():
        changes["username"] = username
    if not remote.exists or remote.first_name != first_name:
        changes["firstName"] = first_name
    if not remote.exists or remote.last_name != last_name:
        changes["lastName"] = last_name
    return changes


class AccountSync(IdentityFilter):
    """Keeps the directory account in line with the asserted identity.

    Runs ahead of other filters so the account exists before anything else
    touches it. Creating an account, or renaming one, holds the login until
    the directory has had time to propagate the change.
    """

    filter_id = "account_sync"
    default_priority = 49

    async def process(self, request: LoginRequest) -> FilterOutcome:
        attributes = self.context.attributes
        username = attributes.get(request, "username")
        first_name = attributes.get(request, "firstname")
        last_name = attributes.get(request, "lastname")

        # A rename may still be in flight, so look up the last synced name
        record = self.stored_record(request)
        lookup = record.remote_username if record is not None else username

        remote = await self.fetch_account(lookup)
        creating = not remote.exists

        changes = diff_account(remote, username, first_name, last_name)
        if creating or self.context.config.provisioning.sync_password:
            changes["password"] = self.password_digest(username)
            changes["hashFunction"] = PASSWORD_HASH_FUNCTION

        if not changes:
            logger.debug("Directory account {} is up to date", lookup)
            self.touch(request, username)
            return PROCEED

        client = self.context.client
        if creating:
            logger.info("Creating directory account {}", username)
            result = await client.post(users_path(), changes)
        else:
            logger.info(
                "Updating directory account {} ({})",
                lookup,
                ", ".join(sorted(k for k in changes if k != "password")),
            )
            result = await client.put(user_path(lookup), changes)

        if not isinstance(result, dict):
            raise ProtocolError(
                f"Unparsable response to account {'create' if creating else 'update'} "
                f"for {username}: {result!r}"
            )

        reason = None
        if "username" in changes:
            reason = DelayReason.CREATED if creating else DelayReason.RENAMED
        return self.record_and_maybe_suspend(request, username, reason)

    async def fetch_account(self, username: str) -> RemoteAccount:
        result = await self.context.client.get(user_path(username))
        if result is NOT_FOUND:
            return RemoteAccount(exists=False)
        return parse_account(result)

    def password_digest(self, username: str) -> str:
        """Digest of the password to send with a create or a password sync.

        Raises:
            ConfigurationError: password sync is on but nothing usable was captured
        """
        provisioning = self.context.config.provisioning
        if provisioning.sync_password:
            password = get_captured_password(username)
            if password is None:
                raise ConfigurationError(
                    "Password sync is enabled but no password was captured; "
                    "the password capture hook is not wired up"
                )
            if not password:
                raise ConfigurationError(
                    "Password sync is enabled but the captured password is empty"
                )
        elif provisioning.password:
            password = provisioning.password
        else:
            password = generate_password()
        return hash_password(password)
