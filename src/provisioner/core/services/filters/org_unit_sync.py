"""Move the remote account into the organizational unit matching its DN."""

from loguru import logger

from src.provisioner.core.errors import NOT_FOUND, ProtocolError
from src.provisioner.core.models.identity import LoginRequest, OrgUnitPath
from src.provisioner.core.models.outcome import PROCEED, FilterOutcome
from src.provisioner.core.services.directory.client import (
    org_unit_path,
    org_units_path,
    org_user_path,
)
from src.provisioner.core.services.filters.base import IdentityFilter

UNIT_DESCRIPTION = "Created by directory-provisioner on {date}"


class OrgUnitSync(IdentityFilter):
    filter_id = "org_unit_sync"

    async def process(self, request: LoginRequest) -> FilterOutcome:
        attributes = self.context.attributes
        record = self.stored_record(request)
        username = (
            record.remote_username
            if record is not None
            else attributes.get(request, "username")
        )
        target = OrgUnitPath.from_dn(attributes.get(request, "dn"))

        current = await self.current_path(username)
        if current == target:
            logger.debug("{} is already in org unit {}", username, target)
            self.touch(request, username)
            return PROCEED

        await self.ensure_path(target)

        logger.info("Moving {} from org unit {} to {}", username, current, target)
        result = await self.context.client.put(
            org_user_path(username),
            {"orgUnitPath": str(target), "oldOrgUnitPath": str(current)},
        )
        if not isinstance(result, dict):
            raise ProtocolError(f"Unparsable response to org unit move for {username}: {result!r}")

        self.touch(request, username)
        return PROCEED

    async def current_path(self, username: str) -> OrgUnitPath:
        result = await self.context.client.get(org_user_path(username))
        if result is NOT_FOUND:
            logger.warning("Directory account {} not found, cannot move it", username)
            raise ProtocolError(f"Directory account {username} not found for org unit move")
        if not isinstance(result, dict) or "orgUnitPath" not in result:
            raise ProtocolError(f"Directory org user document for {username} has no orgUnitPath")
        return OrgUnitPath.parse(result["orgUnitPath"] or "/")

    async def ensure_path(self, path: OrgUnitPath) -> None:
        """Create every missing unit on ``path``, parents first."""
        if path.is_root:
            return

        client = self.context.client
        if await client.get(org_unit_path(path.units)) is not NOT_FOUND:
            return

        await self.ensure_path(path.parent)

        logger.info("Creating org unit {}", path)
        result = await client.post(
            org_units_path(),
            {
                "name": path.name,
                "description": self.unit_description(),
                "parentOrgUnitPath": str(path.parent),
            },
        )
        if not isinstance(result, dict):
            raise ProtocolError(f"Unparsable response creating org unit {path}: {result!r}")

    def unit_description(self) -> str:
        today = self.context.store.now()
        return UNIT_DESCRIPTION.format(date=f"{today:%B} {today.day}, {today.year}")
