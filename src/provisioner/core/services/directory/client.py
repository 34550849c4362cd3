"""Typed operations against the remote directory API."""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from src.provisioner.core.errors import NOT_FOUND, NotFoundResult, RemoteApiError
from src.provisioner.core.models.session import ApiSession
from src.provisioner.core.services.directory.session import (
    DirectorySessionRegistry,
    get_session_registry,
)
from src.provisioner.core.services.directory.transport import (
    open_http_client,
    send,
    substitute,
)
from src.provisioner.runtime.config.config_data import DirectoryConfig

# The directory answers 400 instead of 404 for some missing objects and marks
# those responses with this error code.
NOT_FOUND_ERROR_CODE = "1301"
_NOT_FOUND_CODE_PATTERN = re.compile(
    r'errorCode"?\s*[:=]\s*"?' + NOT_FOUND_ERROR_CODE + r"\b"
)


def user_path(username: str) -> str:
    return f"/domains/%%DOMAIN%%/users/{quote(username, safe='@.')}"


def users_path() -> str:
    return "/domains/%%DOMAIN%%/users"


def org_user_path(username: str) -> str:
    return f"/tenants/%%TENANT%%/orgusers/{quote(username, safe='@.')}"


def org_units_path() -> str:
    return "/tenants/%%TENANT%%/orgunits"


def org_unit_path(units: tuple[str, ...] | list[str]) -> str:
    return org_units_path() + "/" + "/".join(quote(unit, safe="") for unit in units)


def is_not_found(response: httpx.Response) -> bool:
    """404, or a 400 whose body carries the directory's not-found error code."""
    if response.status_code == 404:
        return True
    return response.status_code == 400 and bool(
        _NOT_FOUND_CODE_PATTERN.search(response.text)
    )


class DirectoryClient:
    """Issues directory API calls with the current session's bearer credential.

    The session itself is owned by a ``DirectorySessionRegistry``; every call
    asks the registry for a live session, so an expired token is replaced
    before the request goes out.
    """

    def __init__(
        self,
        config: DirectoryConfig,
        registry: DirectorySessionRegistry | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.registry = registry or get_session_registry()
        self._transport = transport or self.registry.transport

    async def acquire_session(self) -> ApiSession:
        return await self.registry.acquire(self.config)

    async def request(
        self, method: str, path: str, body: dict[str, Any] | None = None
    ) -> Any:
        """Send a request and interpret the response.

        Returns:
            Parsed JSON for JSON responses, the raw text otherwise, or
            ``NOT_FOUND`` when the directory reports the object missing.

        Raises:
            RemoteApiError: any other non-2xx response
            TransportError: network failure or timeout
        """
        session = await self.acquire_session()
        path = substitute(path, session.domain, session.tenant_id)
        if body is not None:
            body = substitute(body, session.domain, session.tenant_id)

        headers = {
            "Authorization": f"Bearer {session.bearer_token}",
            "Content-Type": "application/json",
        }
        async with open_http_client(self.config, self._transport) as http:
            response = await send(http, method, path, json=body, headers=headers)

        if is_not_found(response):
            logger.debug("Directory reports not found: {} {}", method, path)
            return NOT_FOUND

        if not response.is_success:
            raise RemoteApiError(
                response.status_code, response.text, url=f"{method} {path}"
            )

        return self._parse(response, method, path)

    @staticmethod
    def _parse(response: httpx.Response, method: str, path: str) -> Any:
        content_type = response.headers.get("content-type", "")
        if "json" not in content_type:
            return response.text
        try:
            return response.json()
        except ValueError:
            logger.warning(
                "Unable to parse directory response to {} {}: {}",
                method,
                path,
                response.text,
            )
            return response.text

    async def get(self, path: str) -> Any:
        return await self.request("GET", path)

    async def post(self, path: str, body: dict[str, Any]) -> Any:
        return await self.request("POST", path, body)

    async def put(self, path: str, body: dict[str, Any]) -> Any:
        return await self.request("PUT", path, body)

    async def delete(self, path: str) -> bool | NotFoundResult:
        result = await self.request("DELETE", path)
        if result is NOT_FOUND:
            return NOT_FOUND
        return True
