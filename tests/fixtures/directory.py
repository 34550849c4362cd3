"""In-memory stand-in for the remote directory API, served through httpx.MockTransport."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

BASE_URL = "https://directory.test/api"
BASE_PATH = "/api"

NOT_FOUND_BODY = '<error errorCode="1301" invalidInput="" reason="EntityDoesNotExist"/>'


class FakeDirectory:
    """Minimal directory: accounts, org units and the credential exchange."""

    def __init__(
        self,
        *,
        domain: str = "example.com",
        tenant_id: str = "T-100",
        admin_password: str = "secret",
        expires_in: int | None = 3600,
    ):
        self.domain = domain
        self.tenant_id = tenant_id
        self.admin_password = admin_password
        self.expires_in = expires_in
        self.users: dict[str, dict[str, str]] = {}
        self.org_units: set[str] = set()
        self.org_user_units: dict[str, str] = {}
        self.requests: list[tuple[str, str, Any]] = []
        self.headers: list[httpx.Headers] = []
        self.overrides: dict[tuple[str, str], httpx.Response | Exception] = {}
        self.auth_count = 0
        self.tokens: set[str] = set()

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def add_user(
        self, username: str, first_name: str, last_name: str, org_unit: str = "/"
    ) -> None:
        self.users[username.lower()] = {
            "username": username,
            "firstName": first_name,
            "lastName": last_name,
        }
        self.org_user_units[username.lower()] = org_unit

    def calls(self, method: str | None = None, prefix: str = "") -> list[tuple[str, str, Any]]:
        return [
            call
            for call in self.requests
            if (method is None or call[0] == method) and call[1].startswith(prefix)
        ]

    @property
    def users_path(self) -> str:
        return f"/domains/{self.domain}/users"

    @property
    def tenant_path(self) -> str:
        return f"/tenants/{self.tenant_id}"

    async def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix(BASE_PATH)
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))
        self.headers.append(request.headers)

        override = self.overrides.get((request.method, path))
        if isinstance(override, Exception):
            raise override
        if override is not None:
            return override

        if path == "/auth/login" and request.method == "POST":
            return await self._login(body)

        token = request.headers.get("authorization", "").removeprefix("Bearer ")
        if token not in self.tokens:
            return httpx.Response(401, text="Token invalid")

        if path == f"/tenants/{self.domain}":
            return httpx.Response(200, json={"tenantId": self.tenant_id})
        if path == self.users_path and request.method == "POST":
            return self._create_user(body)
        if path.startswith(self.users_path + "/"):
            return self._user(request.method, path[len(self.users_path) + 1 :], body)
        if path.startswith(self.tenant_path + "/orgusers/"):
            name = path[len(self.tenant_path + "/orgusers/") :]
            return self._org_user(request.method, name, body)
        if path == self.tenant_path + "/orgunits" and request.method == "POST":
            return self._create_unit(body)
        if path.startswith(self.tenant_path + "/orgunits/"):
            unit = path[len(self.tenant_path + "/orgunits/") :]
            if unit in self.org_units:
                return httpx.Response(200, json={"orgUnitPath": unit})
            return httpx.Response(404, text="Org unit not found")

        return httpx.Response(404, text="No such resource")

    async def _login(self, body: dict[str, Any]) -> httpx.Response:
        self.auth_count += 1
        # Give concurrent callers a chance to pile up behind the first login
        await asyncio.sleep(0.01)
        if body.get("password") != self.admin_password:
            return httpx.Response(403, text="BadAuthentication")
        token = f"token-{self.auth_count}-abcdef"
        self.tokens.add(token)
        payload: dict[str, Any] = {"access_token": token, "token_type": "Bearer"}
        if self.expires_in is not None:
            payload["expires_in"] = self.expires_in
        return httpx.Response(200, json=payload)

    def _create_user(self, body: dict[str, Any]) -> httpx.Response:
        username = body["username"]
        if username.lower() in self.users:
            return httpx.Response(409, text="EntityExists")
        self.add_user(username, body.get("firstName", ""), body.get("lastName", ""))
        return httpx.Response(201, json=self.users[username.lower()])

    def _user(self, method: str, name: str, body: dict[str, Any] | None) -> httpx.Response:
        user = self.users.get(name.lower())
        if user is None:
            return httpx.Response(400, text=NOT_FOUND_BODY)
        if method == "GET":
            return httpx.Response(200, json=user)
        if method == "PUT":
            del self.users[name.lower()]
            unit = self.org_user_units.pop(name.lower(), "/")
            for key in ("username", "firstName", "lastName"):
                if key in body:
                    user[key] = body[key]
            self.users[user["username"].lower()] = user
            self.org_user_units[user["username"].lower()] = unit
            return httpx.Response(200, json=user)
        return httpx.Response(405)

    def _org_user(self, method: str, name: str, body: dict[str, Any] | None) -> httpx.Response:
        if name.lower() not in self.users:
            return httpx.Response(404, text="User not found")
        if method == "GET":
            return httpx.Response(200, json={"orgUnitPath": self.org_user_units[name.lower()]})
        if method == "PUT":
            self.org_user_units[name.lower()] = body["orgUnitPath"]
            return httpx.Response(200, json={"orgUnitPath": body["orgUnitPath"]})
        return httpx.Response(405)

    def _create_unit(self, body: dict[str, Any]) -> httpx.Response:
        parent = body["parentOrgUnitPath"].strip("/")
        if parent and parent not in self.org_units:
            return httpx.Response(400, text="Parent org unit missing")
        unit = f"{parent}/{body['name']}" if parent else body["name"]
        if unit in self.org_units:
            return httpx.Response(409, text="EntityExists")
        self.org_units.add(unit)
        return httpx.Response(201, json={"orgUnitPath": unit, "name": body["name"]})
