"""HTTP plumbing shared by the session registry and the directory client."""

from __future__ import annotations

import re
from typing import Any

import httpx
from loguru import logger

from src.provisioner.core.errors import ConfigurationError, TransportError
from src.provisioner.runtime.config.config_data import DirectoryConfig

DOMAIN_PLACEHOLDER = re.compile(re.escape("%%DOMAIN%%"), re.IGNORECASE)
TENANT_PLACEHOLDER = re.compile(re.escape("%%TENANT%%"), re.IGNORECASE)


def open_http_client(
    config: DirectoryConfig, transport: httpx.AsyncBaseTransport | None = None
) -> httpx.AsyncClient:
    """Create an HTTP client for the configured directory API.

    ``transport`` replaces the network layer, tests pass an
    ``httpx.MockTransport`` here.
    """
    try:
        return httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout,
            verify=config.verify_tls,
            transport=transport,
        )
    except httpx.InvalidURL as e:
        raise ConfigurationError(f"Invalid directory base URL: {config.base_url}") from e


def substitute(value: Any, domain: str, tenant_id: str | None = None) -> Any:
    """Replace domain and tenant placeholders in a path or a JSON body."""
    if isinstance(value, str):
        value = DOMAIN_PLACEHOLDER.sub(domain, value)
        if tenant_id is not None:
            value = TENANT_PLACEHOLDER.sub(tenant_id, value)
        return value
    if isinstance(value, dict):
        return {k: substitute(v, domain, tenant_id) for k, v in value.items()}
    if isinstance(value, list):
        return [substitute(v, domain, tenant_id) for v in value]
    return value


async def send(
    http: httpx.AsyncClient,
    method: str,
    path: str,
    *,
    json: Any = None,
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    """Send one request, mapping httpx failures onto provisioning errors."""
    logger.debug("Directory request: {} {}", method, path)
    try:
        return await http.request(method, path, json=json, headers=headers)
    except httpx.TimeoutException as e:
        raise TransportError(f"Timed out talking to the directory: {method} {path}") from e
    except (httpx.UnsupportedProtocol, httpx.InvalidURL) as e:
        raise ConfigurationError(f"Directory URL is not usable: {path} ({e})") from e
    except httpx.TransportError as e:
        raise TransportError(f"Directory unreachable: {method} {path} ({e})") from e
