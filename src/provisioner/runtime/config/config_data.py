"""Pydantic models for parsing the config.yaml configuration file.

This module contains Pydantic models that correspond to the structure of config.yaml.
These models handle validation and type conversion of the YAML configuration data.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, computed_field


class DirectoryConfig(BaseModel):
    """Remote directory API connection settings."""

    domain: str = Field(default="", description="Directory domain to provision into")
    username: str = Field(
        default="", description="Admin username, without the @domain suffix"
    )
    password: str = Field(default="", description="Admin password")
    base_url: str = Field(
        default="https://directory.example.com/api/v1",
        description="Base URL of the directory API",
    )
    auth_path: str = Field(
        default="/auth/login", description="Credential exchange endpoint path"
    )
    tenant_path: str = Field(
        default="/tenants/%%DOMAIN%%",
        description="Endpoint path returning the tenant identifier",
    )
    timeout: int = Field(default=30, description="Request timeout in seconds")
    session_lifetime: int = Field(
        default=85500,
        description="Session lifetime in seconds when the token endpoint omits expires_in",
    )
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")
    source: str = Field(
        default="directory-provisioner",
        description="Client identifier sent with the credential exchange",
    )

    @property
    def admin_login(self) -> str:
        """Fully qualified admin login used for the credential exchange."""
        return f"{self.username}@{self.domain}"


class ProvisioningConfig(BaseModel):
    """Provisioning behaviour applied during login."""

    interval: int = Field(
        default=86400,
        description="Seconds after a sync during which provisioning is skipped",
    )
    delay: int = Field(
        default=600,
        description="Seconds a login is held after a create or rename",
    )
    sync_password: bool = Field(
        default=False, description="Push the captured login password to the directory"
    )
    password: str | None = Field(
        default=None,
        description="Fixed password for new accounts (random when unset)",
    )
    filters: list[str] = Field(
        default_factory=lambda: ["account_sync"],
        description="Provisioning filters to run, chained when more than one",
    )


class AttributeMapConfig(BaseModel):
    """Mapping of logical attribute names to identity provider attribute names."""

    userid: str = Field(default="objectGUID", description="Stable local identifier")
    username: str = Field(default="sAMAccountName", description="Login name")
    firstname: str = Field(default="givenName", description="Given name")
    lastname: str = Field(default="sn", description="Family name")
    dn: str = Field(default="distinguishedName", description="Directory DN")

    def as_dict(self) -> dict[str, str]:
        return self.model_dump()


class DatabaseConfig(BaseModel):
    """Provisioning record database configuration."""

    url: str = Field(
        default="sqlite:///./data/provisioning.sqlite",
        description="Database connection URL",
    )
    cache_ttl: int = Field(
        default=30, description="Seconds a record stays in the in-process cache"
    )
    echo: bool = Field(default=False, description="Echo SQL statements")


class RedisConfig(BaseModel):
    """Redis configuration model."""

    url: str = Field(default="", description="Redis connection URL")
    password: str | None = Field(
        default=None, description="Password for Redis authentication"
    )
    socket_timeout: int = Field(default=2, description="Socket timeout in seconds")
    socket_connect_timeout: int = Field(
        default=2, description="Socket connect timeout in seconds"
    )

    @computed_field
    @property
    def connection_string(self) -> str:
        """Construct the Redis connection string with password if provided."""
        if self.password:
            if "@" in self.url:
                # URL already has auth info
                return self.url
            parts = self.url.split("://", 1)
            if len(parts) == 2:
                scheme, rest = parts
                return f"{scheme}://:{self.password}@{rest}"
        return self.url


class SessionCacheConfig(BaseModel):
    """Secondary cache for directory sessions and suspended logins."""

    backend: Literal["file", "redis", "memory"] = Field(
        default="file", description="Storage backend"
    )
    data_dir: str = Field(default="./data", description="Directory for file storage")
    redis: RedisConfig = Field(
        default_factory=RedisConfig, description="Redis configuration"
    )

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="plain", description="Log format")
    file: str = Field(default="", description="Log file path (empty disables)")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )


class AppConfig(BaseModel):
    """HTTP application configuration model."""

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    host: str = Field(default="localhost", description="Application host")
    port: int = Field(default=8000, description="Application port")


class ConfigData(BaseModel):
    """Root configuration model that matches the config.yaml structure."""

    directory: DirectoryConfig = Field(
        default_factory=DirectoryConfig, description="Directory API configuration"
    )
    provisioning: ProvisioningConfig = Field(
        default_factory=ProvisioningConfig, description="Provisioning configuration"
    )
    attributes: AttributeMapConfig = Field(
        default_factory=AttributeMapConfig, description="Attribute name mapping"
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
    session_cache: SessionCacheConfig = Field(
        default_factory=SessionCacheConfig, description="Session cache configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    app: AppConfig = Field(
        default_factory=AppConfig, description="Application configuration"
    )
