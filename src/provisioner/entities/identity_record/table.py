"""Provisioning record database table models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel


class IdentityRecordTable(SQLModel, table=True):
    """Database persistence model for identity provisioning records.

    One row per local identity, keyed by the identity provider's stable
    identifier.
    """

    __tablename__ = "provisioning_users"

    user_id: str = Field(sa_column=Column(String(255), primary_key=True))
    username: str = Field(sa_column=Column(String(255), nullable=False))
    last_updated: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    delay_until: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class SchemaVersionTable(SQLModel, table=True):
    """Single-row marker holding the provisioning schema version."""

    __tablename__ = "provisioning_version"

    id: int = Field(default=1, primary_key=True)
    version: int = Field(nullable=False)
