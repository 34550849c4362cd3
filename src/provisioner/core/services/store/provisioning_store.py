"""Durable provisioning records with coalesced upserts.

Reads go through a short-lived in-process cache and fail open: a storage
error is logged and treated as "no record". Writes are a compare-and-swap on
the row previously read, so two logins racing for the same identity cannot
stomp each other's delay.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import sqlalchemy as sa
from cachetools import TTLCache
from loguru import logger
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from src.provisioner.core.errors import ConfigurationError, StorageError
from src.provisioner.core.models.identity import IdentityRecord
from src.provisioner.entities.identity_record import (
    IdentityRecordRepository,
    IdentityRecordTable,
    SchemaVersionTable,
)
from src.provisioner.runtime.config.config_data import ConfigData, DatabaseConfig

SCHEMA_VERSION = 1

# A write this recent with the same username and an equal or longer delay
# makes a new write redundant.
COALESCE_WINDOW = timedelta(seconds=60)
# delay_until for writes that should not hold the login.
NO_DELAY_OFFSET = timedelta(seconds=60)

MAX_WRITE_ATTEMPTS = 3

_MISSING = object()


def _create_v1(connection: Connection) -> None:
    SQLModel.metadata.create_all(
        connection,
        tables=[IdentityRecordTable.__table__, SchemaVersionTable.__table__],
    )


# Each step upgrades the schema from ``version - 1`` to ``version``.
MIGRATIONS: dict[int, Callable[[Connection], None]] = {
    1: _create_v1,
}


def utc_now() -> datetime:
    """Current time in UTC, whole seconds."""
    return datetime.now(UTC).replace(microsecond=0)


class ProvisioningStore:
    """One record per local identity: last synced username and login delay."""

    def __init__(
        self,
        engine: Engine,
        delay_seconds: int = 600,
        cache_ttl: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._engine = engine
        self.delay_seconds = delay_seconds
        self._clock = clock
        self._cache: TTLCache | None = (
            TTLCache(maxsize=4096, ttl=cache_ttl) if cache_ttl > 0 else None
        )
        self._cache_lock = threading.Lock()
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    @property
    def engine(self) -> Engine:
        return self._engine

    def now(self) -> datetime:
        return self._clock()

    def init_schema(self) -> int:
        """Create or migrate the tables; returns the resulting schema version.

        Raises:
            ConfigurationError: the stored schema is newer than this code
        """
        with self._schema_lock:
            with self._engine.begin() as connection:
                inspector = sa.inspect(connection)
                stored = 0
                if inspector.has_table(SchemaVersionTable.__tablename__):
                    row = connection.execute(
                        sa.select(SchemaVersionTable.__table__.c.version)
                    ).first()
                    stored = row[0] if row else 0

                if stored > SCHEMA_VERSION:
                    raise ConfigurationError(
                        f"Provisioning schema version {stored} is newer than "
                        f"supported version {SCHEMA_VERSION}"
                    )

                for version in range(stored + 1, SCHEMA_VERSION + 1):
                    logger.info("Migrating provisioning schema to version {}", version)
                    MIGRATIONS[version](connection)

                if stored < SCHEMA_VERSION:
                    version_table = SchemaVersionTable.__table__
                    connection.execute(sa.delete(version_table))
                    connection.execute(
                        sa.insert(version_table).values(id=1, version=SCHEMA_VERSION)
                    )

            self._schema_ready = True
            return SCHEMA_VERSION

    def _ensure_schema(self) -> None:
        if not self._schema_ready:
            self.init_schema()

    def _cache_get(self, local_id: str):
        if self._cache is None:
            return _MISSING
        with self._cache_lock:
            return self._cache.get(local_id, _MISSING)

    def _cache_put(self, local_id: str, record: IdentityRecord | None) -> None:
        if self._cache is None:
            return
        with self._cache_lock:
            self._cache[local_id] = record

    def invalidate(self, local_id: str | None = None) -> None:
        """Drop one cached record, or the whole cache."""
        if self._cache is None:
            return
        with self._cache_lock:
            if local_id is None:
                self._cache.clear()
            else:
                self._cache.pop(local_id, None)

    def get_record(self, local_id: str) -> IdentityRecord | None:
        """Return the stored record, or None when there is none.

        Storage failures are logged and reported as "no record".
        """
        cached = self._cache_get(local_id)
        if cached is not _MISSING:
            return cached

        try:
            self._ensure_schema()
            with Session(self._engine) as session:
                record = IdentityRecordRepository(session).get(local_id)
        except SQLAlchemyError as e:
            logger.warning("Provisioning record read failed for {}: {}", local_id, e)
            return None

        self._cache_put(local_id, record)
        return record

    def _coalesce(
        self, existing: IdentityRecord | None, candidate: IdentityRecord
    ) -> IdentityRecord | None:
        """Apply the coalescing rule; None means the write is redundant."""
        if existing is None:
            return candidate

        if (
            existing.remote_username == candidate.remote_username
            and existing.last_updated >= candidate.last_updated - COALESCE_WINDOW
            and existing.delay_until >= candidate.delay_until
        ):
            return None

        return candidate.model_copy(
            update={"delay_until": max(existing.delay_until, candidate.delay_until)}
        )

    def upsert_record(self, local_id: str, username: str, delay: bool) -> IdentityRecord:
        """Record a successful sync of ``local_id`` as ``username``.

        With ``delay`` the login is held for the configured delay, otherwise
        ``delay_until`` is set slightly in the past.

        Raises:
            StorageError: the write failed or kept conflicting
        """
        now = self.now()
        delay_until = (
            now + timedelta(seconds=self.delay_seconds) if delay else now - NO_DELAY_OFFSET
        )
        candidate = IdentityRecord(
            local_id=local_id,
            remote_username=username,
            last_updated=now,
            delay_until=delay_until,
        )

        try:
            self._ensure_schema()
        except SQLAlchemyError as e:
            raise StorageError(f"Provisioning schema unavailable: {e}") from e

        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            with Session(self._engine) as session:
                repo = IdentityRecordRepository(session)
                try:
                    existing = repo.get(local_id)
                    record = self._coalesce(existing, candidate)
                    if record is None:
                        logger.debug(
                            "Skipping redundant provisioning write for {}", local_id
                        )
                        self._cache_put(local_id, existing)
                        return existing

                    if existing is None:
                        repo.insert(record)
                        swapped = True
                    else:
                        swapped = repo.compare_and_swap(existing, record)

                    if swapped:
                        session.commit()
                        logger.debug(
                            "Stored provisioning record for {} (delay until {})",
                            local_id,
                            record.delay_until.isoformat(),
                        )
                        self._cache_put(local_id, record)
                        return record

                    session.rollback()
                except IntegrityError:
                    session.rollback()
                except SQLAlchemyError as e:
                    session.rollback()
                    logger.error("Provisioning record write failed for {}: {}", local_id, e)
                    raise StorageError(
                        f"Unable to store provisioning record for {local_id}: {e}"
                    ) from e

            logger.debug(
                "Concurrent provisioning write for {}, retrying ({}/{})",
                local_id,
                attempt,
                MAX_WRITE_ATTEMPTS,
            )

        raise StorageError(
            f"Provisioning record for {local_id} kept changing, gave up after "
            f"{MAX_WRITE_ATTEMPTS} attempts"
        )


def create_store_engine(config: DatabaseConfig) -> Engine:
    """Build an engine for the configured database URL."""
    url = config.url
    try:
        sa_url = sa.engine.make_url(url)
    except sa.exc.ArgumentError as e:
        raise ConfigurationError(f"Invalid database URL: {url}") from e

    engine_kwargs: dict = {"echo": config.echo}
    if sa_url.get_backend_name() == "sqlite":
        engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 20}
        if sa_url.database in (None, "", ":memory:"):
            engine_kwargs["poolclass"] = StaticPool
        else:
            Path(sa_url.database).parent.mkdir(parents=True, exist_ok=True)
    else:
        engine_kwargs["pool_pre_ping"] = True

    logger.info("Opening provisioning database {}", sa_url.render_as_string(hide_password=True))
    return create_engine(url, **engine_kwargs)


class ProvisioningStoreRegistry:
    """Keyed registry of stores, one per database URL."""

    def __init__(self) -> None:
        self._stores: dict[str, ProvisioningStore] = {}
        self._lock = threading.Lock()

    def get(self, config: ConfigData) -> ProvisioningStore:
        url = config.database.url
        with self._lock:
            store = self._stores.get(url)
            if store is None:
                store = ProvisioningStore(
                    create_store_engine(config.database),
                    delay_seconds=config.provisioning.delay,
                    cache_ttl=config.database.cache_ttl,
                )
                self._stores[url] = store
            return store

    def close_all(self) -> None:
        """Dispose every engine and forget the stores."""
        with self._lock:
            for store in self._stores.values():
                store.engine.dispose()
            self._stores.clear()


_registry = ProvisioningStoreRegistry()


def get_provisioning_store(config: ConfigData | None = None) -> ProvisioningStore:
    """Store for the active (or given) configuration's database."""
    if config is None:
        from src.provisioner.runtime.context import get_config

        config = get_config()
    return _registry.get(config)


def close_all() -> None:
    _registry.close_all()
