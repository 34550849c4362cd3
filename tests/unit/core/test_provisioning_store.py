"""Unit tests for the provisioning record store."""

from datetime import timedelta

import pytest
import sqlalchemy as sa
from sqlmodel import Session, create_engine

from src.provisioner.core.errors import ConfigurationError, StorageError
from src.provisioner.core.services.store import (
    SCHEMA_VERSION,
    ProvisioningStore,
    ProvisioningStoreRegistry,
)
from src.provisioner.entities.identity_record import (
    IdentityRecordRepository,
    IdentityRecordTable,
    SchemaVersionTable,
)
from src.provisioner.runtime.config.config_data import ConfigData, DatabaseConfig


def _broken_store(clock) -> ProvisioningStore:
    engine = create_engine("sqlite:////nonexistent-dir/provisioning.sqlite")
    return ProvisioningStore(engine, clock=clock)


class TestSchema:
    """Test schema creation and version checks."""

    def test_first_use_creates_tables(self, store, engine):
        assert store.get_record("nobody") is None

        inspector = sa.inspect(engine)
        assert inspector.has_table(IdentityRecordTable.__tablename__)
        with Session(engine) as session:
            assert session.get(SchemaVersionTable, 1).version == SCHEMA_VERSION

    def test_init_schema_is_idempotent(self, store):
        assert store.init_schema() == SCHEMA_VERSION
        assert store.init_schema() == SCHEMA_VERSION

    def test_missing_version_row_is_migrated(self, store, engine):
        store.init_schema()
        with engine.begin() as connection:
            connection.execute(sa.delete(SchemaVersionTable.__table__))

        assert store.init_schema() == SCHEMA_VERSION
        with Session(engine) as session:
            assert session.get(SchemaVersionTable, 1).version == SCHEMA_VERSION

    def test_newer_schema_is_rejected(self, store, engine, clock):
        store.init_schema()
        with engine.begin() as connection:
            connection.execute(
                sa.update(SchemaVersionTable.__table__).values(version=SCHEMA_VERSION + 1)
            )

        with pytest.raises(ConfigurationError, match="newer"):
            ProvisioningStore(engine, clock=clock).init_schema()


class TestUpsert:
    """Test record writes and the coalescing rule."""

    def test_delayed_write(self, store, clock):
        record = store.upsert_record("u1", "jdoe", delay=True)

        assert record.remote_username == "jdoe"
        assert record.last_updated == clock()
        assert record.delay_until == clock() + timedelta(seconds=600)

    def test_undelayed_write_is_in_the_past(self, store, clock):
        record = store.upsert_record("u1", "jdoe", delay=False)

        assert record.delay_until == clock() - timedelta(seconds=60)

    def test_redundant_write_is_skipped(self, store, clock):
        first = store.upsert_record("u1", "jdoe", delay=True)
        clock.advance(10)

        second = store.upsert_record("u1", "jdoe", delay=False)

        assert second == first

    def test_write_exactly_at_window_edge_is_skipped(self, store, clock):
        first = store.upsert_record("u1", "jdoe", delay=False)
        clock.advance(60)

        second = store.upsert_record("u1", "jdoe", delay=False)

        assert second == first

    def test_write_past_window_is_written(self, store, clock):
        first = store.upsert_record("u1", "jdoe", delay=False)
        clock.advance(61)

        second = store.upsert_record("u1", "jdoe", delay=False)

        assert second.last_updated == first.last_updated + timedelta(seconds=61)

    def test_equal_delay_within_window_is_one_write(self, store, engine, clock):
        first = store.upsert_record("u1", "jdoe", delay=True)

        second = store.upsert_record("u1", "jdoe", delay=True)

        assert second == first
        with Session(engine) as session:
            stored = IdentityRecordRepository(session).get("u1")
        assert stored == first

    def test_longer_delay_is_kept(self, store, clock):
        first = store.upsert_record("u1", "jdoe", delay=True)
        clock.advance(90)

        second = store.upsert_record("u1", "jdoe", delay=False)

        assert second.last_updated == clock()
        assert second.delay_until == first.delay_until

    def test_username_change_is_written(self, store, clock):
        store.upsert_record("u1", "jdoe", delay=False)
        clock.advance(5)

        record = store.upsert_record("u1", "john.doe", delay=True)

        assert record.remote_username == "john.doe"
        assert record.delay_until == clock() + timedelta(seconds=600)

    def test_write_refreshes_cache(self, store):
        store.upsert_record("u1", "jdoe", delay=False)
        assert store.get_record("u1").remote_username == "jdoe"

        store.upsert_record("u1", "john.doe", delay=False)

        assert store.get_record("u1").remote_username == "john.doe"

    def test_conflicting_write_is_retried(self, store, clock, monkeypatch):
        store.upsert_record("u1", "jdoe", delay=False)
        clock.advance(120)
        original = IdentityRecordRepository.compare_and_swap
        calls = []

        def flaky(self, expected, record):
            calls.append(expected)
            if len(calls) == 1:
                return False
            return original(self, expected, record)

        monkeypatch.setattr(IdentityRecordRepository, "compare_and_swap", flaky)

        record = store.upsert_record("u1", "jdoe", delay=True)

        assert len(calls) == 2
        assert store.get_record("u1") == record

    def test_persistent_conflict_raises_storage_error(self, store, clock, monkeypatch):
        store.upsert_record("u1", "jdoe", delay=False)
        clock.advance(120)
        monkeypatch.setattr(
            IdentityRecordRepository, "compare_and_swap", lambda self, expected, record: False
        )

        with pytest.raises(StorageError, match="gave up"):
            store.upsert_record("u1", "jdoe", delay=True)

    def test_concurrent_writer_is_not_overwritten(self, engine, clock):
        store_a = ProvisioningStore(engine, clock=clock)
        store_b = ProvisioningStore(engine, clock=clock)
        store_a.upsert_record("u1", "jdoe", delay=False)
        clock.advance(120)

        delayed = store_b.upsert_record("u1", "jdoe", delay=True)
        touched = store_a.upsert_record("u1", "jdoe", delay=False)

        assert touched == delayed

    def test_write_failure_raises_storage_error(self, clock):
        with pytest.raises(StorageError):
            _broken_store(clock).upsert_record("u1", "jdoe", delay=False)


class TestRead:
    """Test the read-through cache and fail-open reads."""

    def test_unknown_identity(self, store):
        assert store.get_record("nobody") is None

    def test_read_failure_fails_open(self, clock):
        assert _broken_store(clock).get_record("u1") is None

    def test_timestamps_are_utc(self, store):
        store.upsert_record("u1", "jdoe", delay=False)
        store.invalidate()

        record = store.get_record("u1")

        assert record.last_updated.tzinfo is not None
        assert record.last_updated.utcoffset() == timedelta(0)

    def test_empty_result_is_cached(self, store, engine, clock):
        assert store.get_record("u1") is None
        ProvisioningStore(engine, clock=clock).upsert_record("u1", "jdoe", delay=False)

        assert store.get_record("u1") is None
        store.invalidate("u1")
        assert store.get_record("u1").remote_username == "jdoe"

    def test_cache_can_be_disabled(self, engine, clock):
        store = ProvisioningStore(engine, cache_ttl=0, clock=clock)
        assert store.get_record("u1") is None

        ProvisioningStore(engine, clock=clock).upsert_record("u1", "jdoe", delay=False)

        assert store.get_record("u1").remote_username == "jdoe"


class TestRegistry:
    def test_one_store_per_database_url(self, tmp_path):
        registry = ProvisioningStoreRegistry()
        config = ConfigData(database=DatabaseConfig(url=f"sqlite:///{tmp_path}/a.sqlite"))
        other = ConfigData(database=DatabaseConfig(url=f"sqlite:///{tmp_path}/b.sqlite"))

        try:
            assert registry.get(config) is registry.get(config)
            assert registry.get(config) is not registry.get(other)
        finally:
            registry.close_all()

    def test_store_uses_configured_delay(self, tmp_path):
        registry = ProvisioningStoreRegistry()
        config = ConfigData(database=DatabaseConfig(url=f"sqlite:///{tmp_path}/a.sqlite"))
        config.provisioning.delay = 42

        try:
            assert registry.get(config).delay_seconds == 42
        finally:
            registry.close_all()

    def test_invalid_url_is_configuration_error(self):
        registry = ProvisioningStoreRegistry()
        config = ConfigData(database=DatabaseConfig(url="not a database url"))

        with pytest.raises(ConfigurationError):
            registry.get(config)
