from datetime import UTC, datetime

from sqlalchemy import update
from sqlmodel import Session

from src.provisioner.core.models.identity import IdentityRecord
from src.provisioner.entities.identity_record.table import IdentityRecordTable


def as_utc(value: datetime) -> datetime:
    """Treat naive database timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class IdentityRecordRepository:
    """Data-access layer for provisioning records."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, local_id: str) -> IdentityRecord | None:
        row = self._session.get(IdentityRecordTable, local_id)
        if row is None:
            return None
        return IdentityRecord(
            local_id=row.user_id,
            remote_username=row.username,
            last_updated=as_utc(row.last_updated),
            delay_until=as_utc(row.delay_until),
        )

    def insert(self, record: IdentityRecord) -> None:
        self._session.add(
            IdentityRecordTable(
                user_id=record.local_id,
                username=record.remote_username,
                last_updated=record.last_updated,
                delay_until=record.delay_until,
            )
        )
        self._session.flush()

    def compare_and_swap(self, expected: IdentityRecord, record: IdentityRecord) -> bool:
        """Overwrite the row only if it still holds ``expected``.

        Returns:
            True when exactly one row was updated
        """
        statement = (
            update(IdentityRecordTable)
            .where(IdentityRecordTable.user_id == expected.local_id)
            .where(IdentityRecordTable.username == expected.remote_username)
            .where(IdentityRecordTable.last_updated == expected.last_updated)
            .where(IdentityRecordTable.delay_until == expected.delay_until)
            .values(
                username=record.remote_username,
                last_updated=record.last_updated,
                delay_until=record.delay_until,
            )
        )
        result = self._session.connection().execute(statement)
        return result.rowcount == 1
