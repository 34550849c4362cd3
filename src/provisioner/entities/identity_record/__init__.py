"""Identity record persistence.

- IdentityRecordTable / SchemaVersionTable: database tables
- IdentityRecordRepository: data access layer
"""

from .repository import IdentityRecordRepository
from .table import IdentityRecordTable, SchemaVersionTable

__all__ = ["IdentityRecordRepository", "IdentityRecordTable", "SchemaVersionTable"]
