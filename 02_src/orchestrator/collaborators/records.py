"""Record service and schema source interfaces.

The record store (the external system agents create/update/delete records
in) is a collaborator. The in-memory implementations back local runs and
tests.
"""

import uuid
from typing import Protocol

from ..models import FieldSchema


class IRecordService(Protocol):
    """CRUD access to the external record store."""

    async def create_record(self, table: str, data: dict) -> dict:
        """Insert a record; returns it including its `sys_id`."""
        ...

    async def get_record(self, table: str, sys_id: str) -> dict | None:
        """Fetch a record or None."""
        ...

    async def update_record(self, table: str, sys_id: str, data: dict) -> dict:
        """Apply a partial update; returns the updated record."""
        ...

    async def delete_record(self, table: str, sys_id: str) -> None:
        """Delete a record."""
        ...


class ISchemaSource(Protocol):
    """Source of table field definitions."""

    async def get_fields(
        self, table: str, include_inherited: bool = True
    ) -> list[FieldSchema]:
        """Field list of a table (empty if unknown)."""
        ...

    async def get_table(self, table: str) -> dict | None:
        """Table metadata or None."""
        ...


class InMemoryRecordService:
    """Dict-backed record store."""

    def __init__(self):
        self._tables: dict[str, dict[str, dict]] = {}

    async def create_record(self, table: str, data: dict) -> dict:
        sys_id = uuid.uuid4().hex
        record = {**data, "sys_id": sys_id}
        self._tables.setdefault(table, {})[sys_id] = record
        return dict(record)

    async def get_record(self, table: str, sys_id: str) -> dict | None:
        record = self._tables.get(table, {}).get(sys_id)
        return dict(record) if record is not None else None

    async def update_record(self, table: str, sys_id: str, data: dict) -> dict:
        records = self._tables.get(table, {})
        if sys_id not in records:
            raise KeyError(f"Record not found: {table}/{sys_id}")
        records[sys_id].update(data)
        return dict(records[sys_id])

    async def delete_record(self, table: str, sys_id: str) -> None:
        records = self._tables.get(table, {})
        if sys_id not in records:
            raise KeyError(f"Record not found: {table}/{sys_id}")
        del records[sys_id]

    def count(self, table: str) -> int:
        return len(self._tables.get(table, {}))


class InMemorySchemaSource:
    """Static table definitions."""

    def __init__(self, tables: dict[str, list[FieldSchema]] | None = None):
        self._tables = dict(tables or {})
        self.fetch_count = 0

    def define(self, table: str, fields: list[FieldSchema]) -> None:
        self._tables[table] = list(fields)

    async def get_fields(
        self, table: str, include_inherited: bool = True
    ) -> list[FieldSchema]:
        self.fetch_count += 1
        fields = self._tables.get(table, [])
        if not include_inherited:
            fields = [f for f in fields if not f.is_inherited]
        return list(fields)

    async def get_table(self, table: str) -> dict | None:
        if table not in self._tables:
            return None
        return {"name": table, "field_count": len(self._tables[table])}
