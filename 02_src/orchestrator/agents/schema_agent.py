"""SchemaAgent: cache-first table schema lookup."""

import time
from enum import Enum
from typing import Callable

from ..collaborators.records import ISchemaSource
from ..logging_config import get_logger
from ..message_bus import IMessageBus
from ..models import TableSchema
from .base import BaseAgent

logger = get_logger(__name__)


class SchemaAgent(BaseAgent):
    """Serves table schemas from an ISchemaSource with a TTL cache."""

    agent_type = "schema"

    class Action(str, Enum):
        GET_SCHEMA = "get-schema"
        GET_FIELDS = "get-fields"
        GET_TABLE_INFO = "get-table-info"
        REFRESH_SCHEMA = "refresh-schema"

    def __init__(
        self,
        bus: IMessageBus,
        source: ISchemaSource,
        refresh_interval: float = 3600.0,
        cache_schemas: bool = True,
        clock: Callable[[], float] = time.monotonic,
        **kwargs,
    ):
        super().__init__(bus, **kwargs)
        self._source = source
        self._refresh_interval = refresh_interval
        self._cache_schemas = cache_schemas
        self._clock = clock
        # (table, include_inherited) -> (schema, cached_at)
        self._cache: dict[tuple[str, bool], tuple[TableSchema, float]] = {}

    def _handlers(self):
        return {
            self.Action.GET_SCHEMA: self.get_schema,
            self.Action.GET_FIELDS: self.get_fields,
            self.Action.GET_TABLE_INFO: self.get_table_info,
            self.Action.REFRESH_SCHEMA: self.refresh_schema,
        }

    def subscriptions(self):
        return {
            "schema.get": self._on_get_schema,
            "schema.refresh": self._on_refresh_schema,
        }

    async def get_schema(self, payload: dict) -> dict:
        """Schema of `payload["table"]` as `{"schema": dict | None, "source": ...}`."""
        table = payload["table"]
        include_inherited = payload.get("include_inherited", True) is not False

        if self._cache_schemas:
            cached = self._from_cache((table, include_inherited))
            if cached is not None:
                logger.debug("Schema cache hit for %s", table)
                return {"schema": cached.to_dict(), "source": "cache"}

        fields = await self._source.get_fields(table, include_inherited)
        if not fields:
            logger.warning("No fields found for %s", table)
            return {"schema": None, "source": "api"}

        schema = TableSchema(table=table, fields=list(fields), fetched_at=time.time())
        if self._cache_schemas:
            self._cache[(table, include_inherited)] = (schema, self._clock())

        logger.info("Schema fetched for %s: %s fields", table, len(schema.fields))
        return {"schema": schema.to_dict(), "source": "api"}

    async def get_fields(self, payload: dict) -> dict:
        result = await self.get_schema(payload)
        schema = result["schema"]
        return {
            "fields": schema["fields"] if schema else [],
            "source": result["source"],
        }

    async def get_table_info(self, payload: dict) -> dict:
        table_info = await self._source.get_table(payload["table"])
        return {"table_info": table_info, "source": "api"}

    async def refresh_schema(self, payload: dict) -> dict:
        """Drop the cached schema and fetch it again."""
        table = payload["table"]
        self.invalidate(table)
        logger.info("Refreshing schema for %s", table)
        return await self.get_schema({"table": table, "include_inherited": True})

    def invalidate(self, table: str) -> None:
        for key in [k for k in self._cache if k[0] == table]:
            del self._cache[key]

    def _from_cache(self, key: tuple[str, bool]) -> TableSchema | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        schema, cached_at = entry
        if self._clock() - cached_at >= self._refresh_interval:
            del self._cache[key]
            return None
        return schema

    async def _on_get_schema(self, envelope: dict) -> dict:
        return await self.get_schema(envelope["data"])

    async def _on_refresh_schema(self, envelope: dict) -> dict:
        return await self.refresh_schema(envelope["data"])
