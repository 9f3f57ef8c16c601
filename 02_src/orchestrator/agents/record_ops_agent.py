"""RecordOperationsAgent: validated, locked CRUD on the record store."""

import uuid
from enum import Enum

from ..collaborators.records import IRecordService
from ..errors import LockHeld
from ..locking import LockManager
from ..logging_config import get_logger
from ..message_bus import IMessageBus
from ..models import ValidationFailed
from .base import BaseAgent

logger = get_logger(__name__)


class RecordOperationsAgent(BaseAgent):
    """Creates, updates and deletes records.

    Updates and deletes hold a lock on `"<table>:<sys_id>"` for the whole
    operation, under a holder id unique to that operation. Validation
    failures come back as a `ValidationFailed` dict with `success: False`;
    infrastructure failures raise.
    """

    agent_type = "record-ops"

    class Action(str, Enum):
        CREATE_RECORD = "create-record"
        UPDATE_RECORD = "update-record"
        DELETE_RECORD = "delete-record"

    def __init__(
        self,
        bus: IMessageBus,
        records: IRecordService,
        lock_manager: LockManager,
        lock_ttl: float | None = None,
        **kwargs,
    ):
        super().__init__(bus, **kwargs)
        self._records = records
        self._locks = lock_manager
        self._lock_ttl = lock_ttl

    def _handlers(self):
        return {
            self.Action.CREATE_RECORD: self.create_record,
            self.Action.UPDATE_RECORD: self.update_record,
            self.Action.DELETE_RECORD: self.delete_record,
        }

    def subscriptions(self):
        return {
            "record.create": self._on_create,
            "record.update": self._on_update,
            "record.delete": self._on_delete,
        }

    async def create_record(self, payload: dict) -> dict:
        table = payload["table"]
        data = payload.get("data") or {}
        logger.info("Creating record in %s", table)

        try:
            if payload.get("validate_first", True) is not False:
                validation = await self._validate(table, data, is_update=False)
                if validation is not None and not validation["valid"]:
                    failed = ValidationFailed(
                        table, validation["errors"], validation["warnings"]
                    )
                    await self.publish(
                        "record.create-failed",
                        {"table": table, "errors": failed.errors},
                    )
                    return failed.to_dict()

            record_data = dict(data)
            if payload.get("use_ai") and payload.get("ai_prompt"):
                ai_response = await self.delegate_task(
                    "ai",
                    {
                        "action": "ai-generate",
                        "table": table,
                        "prompt": payload["ai_prompt"],
                        "base_data": record_data,
                    },
                )
                if ai_response and ai_response.get("data"):
                    record_data = {**record_data, **ai_response["data"]}

            record = await self._records.create_record(table, record_data)
            sys_id = record["sys_id"]

            warnings: list[str] = []
            if payload.get("validate_after"):
                validation = await self._validate(table, record_data, is_update=False)
                if validation is not None:
                    warnings = validation["warnings"]
                    if not validation["valid"]:
                        await self._records.delete_record(table, sys_id)
                        logger.warning(
                            "Rolled back %s/%s after failed validation", table, sys_id
                        )
                        failed = ValidationFailed(
                            table,
                            validation["errors"],
                            validation["warnings"],
                            rolled_back=True,
                        )
                        await self.publish(
                            "record.create-failed",
                            {"table": table, "errors": failed.errors},
                        )
                        return failed.to_dict()

        except Exception as e:
            logger.error("Create in %s failed: %s", table, e)
            await self.publish("record.create-failed", {"table": table, "error": str(e)})
            raise

        logger.info("Record created: %s/%s", table, sys_id)
        await self.publish(
            "record.created", {"table": table, "sys_id": sys_id, "data": record_data}
        )
        await self.publish(
            "sync.trigger", {"action": "pull-record", "table": table, "sys_id": sys_id}
        )
        await self.publish("cache.invalidate", {"table": table})

        return {"success": True, "sys_id": sys_id, "record": record, "warnings": warnings}

    async def update_record(self, payload: dict) -> dict:
        table = payload["table"]
        sys_id = payload["sys_id"]
        data = payload.get("data") or {}
        lock_key = f"{table}:{sys_id}"

        holder = self._holder_token()
        if not self._locks.acquire_lock(lock_key, holder, self._lock_ttl):
            raise LockHeld(lock_key)

        try:
            warnings: list[str] = []
            if payload.get("validate_first", True) is not False:
                validation = await self._validate(table, data, is_update=True)
                if validation is not None:
                    warnings = validation["warnings"]
                    if not validation["valid"]:
                        return ValidationFailed(
                            table, validation["errors"], warnings
                        ).to_dict()

            record = await self._records.update_record(table, sys_id, data)
            logger.info("Record updated: %s", lock_key)

            await self.publish(
                "record.updated",
                {"table": table, "sys_id": sys_id, "changes": list(data)},
            )
            await self.publish(
                "sync.trigger",
                {"action": "pull-record", "table": table, "sys_id": sys_id},
            )
            await self.publish("cache.invalidate", {"table": table})

            return {
                "success": True,
                "sys_id": sys_id,
                "record": record,
                "warnings": warnings,
            }
        finally:
            self._locks.release_lock(lock_key, holder)

    async def delete_record(self, payload: dict) -> dict:
        table = payload["table"]
        sys_id = payload["sys_id"]
        lock_key = f"{table}:{sys_id}"

        holder = self._holder_token()
        if not self._locks.acquire_lock(lock_key, holder, self._lock_ttl):
            raise LockHeld(lock_key)

        try:
            await self._records.delete_record(table, sys_id)
            logger.info("Record deleted: %s", lock_key)

            await self.publish("record.deleted", {"table": table, "sys_id": sys_id})
            await self.publish("cache.invalidate", {"table": table})

            return {"success": True, "sys_id": sys_id}
        finally:
            self._locks.release_lock(lock_key, holder)

    async def health_check(self) -> dict:
        health = await super().health_check()
        held = [
            lock.resource_key
            for lock in self._locks.active_locks
            if lock.holder_id.partition(":")[0] == self.id
        ]
        health["active_locks"] = len(held)
        health["locks"] = held
        return health

    def _holder_token(self) -> str:
        """Lock holder id unique to one operation: `"<agent id>:<uuid>"`."""
        return f"{self.id}:{uuid.uuid4().hex}"

    async def _validate(self, table: str, data: dict, is_update: bool) -> dict | None:
        """Validation result dict, or None when the table has no schema."""
        schema_response = await self.delegate_task(
            "schema", {"action": "get-schema", "table": table}
        )
        schema = (schema_response or {}).get("schema")
        if schema is None:
            return None
        return await self.delegate_task(
            "validation",
            {
                "action": "validate-record",
                "table": table,
                "data": data,
                "schema": schema,
                "is_update": is_update,
            },
        )

    async def _on_create(self, envelope: dict) -> dict:
        return await self.create_record(envelope["data"])

    async def _on_update(self, envelope: dict) -> dict:
        return await self.update_record(envelope["data"])

    async def _on_delete(self, envelope: dict) -> dict:
        return await self.delete_record(envelope["data"])
