"""Tests for RecordOperationsAgent."""

import pytest

from orchestrator.errors import LockHeld

VALID = {"short_description": "Printer on fire", "priority": 1}


@pytest.fixture
def events(bus):
    """Topic -> list of published data, for the record lifecycle topics."""
    captured: dict[str, list] = {}
    for topic in (
        "record.created",
        "record.create-failed",
        "record.updated",
        "record.deleted",
        "sync.trigger",
        "cache.invalidate",
    ):
        captured[topic] = []
        bus.subscribe(topic, lambda envelope, t=topic: captured[t].append(envelope["data"]))
    return captured


@pytest.fixture
def record_ops(agents):
    return agents["record-ops"]


class TestCreateRecord:
    """Tests for create-record."""

    async def test_create_valid_record(self, record_ops, records, events):
        result = await record_ops.create_record({"table": "incident", "data": VALID})

        assert result["success"] is True
        assert records.count("incident") == 1
        stored = await records.get_record("incident", result["sys_id"])
        assert stored["short_description"] == "Printer on fire"

        assert events["record.created"][0]["sys_id"] == result["sys_id"]
        assert events["sync.trigger"][0] == {
            "action": "pull-record",
            "table": "incident",
            "sys_id": result["sys_id"],
        }
        assert events["cache.invalidate"] == [{"table": "incident"}]

    async def test_invalid_data_is_returned_not_raised(self, record_ops, records, events):
        result = await record_ops.create_record(
            {"table": "incident", "data": {"priority": "high"}}
        )

        assert result["success"] is False
        assert result["error"] == "validation_failed"
        assert len(result["errors"]) == 2
        assert result["rolled_back"] is False
        assert records.count("incident") == 0
        assert events["record.create-failed"][0]["table"] == "incident"
        assert events["record.created"] == []

    async def test_skip_validation(self, record_ops, records):
        result = await record_ops.create_record(
            {"table": "incident", "data": {"priority": 1}, "validate_first": False}
        )
        assert result["success"] is True
        assert records.count("incident") == 1

    async def test_ai_generation_fills_fields(self, record_ops, records, mock_llm):
        result = await record_ops.create_record(
            {
                "table": "incident",
                "data": {"priority": 3},
                "validate_first": False,
                "use_ai": True,
                "ai_prompt": "a broken printer",
            }
        )

        assert result["record"]["short_description"] == "Generated"
        assert result["record"]["priority"] == 3
        mock_llm.complete.assert_awaited_once()

    async def test_post_insert_validation_failure_rolls_back(
        self, record_ops, records, events
    ):
        """The inserted record is deleted before the failure is returned."""
        result = await record_ops.create_record(
            {
                "table": "incident",
                "data": {"priority": 1},
                "validate_first": False,
                "validate_after": True,
            }
        )

        assert result["success"] is False
        assert result["rolled_back"] is True
        assert records.count("incident") == 0
        assert events["record.created"] == []
        assert len(events["record.create-failed"]) == 1

    async def test_post_insert_validation_success_keeps_warnings(self, record_ops):
        result = await record_ops.create_record(
            {
                "table": "incident",
                "data": {**VALID, "color": "red"},
                "validate_after": True,
            }
        )
        assert result["success"] is True
        assert result["warnings"] == ["Unknown field: color"]

    async def test_store_failure_publishes_and_raises(
        self, record_ops, records, events, monkeypatch
    ):
        async def broken(table, data):
            raise ConnectionError("store unreachable")

        monkeypatch.setattr(records, "create_record", broken)

        with pytest.raises(ConnectionError):
            await record_ops.create_record({"table": "incident", "data": VALID})
        assert events["record.create-failed"] == [
            {"table": "incident", "error": "store unreachable"}
        ]


class TestUpdateAndDelete:
    """Tests for locked update-record / delete-record."""

    @pytest.fixture
    async def sys_id(self, record_ops):
        result = await record_ops.create_record({"table": "incident", "data": VALID})
        return result["sys_id"]

    async def test_update_releases_lock(self, record_ops, lock_manager, sys_id, events):
        result = await record_ops.update_record(
            {"table": "incident", "sys_id": sys_id, "data": {"priority": 2}}
        )

        assert result["success"] is True
        assert result["record"]["priority"] == 2
        assert lock_manager.is_locked(f"incident:{sys_id}") is None
        assert events["record.updated"][0]["changes"] == ["priority"]

    async def test_update_read_only_field_warns(self, record_ops, sys_id):
        result = await record_ops.update_record(
            {"table": "incident", "sys_id": sys_id, "data": {"number": "INC1"}}
        )
        assert result["success"] is True
        assert result["warnings"] == ["Field 'Number' (number) is read-only"]

    async def test_update_refused_while_locked(self, record_ops, lock_manager, sys_id):
        lock_manager.acquire_lock(f"incident:{sys_id}", "someone-else")

        with pytest.raises(LockHeld):
            await record_ops.update_record(
                {"table": "incident", "sys_id": sys_id, "data": {"priority": 2}}
            )
        assert lock_manager.is_locked(f"incident:{sys_id}").holder_id == "someone-else"

    async def test_lock_released_when_update_fails(self, record_ops, lock_manager):
        with pytest.raises(KeyError):
            await record_ops.update_record(
                {"table": "incident", "sys_id": "missing", "data": {"priority": 2}}
            )
        assert lock_manager.is_locked("incident:missing") is None

    async def test_lock_released_on_validation_failure(
        self, record_ops, lock_manager, sys_id
    ):
        result = await record_ops.update_record(
            {"table": "incident", "sys_id": sys_id, "data": {"priority": "high"}}
        )
        assert result["success"] is False
        assert lock_manager.active_locks == []

    async def test_delete(self, record_ops, records, lock_manager, sys_id, events):
        result = await record_ops.delete_record({"table": "incident", "sys_id": sys_id})

        assert result == {"success": True, "sys_id": sys_id}
        assert records.count("incident") == 0
        assert lock_manager.active_locks == []
        assert events["record.deleted"] == [{"table": "incident", "sys_id": sys_id}]

    async def test_delete_refused_while_locked(self, record_ops, lock_manager, sys_id):
        lock_manager.acquire_lock(f"incident:{sys_id}", "someone-else")
        with pytest.raises(LockHeld):
            await record_ops.delete_record({"table": "incident", "sys_id": sys_id})

    async def test_lapsed_update_keeps_successor_lock(
        self, record_ops, records, lock_manager, clock, sys_id
    ):
        """An update that outlives its lease must not free the next holder's lock."""
        lock_key = f"incident:{sys_id}"
        update = records.update_record

        async def slow_update(table, record_id, data):
            clock.advance(31)
            assert lock_manager.acquire_lock(lock_key, "successor")
            return await update(table, record_id, data)

        records.update_record = slow_update

        result = await record_ops.update_record(
            {
                "table": "incident",
                "sys_id": sys_id,
                "data": {"priority": 2},
                "validate_first": False,
            }
        )

        assert result["success"] is True
        assert lock_manager.is_locked(lock_key).holder_id == "successor"

    async def test_concurrent_operations_use_distinct_holders(
        self, record_ops, records, lock_manager, sys_id
    ):
        seen: list[str] = []
        update = records.update_record

        async def spying_update(table, record_id, data):
            seen.append(lock_manager.is_locked(f"{table}:{record_id}").holder_id)
            return await update(table, record_id, data)

        records.update_record = spying_update
        payload = {
            "table": "incident",
            "sys_id": sys_id,
            "data": {"priority": 2},
            "validate_first": False,
        }

        await record_ops.update_record(payload)
        await record_ops.update_record(payload)

        assert len(set(seen)) == 2
        assert all(holder.startswith(f"{record_ops.id}:") for holder in seen)

    async def test_health_reports_own_locks(self, record_ops, lock_manager):
        lock_manager.acquire_lock("incident:1", f"{record_ops.id}:op-1")
        lock_manager.acquire_lock("incident:2", "someone-else")

        health = await record_ops.health_check()

        assert health["active_locks"] == 1
        assert health["locks"] == ["incident:1"]


class TestRecordTopics:
    async def test_record_create_topic(self, bus, agents, records):
        outcomes = await bus.publish(
            "record.create", {"data": {"table": "incident", "data": VALID}}
        )
        assert outcomes[0].result["success"] is True
        assert records.count("incident") == 1
