"""Tests for Storage."""

from datetime import datetime, timedelta, timezone

import pytest

from orchestrator.models import TaskEvent


class TestStorageInit:
    """Tests for Storage initialization."""

    async def test_init_creates_tables(self, storage):
        """Test that init creates all tables."""
        async with storage._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ) as cursor:
            tables = [row[0] for row in await cursor.fetchall()]
            assert "tasks" in tables
            assert "subtasks" in tables
            assert "task_events" in tables

    async def test_uninitialized_storage_raises(self):
        from orchestrator.storage import Storage

        storage = Storage(":memory:")
        with pytest.raises(RuntimeError, match="Storage not initialized"):
            await storage.get_task("t1")


class TestStorageTasks:
    """Tests for task documents."""

    async def test_save_and_get(self, storage):
        await storage.save_task("t1", "running", "demo", "2024-01-01T00:00:00", '{"a": 1}')

        assert await storage.get_task("t1") == '{"a": 1}'
        assert await storage.get_task("missing") is None

    async def test_save_replaces(self, storage):
        await storage.save_task("t1", "running", "demo", "2024-01-01T00:00:00", "{}")
        await storage.save_task("t1", "running", "demo", "2024-01-01T00:00:00", '{"v": 2}')

        assert await storage.list_tasks() == [("t1", '{"v": 2}')]

    async def test_update_if_version(self, storage):
        """Test compare-and-set on the version column."""
        await storage.save_task("t1", "running", "demo", "2024-01-01T00:00:00", "{}")
        assert await storage.get_task_versioned("t1") == ("{}", 0)

        assert await storage.update_task_if_version("t1", 0, "completed", '{"done": true}')
        assert not await storage.update_task_if_version("t1", 0, "failed", "{}")
        assert await storage.get_task_versioned("t1") == ('{"done": true}', 1)
        assert await storage.list_tasks(status="completed") == [("t1", '{"done": true}')]

    async def test_save_bumps_version(self, storage):
        await storage.save_task("t1", "running", "demo", "2024-01-01T00:00:00", "{}")
        await storage.save_task("t1", "running", "demo", "2024-01-01T00:00:00", '{"v": 2}')

        assert await storage.get_task_versioned("t1") == ('{"v": 2}', 1)
        assert not await storage.update_task_if_version("t1", 0, "running", "{}")

    async def test_update_missing_task(self, storage):
        assert not await storage.update_task_if_version("nope", 0, "failed", "{}")
        assert await storage.get_task_versioned("nope") is None

    async def test_list_filters_and_order(self, storage):
        await storage.save_task("old", "running", "a", "2024-01-01T00:00:00", "1")
        await storage.save_task("new", "running", "a", "2024-01-02T00:00:00", "2")
        await storage.save_task("other", "failed", "b", "2024-01-03T00:00:00", "3")

        assert [t for t, _ in await storage.list_tasks()] == ["other", "new", "old"]
        assert [t for t, _ in await storage.list_tasks(status="running")] == ["new", "old"]
        assert [t for t, _ in await storage.list_tasks(project="b")] == ["other"]
        assert await storage.list_tasks(status="running", project="b") == []

    async def test_delete_removes_subtasks(self, storage):
        await storage.save_task("t1", "running", "a", "2024-01-01T00:00:00", "{}")
        await storage.save_subtask("t1", "t1-part1", "running", "2024-01-01T00:00:00", "{}")

        assert await storage.delete_task("t1") is True
        assert await storage.delete_task("t1") is False
        assert await storage.list_subtasks("t1") == []


class TestStorageSubtasks:
    """Tests for subtask documents."""

    async def test_save_get_list(self, storage):
        await storage.save_subtask("t1", "t1-part2", "running", "2024-01-01T00:00:02", "b")
        await storage.save_subtask("t1", "t1-part1", "running", "2024-01-01T00:00:01", "a")
        await storage.save_subtask("t2", "t2-part1", "running", "2024-01-01T00:00:00", "c")

        assert await storage.get_subtask("t1", "t1-part1") == "a"
        assert await storage.get_subtask("t2", "t1-part1") is None
        assert await storage.list_subtasks("t1") == [("t1-part1", "a"), ("t1-part2", "b")]


class TestStorageTaskEvents:
    """Tests for TaskEvent storage."""

    def event(self, event_id, task_id, event_type, offset=0):
        return TaskEvent(
            id=event_id,
            task_id=task_id,
            event_type=event_type,
            details={"n": offset},
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=offset),
            status_from="running" if event_type == "finalized" else None,
            status_to="completed" if event_type == "finalized" else None,
        )

    async def test_save_and_read(self, storage):
        await storage.save_task_event(self.event("e1", "t1", "submitted"))

        events = await storage.get_task_events()

        assert len(events) == 1
        assert events[0].details == {"n": 0}
        assert events[0].timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)

    async def test_filters_newest_first(self, storage):
        await storage.save_task_event(self.event("e1", "t1", "submitted", 0))
        await storage.save_task_event(self.event("e2", "t1", "progress", 1))
        await storage.save_task_event(self.event("e3", "t1", "finalized", 2))
        await storage.save_task_event(self.event("e4", "t2", "submitted", 3))

        assert [e.id for e in await storage.get_task_events(task_id="t1")] == ["e3", "e2", "e1"]
        assert [e.id for e in await storage.get_task_events(event_types=["submitted"])] == [
            "e4",
            "e1",
        ]
        assert [e.id for e in await storage.get_task_events(limit=2)] == ["e4", "e3"]

        finalized = (await storage.get_task_events(event_types=["finalized"]))[0]
        assert (finalized.status_from, finalized.status_to) == ("running", "completed")

    async def test_clear(self, storage):
        await storage.save_task("t1", "running", "a", "2024-01-01T00:00:00", "{}")
        await storage.save_task_event(self.event("e1", "t1", "submitted"))

        await storage.clear()

        assert await storage.list_tasks() == []
        assert await storage.get_task_events() == []
