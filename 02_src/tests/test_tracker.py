"""Tests for Tracker."""

from datetime import datetime, timezone

import pytest


class TestTrackerTrack:
    """Tests for Tracker.track() method."""

    async def test_track_creates_event(self, tracker, storage):
        """Test that track() creates a TaskEvent."""
        await tracker.track(
            "t1",
            "finalized",
            {"key": "value"},
            status_from="running",
            status_to="failed",
        )

        events = await storage.get_task_events()
        assert len(events) == 1
        assert events[0].task_id == "t1"
        assert events[0].event_type == "finalized"
        assert events[0].details == {"key": "value"}
        assert events[0].status_from == "running"
        assert events[0].status_to == "failed"

    async def test_track_generates_id_and_timestamp(self, tracker, storage):
        before = datetime.now(timezone.utc)
        await tracker.track("t1", "submitted")
        after = datetime.now(timezone.utc)

        events = await storage.get_task_events()
        assert events[0].id is not None
        assert events[0].details == {}
        assert before <= events[0].timestamp <= after

    async def test_get_events_by_task(self, tracker):
        await tracker.track("t1", "submitted")
        await tracker.track("t2", "submitted")
        await tracker.track("t1", "progress", {"stage": "coder"})

        events = await tracker.get_events("t1")

        assert {e.event_type for e in events} == {"submitted", "progress"}
        assert len(await tracker.get_events(limit=1)) == 1

    async def test_storage_errors_propagate(self, tracker, storage):
        await storage.close()

        with pytest.raises(RuntimeError, match="not initialized"):
            await tracker.track("t1", "submitted")
