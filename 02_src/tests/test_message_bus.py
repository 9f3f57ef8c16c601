"""Tests for MessageBus and AgentRegistry."""

import pytest

from orchestrator.errors import RecipientNotFound, UnknownAction
from orchestrator.models import DeliveryMode, Message


def direct(target: str, **payload) -> Message:
    return Message(id="", target=target, payload=payload, sender="test")


class TestMessageModel:
    """Tests for Message construction."""

    def test_requires_exactly_one_address(self):
        with pytest.raises(ValueError):
            Message(id="m1", payload={})
        with pytest.raises(ValueError):
            Message(id="m1", payload={}, target="a", topic="b")

    def test_mode_follows_address(self):
        assert Message(id="m1", payload={}, target="a").mode is DeliveryMode.DIRECT
        assert Message(id="m1", payload={}, topic="t").mode is DeliveryMode.TOPIC


class TestBusSend:
    """Tests for direct delivery."""

    async def test_send_by_agent_id(self, bus, echo_agent):
        """Exact id resolves to the agent and its result comes back."""
        result = await bus.send(direct("echo_agent", action="echo", value=1))
        assert result == {"echo": {"value": 1}}

    async def test_send_by_agent_type(self, bus, echo_agent):
        result = await bus.send(direct("echo", action="echo", value=2))
        assert result == {"echo": {"value": 2}}

    async def test_send_assigns_message_id(self, bus, echo_agent):
        message = direct("echo", action="echo")
        await bus.send(message)
        assert message.id

    async def test_unknown_target_raises(self, bus, echo_agent):
        with pytest.raises(RecipientNotFound) as exc_info:
            await bus.send(direct("nobody", action="echo"))
        assert exc_info.value.target == "nobody"

    async def test_recipient_failure_propagates(self, bus, echo_agent):
        with pytest.raises(RuntimeError, match="boom"):
            await bus.send(direct("echo", action="fail"))

    async def test_action_outside_capabilities_rejected(self, bus, echo_agent_cls):
        agent = echo_agent_cls(bus, agent_id="limited", capabilities={"echo"})
        bus.register_agent(agent)

        with pytest.raises(UnknownAction):
            await bus.send(direct("limited", action="fail"))

    async def test_sink_receives_orchestrator_messages(self, bus):
        received = []

        async def sink(message):
            received.append(message)
            return "handled"

        bus.set_sink(sink)
        result = await bus.send(direct("orchestrator", action="get-stats"))

        assert result == "handled"
        assert received[0].payload == {"action": "get-stats"}

    async def test_send_without_target_raises(self, bus):
        with pytest.raises(ValueError):
            await bus.send(Message(id="m1", topic="t", payload={}))


class TestBusPublish:
    """Tests for topic fan-out."""

    async def test_publish_reaches_every_subscriber(self, bus):
        calls = []

        async def first(data):
            calls.append(("first", data))

        def second(data):
            calls.append(("second", data))

        bus.subscribe("record.created", first, subscriber_id="a")
        bus.subscribe("record.created", second, subscriber_id="b")

        outcomes = await bus.publish("record.created", {"sys_id": "1"})

        assert sorted(name for name, _ in calls) == ["first", "second"]
        assert [o.subscriber_id for o in outcomes] == ["a", "b"]
        assert all(o.ok for o in outcomes)

    async def test_failing_subscriber_does_not_block_others(self, bus):
        """A raising handler is reported in its outcome only."""
        delivered = []

        async def broken(data):
            raise RuntimeError("subscriber down")

        async def healthy(data):
            delivered.append(data)
            return "ok"

        bus.subscribe("t", broken, subscriber_id="broken")
        bus.subscribe("t", healthy, subscriber_id="healthy")

        outcomes = await bus.publish("t", {"n": 1})

        assert delivered == [{"n": 1}]
        by_id = {o.subscriber_id: o for o in outcomes}
        assert isinstance(by_id["broken"].error, RuntimeError)
        assert by_id["healthy"].result == "ok"

    async def test_publisher_data_is_not_shared(self, bus):
        """Subscribers get a snapshot, not the publisher's dict."""
        data = {"items": [1]}

        def mutate(received):
            received["items"].append(2)

        bus.subscribe("t", mutate)
        await bus.publish("t", data)

        assert data == {"items": [1]}

    async def test_publish_without_subscribers(self, bus):
        assert await bus.publish("nobody.listens", {}) == []

    async def test_unsubscribe(self, bus):
        calls = []

        async def handler(data):
            calls.append(data)

        bus.subscribe("t", handler)
        assert bus.unsubscribe("t", handler) is True
        assert bus.unsubscribe("t", handler) is False
        assert "t" not in bus.topics

        await bus.publish("t", {})
        assert calls == []


class TestBusDiagnostics:
    """Tests for the message log and stats."""

    async def test_log_is_bounded(self, bus):
        for i in range(60):
            await bus.publish("t", {"i": i})

        log = bus.get_message_log(limit=1000)
        assert len(log) == 50
        assert log[-1].payload == {"i": 59}

    async def test_log_records_direct_and_topic(self, bus, echo_agent):
        await bus.send(direct("echo", action="echo"))
        await bus.publish("t", {})

        modes = [entry.mode for entry in bus.get_message_log()]
        assert modes == [DeliveryMode.DIRECT, DeliveryMode.TOPIC]

    async def test_clear_log(self, bus):
        await bus.publish("t", {})
        bus.clear_message_log()
        assert bus.get_message_log() == []

    async def test_stats(self, bus, echo_agent):
        stats = bus.get_stats()
        assert stats["registered_agents"] == 1
        assert stats["topics"] == 0


class TestAgentRegistry:
    """Tests for AgentRegistry lookups."""

    def test_lookup_by_type_and_capability(self, registry, bus, echo_agent_cls):
        a = echo_agent_cls(bus, agent_id="a")
        b = echo_agent_cls(bus, agent_id="b", capabilities={"echo"})
        registry.register(a)
        registry.register(b)

        assert registry.get("a") is a
        assert registry.find("echo") is a
        assert registry.by_type("echo") == [a, b]
        assert registry.by_capability("fail") == [a]
        assert len(registry) == 2

    def test_unregister(self, registry, bus, echo_agent_cls):
        agent = echo_agent_cls(bus, agent_id="a")
        registry.register(agent)

        assert registry.unregister("a") is agent
        assert registry.unregister("a") is None
        assert "a" not in registry
