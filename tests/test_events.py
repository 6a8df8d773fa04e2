"""Tests for the event registry and event-driven task execution."""

import asyncio
import logging
import threading

import pytest

from flowlite import EVENT_PAYLOAD_KEY
from flowlite import Context
from flowlite import Workflow
from flowlite.events import EventRegistry


class TestEventRegistry:
    """Tests for EventRegistry."""

    def test_register_and_dispatch(self) -> None:
        registry = EventRegistry()
        received = []
        registry.on("test_event", received.append)

        assert registry.dispatch("test_event", {"data": "hello"}) == 1
        assert received == [{"data": "hello"}]

    def test_multiple_handlers_in_registration_order(self) -> None:
        registry = EventRegistry()
        calls = []
        registry.on("test_event", lambda payload: calls.append("first"))
        registry.on("test_event", lambda payload: calls.append("second"))

        registry.dispatch("test_event")
        assert calls == ["first", "second"]

    def test_same_handler_registered_once(self) -> None:
        registry = EventRegistry()
        received = []
        registry.on("test_event", received.append)
        registry.on("test_event", received.append)

        registry.dispatch("test_event", 1)
        assert received == [1]

    def test_off_removes_registered_handler(self) -> None:
        registry = EventRegistry()
        calls = []

        def handler(payload) -> None:
            calls.append(payload)

        registry.on("test_event", handler)
        assert registry.off("test_event", lambda payload: calls.append(payload)) is False
        assert registry.off("test_event", handler) is True
        assert registry.off("test_event", handler) is False

        assert registry.dispatch("test_event", 1) == 0
        assert calls == []
        assert registry.event_names() == []

    def test_dispatch_unknown_event_does_nothing(self) -> None:
        registry = EventRegistry()
        received = []
        registry.on("known_event", received.append)

        assert registry.dispatch("unknown_event", "test") == 0
        assert received == []

    def test_handler_must_be_callable(self) -> None:
        with pytest.raises(TypeError, match="must be callable"):
            EventRegistry().on("test_event", "not callable")  # type: ignore[arg-type]

    def test_handler_exception_logged_but_doesnt_stop_other_handlers(self, caplog) -> None:
        errors = []
        registry = EventRegistry(on_error=lambda name, payload, error: errors.append(error))
        called = []

        def failing_handler(payload) -> None:
            called.append("failing")
            raise ValueError("Handler failed!")

        registry.on("test_event", failing_handler)
        registry.on("test_event", lambda payload: called.append("working"))

        registry.dispatch("test_event")

        assert called == ["failing", "working"]
        assert "Error in event handler for 'test_event'" in caplog.text
        assert len(errors) == 1 and isinstance(errors[0], ValueError)

    def test_async_handler_scheduled_and_drained(self) -> None:
        registry = EventRegistry()
        received = []

        async def handler(payload) -> None:
            await asyncio.sleep(0.01)
            received.append(payload)

        registry.on("test_event", handler)

        async def run():
            registry.dispatch("test_event", "payload")
            assert received == []
            assert registry.pending == 1
            await registry.drain()

        asyncio.run(run())
        assert received == ["payload"]
        assert registry.pending == 0

    def test_spawn_without_event_loop_uses_background_loop(self) -> None:
        registry = EventRegistry()
        threads = []

        async def work() -> str:
            threads.append(threading.current_thread().name)
            return "done"

        future = registry.spawn("test_event", None, work)
        try:
            assert future.result(timeout=5) == "done"
            asyncio.run(registry.drain())
        finally:
            registry.close()

        assert threads == ["flowlite-events"]
        assert registry.pending == 0

    def test_background_failure_reported(self, caplog) -> None:
        errors = []
        registry = EventRegistry(on_error=lambda name, payload, error: errors.append(error))

        async def handler(payload) -> None:
            raise RuntimeError("background failure")

        registry.on("test_event", handler)
        registry.dispatch("test_event", "payload")
        try:
            asyncio.run(registry.drain())
        finally:
            registry.close()

        assert len(errors) == 1 and isinstance(errors[0], RuntimeError)
        assert "Background execution for event 'test_event' failed" in caplog.text

    def test_bound_method_handlers_compare_equal(self) -> None:
        class Listener:
            def __init__(self) -> None:
                self.received = []

            def handle(self, payload) -> None:
                self.received.append(payload)

        registry = EventRegistry()
        listener = Listener()
        registry.on("test_event", listener.handle)
        registry.on("test_event", listener.handle)

        registry.dispatch("test_event", 1)
        assert listener.received == [1]

        assert registry.off("test_event", listener.handle) is True
        assert registry.dispatch("test_event", 2) == 0
        assert listener.received == [1]

    def test_close_without_background_loop_is_noop(self) -> None:
        EventRegistry().close()


class TestEventDrivenWorkflow:
    """Tests for tasks triggered by emitted events."""

    def test_event_triggers_task(self) -> None:
        results = []
        workflow = Workflow()

        async def event_driven_task(ctx: Context) -> dict:
            payload = ctx.get_required(EVENT_PAYLOAD_KEY)
            results.append(f"Processed user: {payload['user_id']}")
            return {"processed": True}

        workflow.add_task(event_driven_task, triggers=["user.created"])

        async def run():
            workflow.emit("user.created", {"user_id": "123"})
            await workflow.drain()

        asyncio.run(run())
        assert results == ["Processed user: 123"]

    def test_emit_returns_before_execution_completes(self) -> None:
        results = []
        workflow = Workflow()

        async def slow(ctx: Context) -> None:
            await asyncio.sleep(0.01)
            results.append("done")

        workflow.add_task(slow, triggers=["tick"])

        async def run():
            assert workflow.emit("tick") is None
            assert results == []
            assert workflow.pending_events == 1
            await workflow.drain()

        asyncio.run(run())
        assert results == ["done"]

    def test_multiple_tasks_on_same_event(self) -> None:
        notifications = []
        workflow = Workflow()

        def send_email(ctx: Context) -> dict:
            payload = ctx.get_required(EVENT_PAYLOAD_KEY)
            notifications.append(f"Email sent for order: {payload['order_id']}")
            return {"sent": True}

        def send_sms(ctx: Context) -> dict:
            payload = ctx.get_required(EVENT_PAYLOAD_KEY)
            notifications.append(f"SMS sent for order: {payload['order_id']}")
            return {"sent": True}

        workflow.add_task(send_email, triggers=["order.created"])
        workflow.add_task(send_sms, triggers=["order.created"])
        assert len(workflow.handlers("order.created")) == 2

        async def run():
            workflow.emit("order.created", {"order_id": "ORDER-123"})
            await workflow.drain()

        asyncio.run(run())
        assert sorted(notifications) == [
            "Email sent for order: ORDER-123",
            "SMS sent for order: ORDER-123",
        ]

    def test_task_with_multiple_triggers(self) -> None:
        seen = []
        workflow = Workflow()
        workflow.add_task(
            lambda ctx: seen.append(ctx.get(EVENT_PAYLOAD_KEY)), triggers=["a", "b"]
        )

        async def run():
            workflow.emit("a", 1)
            workflow.emit("b", 2)
            await workflow.drain()

        asyncio.run(run())
        assert sorted(seen) == [1, 2]

    def test_conditional_event_driven_execution(self) -> None:
        logs = []
        workflow = Workflow()

        def process(ctx: Context) -> dict:
            payload = ctx.get_required(EVENT_PAYLOAD_KEY)
            logs.append(f"Processed {payload['type']} notification")
            return {"processed": True}

        workflow.add_task(
            process,
            triggers=["notification"],
            condition=lambda ctx: ctx.get_required(EVENT_PAYLOAD_KEY)["priority"] == "high",
        )

        async def run():
            workflow.emit("notification", {"type": "info", "priority": "low"})
            workflow.emit("notification", {"type": "alert", "priority": "high"})
            await workflow.drain()

        asyncio.run(run())
        assert logs == ["Processed alert notification"]

    def test_emit_without_listeners_is_noop(self) -> None:
        workflow = Workflow()
        workflow.add_task(lambda ctx: None, triggers=["other"])
        workflow.emit("nobody.listens", {"x": 1})
        assert workflow.pending_events == 0

    def test_each_triggered_execution_gets_its_own_context(self) -> None:
        contexts = []
        workflow = Workflow()
        workflow.add_task(lambda ctx: contexts.append(ctx), triggers=["tick"])

        async def run():
            workflow.emit("tick", 1)
            workflow.emit("tick", 2)
            await workflow.drain()

        asyncio.run(run())
        assert len(contexts) == 2
        assert contexts[0] is not contexts[1]
        assert sorted(ctx.get(EVENT_PAYLOAD_KEY) for ctx in contexts) == [1, 2]

    def test_triggered_failure_not_raised_by_emit(self, caplog) -> None:
        attempts = []
        workflow = Workflow(max_retries=2, retry_delay=0)

        def broken(ctx: Context) -> None:
            attempts.append(1)
            raise RuntimeError("webhook down")

        workflow.add_task(broken, triggers=["order.created"])

        async def run():
            workflow.emit("order.created", {})
            await workflow.drain()

        with caplog.at_level(logging.ERROR, logger="flowlite.events"):
            asyncio.run(run())

        assert len(attempts) == 2
        assert "Background execution for event 'order.created' failed" in caplog.text

    def test_on_and_off_custom_handlers(self) -> None:
        received = []
        workflow = Workflow()

        def handler(payload) -> None:
            received.append(payload)

        workflow.on("ping", handler)
        workflow.emit("ping", 1)
        assert workflow.off("ping", handler) is True
        workflow.emit("ping", 2)
        assert received == [1]

    def test_emit_from_task_body(self) -> None:
        seen = []
        workflow = Workflow()
        workflow.add_task(
            lambda ctx: seen.append(ctx.get(EVENT_PAYLOAD_KEY)), triggers=["order.paid"]
        )

        def pay(ctx: Context) -> str:
            workflow.emit("order.paid", {"order_id": ctx.get("order_id")})
            return "paid"

        pay_id = workflow.add_task(pay)
        assert workflow.execute(pay_id, {"order_id": "order-1"}) == "paid"
        assert seen == [{"order_id": "order-1"}]

    def test_emit_from_sync_code_runs_triggered_tasks(self) -> None:
        seen = []
        workflow = Workflow()
        for name in ("a", "b"):
            workflow.add_task(
                lambda ctx, name=name: seen.append((name, ctx.get(EVENT_PAYLOAD_KEY))),
                triggers=["tick"],
            )

        workflow.emit("tick", 1)
        try:
            asyncio.run(workflow.drain())
        finally:
            workflow.close()

        assert sorted(seen) == [("a", 1), ("b", 1)]
        assert workflow.pending_events == 0

    def test_sync_emit_waits_for_siblings_of_failed_trigger(self) -> None:
        writes = []
        workflow = Workflow(max_retries=1)

        async def fails_fast(ctx: Context) -> None:
            raise ValueError("fast failure")

        async def slow_writer(ctx: Context) -> None:
            await asyncio.sleep(0.02)
            writes.append(ctx.get(EVENT_PAYLOAD_KEY))

        fast = workflow.add_task(fails_fast)
        slow = workflow.add_task(slow_writer)
        workflow.add_task(lambda ctx: None, dependencies=[fast, slow], triggers=["tick"])

        workflow.emit("tick", "payload")
        try:
            asyncio.run(workflow.drain())
        finally:
            workflow.close()

        assert writes == ["payload"]

    def test_bound_method_handler_removed_with_off(self) -> None:
        class Listener:
            def __init__(self) -> None:
                self.received = []

            def handle(self, payload) -> None:
                self.received.append(payload)

        listener = Listener()
        workflow = Workflow()
        workflow.on("ping", listener.handle)

        assert workflow.event_names() == ["ping"]
        assert workflow.off("ping", listener.handle) is True
        workflow.emit("ping", 1)
        assert listener.received == []
        assert workflow.event_names() == []
