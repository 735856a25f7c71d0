#!/usr/bin/env python3
"""
Tests for the command invoker (inline vs deferred execution).

Run with: pytest tests/test_invoker.py -v
"""
import time
from unittest.mock import MagicMock

from conftest import INTERACTION_ID, command_body, encode
from src.runtime.errors import HandlerError, QueueError
from src.runtime.interaction import CommandResult, Interaction, ResultStatus, WorkItem
from src.runtime.invoker import CommandInvoker, calculate_retry_delay, coerce_result, run_handler
from src.runtime.registry import CommandDescriptor


def _interaction(name="ping-cmd", **extra):
    return Interaction.from_payload(encode(command_body(name, **extra)))


# =============================================================================
# TEST: Synchronous path
# =============================================================================

class TestSyncInvoke:

    def test_inline_result(self, invoker, registry, calls, deps):
        result = invoker.invoke(registry.lookup("ping-cmd"), _interaction())

        assert result.status == ResultStatus.OK
        assert result.content == "pong"
        assert calls == [("ping-cmd", INTERACTION_ID)]
        assert len(deps.work_queue) == 0
        print("✓ Sync command runs inline and never enqueues")

    def test_exception_becomes_failed(self, invoker):
        def explode(interaction, deps):
            raise RuntimeError("disk on fire")

        result = invoker.invoke(CommandDescriptor(name="boom", handler=explode), _interaction("boom"))
        assert result.is_failed
        assert "disk on fire" in result.content
        print("✓ Handler exception mapped to FAILED with error text")

    def test_handler_error_message(self, invoker):
        def refuse(interaction, deps):
            raise HandlerError("Not allowed here")

        result = invoker.invoke(CommandDescriptor(name="refuse", handler=refuse), _interaction("refuse"))
        assert result.is_failed
        assert result.content == "Not allowed here"

    def test_timeout_becomes_failed(self, deps):
        invoker = CommandInvoker(deps, sync_timeout_seconds=0.05)

        def slow(interaction, deps):
            time.sleep(0.5)
            return CommandResult.message("too late")

        started = time.monotonic()
        result = invoker.invoke(CommandDescriptor(name="slow", handler=slow), _interaction("slow"))
        assert result.is_failed
        assert "took too long" in result.content
        assert time.monotonic() - started < 0.4
        print("✓ Overrunning handler answered with FAILED")

    def test_plain_string_result(self, invoker):
        result = invoker.invoke(CommandDescriptor(name="s", handler=lambda i, d: "hello"), _interaction("s"))
        assert result.is_ok
        assert result.content == "hello"


class TestCoerceResult:

    def test_dict_payload(self):
        result = coerce_result({"type": 4, "data": {"content": "raw"}})
        assert result.status == ResultStatus.OK
        assert result.content == "raw"

    def test_unsupported_type(self):
        descriptor = CommandDescriptor(name="bad", handler=lambda i, d: 42)
        result = run_handler(descriptor, _interaction("bad"), None)
        assert result.is_failed
        assert "unsupported result type int" in result.content


# =============================================================================
# TEST: Deferred path
# =============================================================================

class TestAsyncInvoke:

    def test_defers_exactly_one_work_item(self, invoker, registry, calls, deps):
        result = invoker.invoke(registry.lookup("long-task"), _interaction("long-task"))

        assert result.status == ResultStatus.DEFERRED
        assert result.payload == {"type": 5}
        assert result.follow_up_required is True
        assert calls == []

        items = deps.work_queue.items
        assert len(items) == 1
        assert items[0].command_name == "long-task"
        assert items[0].origin_interaction_id == INTERACTION_ID
        assert items[0].token == "interaction-token"
        print("✓ Async command deferred with one work item")

    def test_ephemeral_defer(self, invoker):
        descriptor = CommandDescriptor(name="quiet", handler=lambda i, d: "x", is_async=True, ephemeral=True)
        result = invoker.invoke(descriptor, _interaction("quiet"))
        assert result.payload == {"type": 5, "data": {"flags": 64}}

    def test_component_defers_as_update(self, invoker):
        interaction = Interaction.from_payload(b'{"type": 3, "id": "77", "data": {"custom_id": "refresh:1"}}')
        descriptor = CommandDescriptor(name="refresh", handler=lambda i, d: "x", is_async=True)
        result = invoker.invoke(descriptor, interaction)
        assert result.payload == {"type": 6}

    def test_enqueue_retried(self, deps):
        queue = MagicMock()
        queue.enqueue.side_effect = [QueueError("throttled"), "msg-1"]
        sleep = MagicMock()
        invoker = CommandInvoker(deps, work_queue=queue, enqueue_attempts=2, sleep=sleep)

        descriptor = CommandDescriptor(name="long-task", handler=lambda i, d: "x", is_async=True)
        result = invoker.invoke(descriptor, _interaction("long-task"))

        assert result.is_deferred
        assert queue.enqueue.call_count == 2
        sleep.assert_called_once_with(calculate_retry_delay(0))
        item = queue.enqueue.call_args[0][0]
        assert isinstance(item, WorkItem)
        print("✓ Enqueue retried after a transient failure")

    def test_enqueue_exhausted_fails(self, deps):
        queue = MagicMock()
        queue.enqueue.side_effect = QueueError("down")
        invoker = CommandInvoker(deps, work_queue=queue, enqueue_attempts=3, sleep=lambda s: None)

        descriptor = CommandDescriptor(name="long-task", handler=lambda i, d: "x", is_async=True)
        result = invoker.invoke(descriptor, _interaction("long-task"))

        assert result.is_failed
        assert "could not be scheduled" in result.content
        assert queue.enqueue.call_count == 3
        print("✓ Exhausted enqueue attempts surface FAILED")

    def test_from_deps_uses_settings(self, deps):
        invoker = CommandInvoker.from_deps(deps)
        assert invoker.sync_timeout_seconds == deps.settings.sync_timeout_seconds
        assert invoker.enqueue_attempts == deps.settings.enqueue_attempts
        assert invoker.work_queue is deps.work_queue


class TestRetryDelay:

    def test_backoff_capped(self):
        assert calculate_retry_delay(0) == 0.05
        assert calculate_retry_delay(1) == 0.1
        assert calculate_retry_delay(10) == 0.4
