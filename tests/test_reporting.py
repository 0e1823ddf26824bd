"""Unit tests for the heartbeat and event/status reporters.

Covers:
- Heartbeat loop surviving failures and honouring cancellation
- Event first, then at most one status update per status-bearing event
- DONE carrying the recording in the same status call
- Forward-only status and the terminal guard
- Best-effort swallowing of client failures
"""

from __future__ import annotations

import asyncio
import time
from unittest.mock import AsyncMock, call

import pytest

from meeting_bot.core.exceptions import ReportingError
from meeting_bot.models import EventCode, EventData, LifecycleStatus
from meeting_bot.monitoring import EventReporter, HeartbeatReporter, best_effort


async def wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def client():
    mock = AsyncMock()
    mock.report_event = AsyncMock()
    mock.update_bot_status = AsyncMock()
    mock.heartbeat = AsyncMock(return_value=True)
    return mock


# ── Heartbeat ───────────────────────────────────────────────────────────────


class TestHeartbeatReporter:

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_the_loop(self, client):
        client.heartbeat.side_effect = [ReportingError("down")] * 3 + [True] * 1000
        reporter = HeartbeatReporter(client, interval_seconds=0.01)
        cancel = asyncio.Event()

        task = asyncio.create_task(reporter.run(42, cancel))
        await wait_until(lambda: reporter.sent >= 1)
        cancel.set()
        await asyncio.wait_for(task, timeout=1)

        assert reporter.failed == 3
        assert reporter.sent >= 1
        assert reporter.last_sent_at is not None
        client.heartbeat.assert_awaited_with(42)

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_logged_not_raised(self, client):
        client.heartbeat.side_effect = [RuntimeError("boom")] + [True] * 1000
        reporter = HeartbeatReporter(client, interval_seconds=0.01)
        cancel = asyncio.Event()

        task = asyncio.create_task(reporter.run(42, cancel))
        await wait_until(lambda: reporter.sent >= 1)
        cancel.set()
        await asyncio.wait_for(task, timeout=1)

        assert reporter.failed == 1

    @pytest.mark.asyncio
    async def test_cancellation_within_one_interval(self, client):
        reporter = HeartbeatReporter(client, interval_seconds=30)
        cancel = asyncio.Event()

        task = asyncio.create_task(reporter.run(42, cancel))
        await wait_until(lambda: reporter.sent == 1)
        cancel.set()
        await asyncio.wait_for(task, timeout=1)
        sent = client.heartbeat.await_count
        await asyncio.sleep(0.05)

        assert client.heartbeat.await_count == sent == 1

    @pytest.mark.asyncio
    async def test_nothing_sent_when_already_cancelled(self, client):
        cancel = asyncio.Event()
        cancel.set()

        await HeartbeatReporter(client, interval_seconds=0.01).run(42, cancel)

        client.heartbeat.assert_not_awaited()


# ── Events and status ───────────────────────────────────────────────────────


class TestEventReporter:

    @pytest.mark.asyncio
    async def test_event_then_status(self, client):
        reporter = EventReporter(client)
        manager = AsyncMock()
        manager.attach_mock(client.report_event, "report_event")
        manager.attach_mock(client.update_bot_status, "update_bot_status")

        await reporter.report_event(42, EventCode.JOINING)

        assert [c[0] for c in manager.mock_calls] == ["report_event", "update_bot_status"]
        event = client.report_event.await_args.args[1]
        assert event.event_type is EventCode.JOINING
        client.update_bot_status.assert_awaited_once_with(42, LifecycleStatus.JOINING, recording=None)
        assert reporter.current_status(42) is LifecycleStatus.JOINING

    @pytest.mark.asyncio
    async def test_non_status_event_sends_no_status(self, client):
        reporter = EventReporter(client)

        await reporter.report_event(42, EventCode.RECORDING_STARTED)

        client.report_event.assert_awaited_once()
        client.update_bot_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_done_sends_single_status_call_with_recording(self, client):
        reporter = EventReporter(client)
        await reporter.report_event(42, EventCode.IN_CALL)
        client.update_bot_status.reset_mock()

        await reporter.report_event(42, EventCode.DONE, recording="s3://bucket/bot-42.webm")

        client.update_bot_status.assert_awaited_once_with(
            42, LifecycleStatus.DONE, recording="s3://bucket/bot-42.webm"
        )

    @pytest.mark.asyncio
    async def test_done_without_recording_refused(self, client):
        reporter = EventReporter(client)

        await reporter.report_event(42, EventCode.DONE)

        client.report_event.assert_not_awaited()
        client.update_bot_status.assert_not_awaited()
        assert reporter.current_status(42) is None

    @pytest.mark.asyncio
    async def test_nothing_after_terminal(self, client):
        reporter = EventReporter(client)
        await reporter.report_event(42, EventCode.FAILED, data=EventData(description="boom"))

        await reporter.report_event(42, EventCode.IN_CALL)
        await reporter.report_event(42, EventCode.DONE, recording="/tmp/x.webm")

        assert client.update_bot_status.await_args_list == [
            call(42, LifecycleStatus.FAILED, recording=None),
        ]
        assert reporter.current_status(42) is LifecycleStatus.FAILED

    @pytest.mark.asyncio
    async def test_backward_and_repeated_transitions_skipped(self, client):
        reporter = EventReporter(client)
        await reporter.report_event(42, EventCode.JOINING)
        await reporter.report_event(42, EventCode.IN_CALL)

        await reporter.report_event(42, EventCode.JOINING)
        await reporter.report_event(42, EventCode.IN_CALL)

        statuses = [c.args[1] for c in client.update_bot_status.await_args_list]
        assert statuses == [LifecycleStatus.JOINING, LifecycleStatus.IN_CALL]
        # Every event is still logged
        assert client.report_event.await_count == 4

    @pytest.mark.asyncio
    async def test_statuses_tracked_per_bot(self, client):
        reporter = EventReporter(client)
        await reporter.report_event(1, EventCode.FAILED)

        await reporter.report_event(2, EventCode.JOINING)

        assert reporter.current_status(1) is LifecycleStatus.FAILED
        assert reporter.current_status(2) is LifecycleStatus.JOINING

    @pytest.mark.asyncio
    async def test_failed_event_still_updates_status(self, client):
        client.report_event.side_effect = ReportingError("control plane down")
        reporter = EventReporter(client)

        await reporter.report_event(42, EventCode.IN_CALL)

        client.update_bot_status.assert_awaited_once_with(42, LifecycleStatus.IN_CALL, recording=None)

    @pytest.mark.asyncio
    async def test_status_failure_swallowed(self, client):
        client.update_bot_status.side_effect = ReportingError("control plane down")
        reporter = EventReporter(client)

        await reporter.report_event(42, EventCode.JOINING)

        assert reporter.current_status(42) is LifecycleStatus.JOINING

    @pytest.mark.asyncio
    async def test_concurrent_reports_delivered_in_order(self, client):
        order = []

        async def slow_event(bot_id, event):
            order.append(event.event_type)
            await asyncio.sleep(0.01)

        client.report_event.side_effect = slow_event
        reporter = EventReporter(client)

        await asyncio.gather(
            reporter.report_event(42, EventCode.JOINING),
            reporter.report_event(42, EventCode.RECORDING_STARTED),
            reporter.report_event(42, EventCode.IN_CALL),
        )

        assert order == [EventCode.JOINING, EventCode.RECORDING_STARTED, EventCode.IN_CALL]


class TestBestEffort:

    def test_swallows_exceptions(self):
        with best_effort("doing something"):
            raise ReportingError("nope")

    def test_does_not_swallow_cancellation(self):
        with pytest.raises(asyncio.CancelledError):
            with best_effort("doing something"):
                raise asyncio.CancelledError()
