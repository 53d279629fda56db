"""
Tests for the per-unit monitor: detection, dedup, idling and remediation ordering.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from sentinel.agent_base import DETECTION_CHANNEL, REMEDIATION_CHANNEL
from sentinel.events import RemediationStatus
from sentinel.sentinel_monitor import UnitMonitor
from tests.conftest import FakeResponder


def write_pids(unit, pids):
    unit.procs_path.write_text("".join(f"{pid}\n" for pid in pids))


def make_monitor(unit, baseline, responder, **kwargs):
    return UnitMonitor(unit, baseline, responder, poll_interval=0.01, **kwargs)


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_no_new_pids_no_growth(self, make_unit, responder):
        unit = make_unit("abc", [100, 101])
        monitor = make_monitor(unit, {100, 101}, responder)

        for _ in range(5):
            assert await monitor.poll_once() == []

        assert monitor.known_set == {100, 101}
        assert responder.calls == []

    @pytest.mark.asyncio
    async def test_new_pid_detected_and_remediated(self, make_unit, responder):
        unit = make_unit("abc", [100, 101])
        monitor = make_monitor(unit, {100, 101}, responder)

        write_pids(unit, [100, 101, 205])
        events = await monitor.poll_once()

        assert [(event.unit_id, event.pid) for event in events] == [("abc", 205)]
        assert monitor.known_set == {100, 101, 205}
        assert responder.calls == ["abc"]

    @pytest.mark.asyncio
    async def test_pid_reported_at_most_once(self, make_unit, responder):
        unit = make_unit("abc", [100])
        monitor = make_monitor(unit, {100}, responder)

        write_pids(unit, [100, 205])
        for _ in range(4):
            await monitor.poll_once()

        assert responder.calls == ["abc"]

    @pytest.mark.asyncio
    async def test_vanished_pid_not_forgotten(self, make_unit, responder):
        unit = make_unit("abc", [100])
        monitor = make_monitor(unit, {100}, responder)

        write_pids(unit, [100, 205])
        await monitor.poll_once()
        write_pids(unit, [100])
        await monitor.poll_once()
        write_pids(unit, [100, 205])
        await monitor.poll_once()

        assert responder.calls == ["abc"]
        assert monitor.known_set == {100, 205}

    @pytest.mark.asyncio
    async def test_new_pids_handled_in_ascending_order(self, make_unit, responder):
        unit = make_unit("abc", [1])
        monitor = make_monitor(unit, {1}, responder)

        write_pids(unit, [1, 900, 30, 400])
        events = await monitor.poll_once()

        assert [event.pid for event in events] == [30, 400, 900]
        assert responder.calls == ["abc", "abc", "abc"]

    @pytest.mark.asyncio
    async def test_known_set_is_monotonic(self, make_unit, responder):
        unit = make_unit("abc", [1, 2])
        monitor = make_monitor(unit, {1, 2}, responder)
        snapshots = [[1], [1, 2, 3], [], [4], [1, 2, 3, 4, 5]]

        previous = monitor.known_set
        for snapshot in snapshots:
            write_pids(unit, snapshot)
            await monitor.poll_once()
            assert previous <= monitor.known_set
            previous = monitor.known_set

        assert monitor.known_set == {1, 2, 3, 4, 5}

    @pytest.mark.asyncio
    async def test_missing_process_list_idles(self, make_unit, responder):
        unit = make_unit("abc", [100])
        monitor = make_monitor(unit, {100}, responder)

        unit.procs_path.unlink()
        assert await monitor.poll_once() == []
        assert monitor.known_set == {100}

        write_pids(unit, [100, 300])
        events = await monitor.poll_once()
        assert [event.pid for event in events] == [300]

    @pytest.mark.asyncio
    async def test_unreadable_process_list_is_not_fatal(self, make_unit, responder):
        unit = make_unit("abc", [100])
        monitor = make_monitor(unit, {100}, responder)

        unit.procs_path.unlink()
        unit.procs_path.mkdir()

        assert await monitor.poll_once() == []
        assert monitor.known_set == {100}

    @pytest.mark.asyncio
    async def test_malformed_lines_ignored(self, make_unit, responder):
        unit = make_unit("abc", [100])
        monitor = make_monitor(unit, {100}, responder)

        unit.procs_path.write_text("100\nnot-a-pid\n")
        assert await monitor.poll_once() == []

    @pytest.mark.asyncio
    async def test_empty_baseline_flags_every_pid(self, make_unit, responder):
        unit = make_unit("abc", [])
        monitor = make_monitor(unit, set(), responder)

        write_pids(unit, [10, 11])
        events = await monitor.poll_once()

        assert [event.pid for event in events] == [10, 11]


class TestRemediationFailures:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [RemediationStatus.STOP_FAILED, RemediationStatus.START_FAILED]
    )
    async def test_failed_remediation_still_trusts_pid(self, make_unit, status):
        responder = FakeResponder(status)
        unit = make_unit("abc", [100, 101])
        monitor = make_monitor(unit, {100, 101}, responder)

        write_pids(unit, [100, 101, 205])
        await monitor.poll_once()
        await monitor.poll_once()

        assert monitor.known_set == {100, 101, 205}
        assert responder.calls == ["abc"]

    @pytest.mark.asyncio
    async def test_raising_remediator_still_trusts_pid(self, make_unit):
        class BrokenResponder:
            async def remediate(self, unit_id):
                raise RuntimeError("control interface exploded")

        unit = make_unit("abc", [1])
        monitor = make_monitor(unit, {1}, BrokenResponder())

        write_pids(unit, [1, 2])
        with pytest.raises(RuntimeError):
            await monitor.poll_once()

        assert monitor.known_set == {1, 2}


class TestOrdering:
    @pytest.mark.asyncio
    async def test_remediation_completes_before_next_detection(self, make_unit):
        log = []

        class SlowResponder(FakeResponder):
            async def remediate(self, unit_id):
                log.append(("begin", len(self.calls)))
                await asyncio.sleep(0.01)
                outcome = await super().remediate(unit_id)
                log.append(("end", len(self.calls)))
                return outcome

        unit = make_unit("abc", [1])
        monitor = make_monitor(unit, {1}, SlowResponder())

        write_pids(unit, [1, 2, 3])
        await monitor.poll_once()

        assert log == [("begin", 0), ("end", 1), ("begin", 1), ("end", 2)]

    @pytest.mark.asyncio
    async def test_units_remediate_concurrently(self, make_unit):
        both_in_flight = asyncio.Event()
        in_flight = []

        class BlockingResponder(FakeResponder):
            async def remediate(self, unit_id):
                in_flight.append(unit_id)
                if len(in_flight) == 2:
                    both_in_flight.set()
                await both_in_flight.wait()
                return await super().remediate(unit_id)

        first = make_unit("first", [1])
        second = make_unit("second", [1])
        first_monitor = make_monitor(first, {1}, BlockingResponder())
        second_monitor = make_monitor(second, {1}, BlockingResponder())

        write_pids(first, [1, 50])
        write_pids(second, [1, 60])
        events = await asyncio.wait_for(
            asyncio.gather(first_monitor.poll_once(), second_monitor.poll_once()),
            timeout=2,
        )

        assert sorted(in_flight) == ["first", "second"]
        assert [event.pid for event in events[0]] == [50]
        assert [event.pid for event in events[1]] == [60]


class TestRunLoop:
    @pytest.mark.asyncio
    async def test_run_detects_and_stops(self, make_unit, responder):
        unit = make_unit("abc", [100])
        monitor = make_monitor(unit, {100}, responder)
        task = asyncio.create_task(monitor.run())

        write_pids(unit, [100, 205])
        for _ in range(100):
            if responder.calls:
                break
            await asyncio.sleep(0.01)

        monitor.stop()
        await asyncio.wait_for(task, timeout=1)

        assert responder.calls == ["abc"]
        assert not monitor.is_running

    @pytest.mark.asyncio
    async def test_run_survives_iteration_errors(self, make_unit):
        attempts = []

        class FlakyResponder(FakeResponder):
            async def remediate(self, unit_id):
                attempts.append(unit_id)
                if len(attempts) == 1:
                    raise RuntimeError("transient")
                return await super().remediate(unit_id)

        unit = make_unit("abc", [1])
        monitor = make_monitor(unit, {1}, FlakyResponder())
        task = asyncio.create_task(monitor.run())

        write_pids(unit, [1, 2])
        for _ in range(100):
            if attempts:
                break
            await asyncio.sleep(0.01)
        write_pids(unit, [1, 2, 3])
        for _ in range(100):
            if len(attempts) == 2:
                break
            await asyncio.sleep(0.01)

        assert not task.done()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(attempts) == 2
        assert monitor.known_set == {1, 2, 3}


class TestPublishing:
    @pytest.mark.asyncio
    async def test_detection_published_before_remediation(self, make_unit):
        order = []

        async def record_publish(channel, event_type, data):
            order.append(channel)
            return True

        class RecordingResponder(FakeResponder):
            async def remediate(self, unit_id):
                order.append("remediate")
                return await super().remediate(unit_id)

        publisher = AsyncMock()
        publisher.publish_event.side_effect = record_publish
        unit = make_unit("abc", [100])
        monitor = make_monitor(unit, {100}, RecordingResponder(), publisher=publisher)

        write_pids(unit, [100, 205])
        await monitor.poll_once()
        await monitor.flush_events()

        assert order == [DETECTION_CHANNEL, "remediate", REMEDIATION_CHANNEL]
        calls = publisher.publish_event.await_args_list
        assert calls[0].args[2]["pid"] == 205
        assert calls[1].args[2]["status"] == "restarted"

    @pytest.mark.asyncio
    async def test_detection_published_when_remediator_raises(self, make_unit):
        class BrokenResponder:
            async def remediate(self, unit_id):
                raise RuntimeError("control interface exploded")

        publisher = AsyncMock()
        unit = make_unit("abc", [1])
        monitor = make_monitor(unit, {1}, BrokenResponder(), publisher=publisher)

        write_pids(unit, [1, 2])
        with pytest.raises(RuntimeError):
            await monitor.poll_once()
        await monitor.flush_events()

        calls = publisher.publish_event.await_args_list
        assert [call.args[0] for call in calls] == [DETECTION_CHANNEL]
        assert calls[0].args[2]["pid"] == 2

    @pytest.mark.asyncio
    async def test_stalled_publisher_does_not_block_polling(self, make_unit, responder):
        release = asyncio.Event()

        async def stalled_publish(channel, event_type, data):
            await release.wait()
            return False

        publisher = AsyncMock()
        publisher.publish_event.side_effect = stalled_publish
        unit = make_unit("abc", [100])
        monitor = make_monitor(unit, {100}, responder, publisher=publisher)

        write_pids(unit, [100, 205, 206])
        events = await asyncio.wait_for(monitor.poll_once(), timeout=1)

        assert [event.pid for event in events] == [205, 206]
        assert responder.calls == ["abc", "abc"]

        release.set()
        await asyncio.wait_for(monitor.flush_events(), timeout=1)
        assert publisher.publish_event.await_count == 4

    @pytest.mark.asyncio
    async def test_failed_publish_does_not_affect_known_set(self, make_unit, responder):
        publisher = AsyncMock()
        publisher.publish_event.return_value = False
        unit = make_unit("abc", [100])
        monitor = make_monitor(unit, {100}, responder, publisher=publisher)

        write_pids(unit, [100, 205])
        await monitor.poll_once()
        await monitor.flush_events()

        assert monitor.known_set == {100, 205}
