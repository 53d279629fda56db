"""
Sentinel Monitor - Per-Unit Process Watch

Polls one container's cgroup.procs, reports every pid that was not seen before and
remediates the container once per such pid.
"""

import asyncio
from collections.abc import Iterable
from typing import Protocol

from sentinel.agent_base import DETECTION_CHANNEL, REMEDIATION_CHANNEL, EventPublisher
from sentinel.cgroups import Unit, read_pids
from sentinel.events import DetectionEvent, RemediationOutcome
from sentinel.logger import SentinelLogger


class Remediator(Protocol):
    async def remediate(self, unit_id: str) -> RemediationOutcome: ...


class UnitMonitor:
    """
    Watches a single unit for processes outside its known set.

    The known set starts as the unit's baseline and only ever grows: every detected pid
    is added after its remediation finishes, whether or not the remediation succeeded,
    so a pid is reported at most once for the lifetime of the monitor. The set is owned
    by this monitor alone.
    """

    def __init__(
        self,
        unit: Unit,
        baseline: Iterable[int],
        responder: Remediator,
        poll_interval: float,
        publisher: EventPublisher | None = None,
    ):
        """
        Args:
            unit: Unit to watch
            baseline: Pids trusted at startup
            responder: Remediator invoked once per detected pid
            poll_interval: Seconds to sleep between polls
            publisher: Optional event fan-out
        """
        self.unit = unit
        self.responder = responder
        self.poll_interval = poll_interval
        self.publisher = publisher
        self._known: set[int] = set(baseline)
        self._pending_publishes: set[asyncio.Task] = set()
        self._running = False
        self.logger = SentinelLogger.get_logger("monitor")

    @property
    def known_set(self) -> frozenset[int]:
        return frozenset(self._known)

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self) -> None:
        """
        Poll the unit until stop() is called or the task is cancelled.

        An error in one iteration is logged and polling carries on.
        """
        self._running = True
        self.logger.info(
            f"Monitoring unit {self.unit.id} with {len(self._known)} baseline processes"
        )

        try:
            while self._running:
                try:
                    await self.poll_once()
                except Exception as e:
                    self.logger.error(f"Error polling unit {self.unit.id}: {e}", exc_info=True)

                await asyncio.sleep(self.poll_interval)
        finally:
            self._running = False
            self.logger.info(f"Stopped monitoring unit {self.unit.id}")

    async def poll_once(self) -> list[DetectionEvent]:
        """
        Run one poll: read the live pid set and handle every new pid.

        New pids are handled in ascending order, each remediation completing before the
        next pid is looked at. A vanished process list is an idle cycle, not an error.

        Returns:
            Detection events produced by this poll
        """
        try:
            live = await read_pids(self.unit.procs_path)
        except OSError as e:
            self.logger.error(f"Cannot read processes of unit {self.unit.id}: {e}")
            return []

        if live is None:
            self.logger.debug(f"Unit {self.unit.id} has no process list, idling")
            return []

        events = []
        for pid in sorted(live - self._known):
            events.append(await self._handle_new_pid(pid))
        return events

    async def _handle_new_pid(self, pid: int) -> DetectionEvent:
        event = DetectionEvent(unit_id=self.unit.id, pid=pid)
        self.logger.warning(f"New process detected - {self.unit.id} {pid}")

        if self.publisher is not None:
            self._publish_in_background(DETECTION_CHANNEL, "process_detected", event.to_dict())
            # Let the detection publish go out before the restart begins
            await asyncio.sleep(0)

        try:
            outcome = await self.responder.remediate(self.unit.id)
        finally:
            self._known.add(pid)

        if self.publisher is not None:
            self._publish_in_background(
                REMEDIATION_CHANNEL, "remediation_complete", outcome.to_dict()
            )
        return event

    def _publish_in_background(self, channel: str, event_type: str, data: dict) -> None:
        """Publish without holding up polling; publish retries can take seconds."""
        task = asyncio.create_task(self.publisher.publish_event(channel, event_type, data))
        self._pending_publishes.add(task)
        task.add_done_callback(self._pending_publishes.discard)

    async def flush_events(self) -> None:
        """Wait for every in-flight event publish to finish."""
        if self._pending_publishes:
            await asyncio.gather(*self._pending_publishes, return_exceptions=True)

    def stop(self) -> None:
        """Ask the polling loop to exit after its current iteration."""
        self._running = False
