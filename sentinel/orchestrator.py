"""
Sentinel Orchestrator

Discovers the container scopes once, records their baselines and runs one independent
monitor task per protected unit.
"""

import asyncio

from sentinel.agent_base import EventPublisher
from sentinel.cgroups import Unit, build_baseline, enumerate_units
from sentinel.config import SentinelConfig
from sentinel.exceptions import EnumerationError
from sentinel.logger import SentinelLogger
from sentinel.sentinel_monitor import UnitMonitor
from sentinel.sentinel_monitor.monitor import Remediator


class Sentinel:
    """
    Owns the per-unit monitor tasks.

    Monitors share nothing with each other; the orchestrator only keeps references so the
    tasks stay alive and can be cancelled on shutdown.
    """

    def __init__(
        self,
        config: SentinelConfig,
        responder: Remediator,
        publisher: EventPublisher | None = None,
    ):
        self.config = config
        self.responder = responder
        self.publisher = publisher
        self.monitors: dict[str, UnitMonitor] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._stop_event = asyncio.Event()
        self.logger = SentinelLogger.get_logger("orchestrator")

    async def _enumerate(self) -> list[Unit]:
        return await enumerate_units(
            self.config.cgroup_root,
            prefix=self.config.unit_prefix,
            suffix=self.config.unit_suffix,
            procs_file=self.config.procs_file,
        )

    async def discover(self) -> dict[Unit, set[int]]:
        """
        Enumerate the units and build their baselines.

        Returns:
            Mapping from each protectable unit to its baseline pid set

        Raises:
            EnumerationError: If the cgroup root cannot be listed
        """
        units = await self._enumerate()
        self.logger.info(f"Discovered units: {[unit.name for unit in units]}")

        baselines = await build_baseline(units)
        summary = {unit.id: sorted(pids) for unit, pids in baselines.items()}
        self.logger.info(f"Baseline: {summary}")
        return baselines

    def _spawn(self, unit: Unit, baseline: set[int]) -> UnitMonitor | None:
        if unit.id in self.monitors:
            existing = self.monitors[unit.id].unit.name
            self.logger.warning(
                f"Skipping {unit.name}: container id {unit.id} is already monitored via {existing}"
            )
            return None

        monitor = UnitMonitor(
            unit,
            baseline,
            self.responder,
            poll_interval=self.config.poll_interval,
            publisher=self.publisher,
        )
        task = asyncio.create_task(monitor.run(), name=f"monitor-{unit.id}")
        task.add_done_callback(self._on_monitor_done)
        self.monitors[unit.id] = monitor
        self._tasks[unit.id] = task
        return monitor

    def _on_monitor_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error(f"Monitor task {task.get_name()} died: {error!r}")

    async def start(self) -> list[str]:
        """
        Discover units and launch one monitor task per protected unit.

        Returns:
            Ids of the units now being monitored

        Raises:
            EnumerationError: If the cgroup root cannot be listed
        """
        baselines = await self.discover()
        started = [
            unit.id for unit, baseline in baselines.items() if self._spawn(unit, baseline)
        ]

        self.logger.info(f"Launched {len(started)} unit monitors")
        return started

    async def rescan(self) -> list[str]:
        """
        Pick up units created since the last enumeration.

        Already monitored units keep their task and known set. A listing failure here
        is logged and skipped; only the startup enumeration is fatal.

        Returns:
            Ids of newly monitored units
        """
        try:
            units = await self._enumerate()
        except EnumerationError as e:
            self.logger.error(f"Re-enumeration failed: {e}")
            return []

        new_units = [unit for unit in units if unit.id not in self.monitors]
        if not new_units:
            return []

        baselines = await build_baseline(new_units)
        started = []
        for unit, baseline in baselines.items():
            if self._spawn(unit, baseline):
                self.logger.info(f"New unit {unit.id} with baseline {sorted(baseline)}")
                started.append(unit.id)
        return started

    async def run(self) -> None:
        """
        Start the monitors and then park until stop() is called.

        With a rescan interval configured the parked loop re-enumerates periodically.
        Monitor tasks are cancelled on the way out.

        Raises:
            EnumerationError: If the startup enumeration fails
        """
        try:
            await self.start()

            interval = self.config.rescan_interval or None
            while not self._stop_event.is_set():
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                except TimeoutError:
                    await self.rescan()
        finally:
            await self.shutdown()

    def stop(self) -> None:
        """Request shutdown; safe to call from a signal handler."""
        self.logger.info("Shutdown requested")
        self._stop_event.set()

    async def shutdown(self) -> None:
        """Cancel every monitor task and close the publisher."""
        for monitor in self.monitors.values():
            monitor.stop()

        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        if self.publisher is not None:
            for monitor in self.monitors.values():
                await monitor.flush_events()
            await self.publisher.close()
