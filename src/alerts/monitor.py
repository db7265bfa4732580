"""
Monitoring loop - drives periodic evaluation passes.

Runs one tick immediately on start and then every ``interval_seconds``.
Stopping never interrupts a tick in progress: ``stop()`` ends the
schedule and waits for the in-flight tick to finish.

Features:
- Idempotent start/stop
- Tick failures logged, never fatal to the loop
- ``run_once()`` for on-demand passes
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from src.observability.logging import bind_context, unbind_context

logger = structlog.get_logger(__name__)

TickFunction = Callable[[], Awaitable[Any]]


class MonitoringLoop:
    """
    Periodic driver for the alert engine.

    Usage:
        loop = MonitoringLoop(engine.run_checks, interval_seconds=60)
        await loop.start()
        ...
        await loop.stop()
    """

    def __init__(self, tick: TickFunction, interval_seconds: float = 60.0):
        """
        Initialize the monitoring loop.

        Args:
            tick: Coroutine function performing one evaluation pass
            interval_seconds: Delay between the start of two passes
        """
        self._tick = tick
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._tick_lock = asyncio.Lock()
        self._ticks = 0

    @property
    def is_running(self) -> bool:
        """Check if the loop is scheduled."""
        return self._task is not None and not self._task.done()

    @property
    def ticks(self) -> int:
        """Completed passes, scheduled or on-demand."""
        return self._ticks

    async def start(self) -> None:
        """Start the periodic schedule (no-op when already running)."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="alert-monitoring-loop")
        logger.info("Monitoring loop started", interval_seconds=self._interval)

    async def stop(self) -> None:
        """Stop scheduling ticks and wait for an in-flight tick (no-op when stopped)."""
        if self._task is None:
            return

        self._stop_event.set()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

        logger.info("Monitoring loop stopped", ticks=self._ticks)

    async def run_once(self) -> Any:
        """
        Run a single pass outside the schedule.

        Passes never overlap: an on-demand pass waits for a scheduled one.

        Returns:
            Whatever the tick function returns
        """
        async with self._tick_lock:
            self._ticks += 1
            bind_context(tick=self._ticks)
            start = time.monotonic()
            try:
                return await self._tick()
            finally:
                logger.debug(
                    "Monitoring tick finished",
                    elapsed_seconds=round(time.monotonic() - start, 3),
                )
                unbind_context("tick")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(
                    "Monitoring tick failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue
