"""
Periodic background loop.

``stop`` does not cancel a running tick: it signals the loop and waits for
the in-flight iteration to finish, so no record is left half written.
"""

import asyncio
from typing import Awaitable, Callable

from callkeeper.shared.logging import get_logger

logger = get_logger(__name__)


class BackgroundLoop:
    """Runs ``tick`` every ``interval_seconds`` until stopped."""

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        tick: Callable[[], Awaitable[object]],
    ) -> None:
        self.name = name
        self._interval_seconds = interval_seconds
        self._tick = tick
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the loop background task."""
        if self.running:
            logger.warning("Background loop already running", extra={"loop": self.name})
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name=f"loop:{self.name}")
        logger.info(
            "Background loop started",
            extra={"loop": self.name, "interval_seconds": self._interval_seconds},
        )

    async def stop(self) -> None:
        """Signal the loop and wait for the current iteration to complete."""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Background loop stopped", extra={"loop": self.name})

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self._tick()
            except Exception:
                logger.exception("Background loop iteration failed", extra={"loop": self.name})
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_seconds)
            except asyncio.TimeoutError:
                pass
