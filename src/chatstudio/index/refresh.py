"""Background scheduling of index rebuilds."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass

from .builder import IndexRefresher
from .models import IndexSnapshot

__all__ = ["IndexRefreshConfig", "IndexRefreshWorker"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexRefreshConfig:
    """Rebuild cadence: a fast first cycle, then a slower steady interval."""

    initial_interval: float = 10.0
    steady_interval: float = 120.0


class IndexRefreshWorker:
    """Periodically rebuilds the index off the event loop thread.

    The first tick fires after ``initial_interval``; once a tick finds an open
    workspace the cadence backs off to ``steady_interval``. Builds run in the
    loop's default executor so the interactive thread is never blocked.
    """

    def __init__(
        self,
        refresher: IndexRefresher,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        config: IndexRefreshConfig | None = None,
    ) -> None:
        self._refresher = refresher
        self._loop = loop or asyncio.get_event_loop()
        self._config = config or IndexRefreshConfig()
        self._interval = max(0.0, self._config.initial_interval)
        self._closed = False
        self._worker_task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        return self._interval

    def start(self) -> None:
        """Begin periodic rebuilds; the initial workspace-open build is triggered separately."""

        if self._worker_task is None and not self._closed:
            self._worker_task = self._loop.create_task(self._run())

    async def trigger(self) -> IndexSnapshot | None:
        """Rebuild now, e.g. when a workspace is opened."""

        if self._closed:
            return None
        return await self._loop.run_in_executor(None, self._refresher.rebuild)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._worker_task:
            self._worker_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker_task

    async def _run(self) -> None:
        try:
            while not self._closed:
                await asyncio.sleep(self._interval)
                await self._tick()
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            return

    async def _tick(self) -> None:
        try:
            snapshot = await self.trigger()
        except Exception:
            LOGGER.exception("Index rebuild failed")
            return
        if snapshot is not None and self._interval != self._config.steady_interval:
            self._interval = max(0.0, self._config.steady_interval)
            LOGGER.debug("Index refresh cadence set to %.0fs", self._interval)
