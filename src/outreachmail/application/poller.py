"""Periodic sync trigger running on the event loop."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from outreachmail.application.use_cases.sync_history import HistorySyncEngine
from outreachmail.domain.models import SyncState

# States with nothing to poll: no cursor to diff from, or waiting for re-authorization
IDLE_STATES = {SyncState.UNINITIALIZED, SyncState.CURSOR_RESET, SyncState.DISCONNECTED}


class SyncPoller:
    """Trigger ``HistorySyncEngine`` for each scope every ``interval_seconds``.

    Races with webhook-triggered runs are settled by the engine's
    single-flight guard.
    """

    def __init__(self, engine: HistorySyncEngine, scopes: list[str], interval_seconds: int = 300) -> None:
        self.engine = engine
        self.scopes = scopes
        self.interval = interval_seconds
        self.polls_completed = 0
        self.last_poll: datetime | None = None
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> None:
        self.last_poll = datetime.now(timezone.utc)
        for scope in self.scopes:
            try:
                state = self.engine.state(scope)
                if state in IDLE_STATES:
                    logger.debug(f"Not polling scope {scope}: {state.value}")
                    continue
                await self.engine.trigger(scope)
            except Exception as e:
                # One bad scope must not stop the timer for the others
                logger.exception(f"Poll for scope {scope} failed: {e}")
        self.polls_completed += 1

    async def run(self) -> None:
        logger.info(f"Sync poller started for {self.scopes}, interval {self.interval}s")
        self._stop.clear()
        while not self._stop.is_set():
            await self.poll_once()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info(f"Sync poller stopped after {self.polls_completed} polls")

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run())
        return self._task

    def stop(self) -> None:
        self._stop.set()

    async def aclose(self) -> None:
        self.stop()
        if self._task is not None:
            await self._task
            self._task = None
