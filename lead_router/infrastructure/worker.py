"""Background rotation sweep loop.

Runs inside the API process (started from the FastAPI lifespan) or
standalone via ``python -m lead_router.tools.run_sweep --loop``. Every pass
uses a fresh session, so a failed pass never poisons the next one.
"""

from __future__ import annotations

import asyncio
import logging

from lead_router.adapters.persistence.database import async_session_factory
from lead_router.application.use_cases.rotation_sweep import SweepReport
from lead_router.config import settings
from lead_router.infrastructure.api.dependencies import build_scheduler

logger = logging.getLogger(__name__)


async def run_sweep_once() -> SweepReport:
    async with async_session_factory() as session:
        scheduler = build_scheduler(session)
        return await scheduler.sweep()


class SweepWorker:
    """Periodically sweeps expired SLA deadlines until stopped."""

    def __init__(self, interval_seconds: float | None = None):
        self._interval = interval_seconds or settings.rotation_sweep_interval_seconds
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        if self._task is None:
            self._stop.clear()
            self._task = asyncio.create_task(self.run(), name="rotation-sweep")
            logger.info("Rotation sweep worker started (every %.0fs)", self._interval)

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
            logger.info("Rotation sweep worker stopped")

    async def run(self) -> None:
        while not self._stop.is_set():
            try:
                await run_sweep_once()
            except Exception:
                logger.exception("Rotation sweep pass failed")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
