"""Run the rotation sweep outside the API process.

Usage:
    python -m lead_router.tools.run_sweep            # one pass
    python -m lead_router.tools.run_sweep --loop     # sweep every interval until Ctrl+C
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import asdict

from lead_router.adapters.persistence.database import engine
from lead_router.config import settings
from lead_router.infrastructure.worker import SweepWorker, run_sweep_once

logging.basicConfig(level=settings.log_level.upper(), format="%(levelname)s | %(message)s")
logger = logging.getLogger(__name__)


async def _once() -> None:
    report = await run_sweep_once()
    print(asdict(report))
    await engine.dispose()


async def _loop(interval: float) -> None:
    worker = SweepWorker(interval)
    try:
        await worker.run()
    finally:
        await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Sweep expired SLA deadlines and rotate leads")
    parser.add_argument("--loop", action="store_true", help="Keep sweeping every interval")
    parser.add_argument(
        "--interval", type=float, default=settings.rotation_sweep_interval_seconds,
        help="Seconds between passes in --loop mode",
    )
    args = parser.parse_args()

    try:
        asyncio.run(_loop(args.interval) if args.loop else _once())
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")


if __name__ == "__main__":
    main()
