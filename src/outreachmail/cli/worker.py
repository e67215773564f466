"""Sync worker - polls the mailbox history on an interval without the HTTP API."""

from __future__ import annotations

import asyncio
import signal

from loguru import logger
from pydantic import ValidationError

from outreachmail.infrastructure.container import Services, build_services
from outreachmail.infrastructure.logging import configure_logging
from outreachmail.infrastructure.settings import Settings


async def _run(services: Services) -> None:
    loop = asyncio.get_running_loop()

    def _handle_shutdown(signum: int) -> None:
        logger.info(f"Received signal {signum}, shutting down...")
        services.poller.stop()

    for signum in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(signum, _handle_shutdown, signum)

    try:
        await services.poller.run()
    finally:
        await services.aclose()
        stats = services.engine.stats(services.scope)
        logger.info(f"Worker stats: polls={services.poller.polls_completed}, sync={stats.as_dict()}")


def main() -> int:
    """Entry point for the sync worker."""
    configure_logging()

    logger.info("=" * 60)
    logger.info("Outreach Mailbox Sync Worker")
    logger.info("=" * 60)

    try:
        settings = Settings()
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    configure_logging(settings.log_level)

    try:
        services = build_services(settings)
    except Exception as e:
        logger.error(f"Failed to initialize infrastructure: {e}")
        return 1

    logger.info(f"Scope: {services.scope}, poll interval: {settings.poll_interval_seconds}s")
    asyncio.run(_run(services))
    logger.info("Worker shutdown complete")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
