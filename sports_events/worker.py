"""
Standalone event worker process.

Usage:
    python -m sports_events.worker                  # run until SIGINT/SIGTERM
    python -m sports_events.worker --concurrency 4
    python -m sports_events.worker --once           # drain one message and exit

Standings recalculations queued by handlers run in this process too.
"""

import argparse
import asyncio
import logging
import signal
import sys

from sports_events.config import get_settings
from sports_events.container import build_container
from sports_events.events.consumer import EventWorker, WorkerPool
from sports_events.telemetry.sentry import init_sentry

logger = logging.getLogger("sports_events.worker")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Consume sports events from the channel")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Number of concurrent event workers (default: EVENTS_WORKER_CONCURRENCY)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process at most one message, wait for queued recalculations, then exit",
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    init_sentry(settings.SENTRY_DSN, settings.SENTRY_TRACES_SAMPLE_RATE, settings.SERVICE_NAME)
    container = build_container(settings)
    await container.start(with_workers=False)

    try:
        if args.once:
            worker = EventWorker(
                container.channel,
                container.job_context,
                pop_timeout=settings.EVENTS_POP_TIMEOUT_S,
                name="event-worker-once",
            )
            result = await worker.run_once()
            await container.standings_queue.join()
            if result is None:
                logger.info("[WORKER] No message available")
                return 0
            logger.info(f"[WORKER] {result.to_dict()}")
            return 1 if result.status.is_terminal_failure else 0

        concurrency = args.concurrency or settings.EVENTS_WORKER_CONCURRENCY
        pool = WorkerPool(
            container.channel,
            container.job_context,
            concurrency=concurrency,
            pop_timeout=settings.EVENTS_POP_TIMEOUT_S,
        )
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        await pool.start()
        await stop.wait()
        logger.info("[WORKER] Shutdown requested, draining...")
        await pool.stop()
        return 0
    finally:
        await container.shutdown()


def main(argv=None) -> int:
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
