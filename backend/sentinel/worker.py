"""Alert worker entry point — run in its own process.

Usage: python -m sentinel.worker
"""

import asyncio
import signal

import structlog

from sentinel.config import settings
from sentinel.core.database import async_session_factory, engine, init_models
from sentinel.core.logging import configure_logging
from sentinel.queue.job_queue import JobQueue
from sentinel.services.transaction_service import alert_job_options
from sentinel.workers.alert_worker import create_alert_worker

logger = structlog.get_logger()


def _on_worker_error(error: Exception) -> None:
    # Broker failures and unexpected slot errors; the pool keeps running
    logger.error("alert_worker_error", error=repr(error))


async def main() -> None:
    configure_logging(settings.log_level, settings.log_json)
    await init_models(engine)
    queue = JobQueue.from_url(
        settings.redis_url,
        settings.alert_queue_name,
        default_options=alert_job_options(settings),
        socket_timeout=settings.redis_socket_timeout,
        max_stalled_count=settings.alert_max_stalled_count,
    )
    pool = create_alert_worker(queue, async_session_factory, settings, on_error=_on_worker_error)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, pool.stop)

    logger.info(
        "alert_worker_starting",
        queue=settings.alert_queue_name,
        concurrency=settings.alert_worker_concurrency,
    )
    try:
        await pool.run()
    finally:
        await queue.close()
        await engine.dispose()
        logger.info("alert_worker_exited")


if __name__ == "__main__":
    asyncio.run(main())
