"""Standalone generation worker: drains the Redis queue on a fixed poll interval."""

import asyncio
import signal

from app.core.logging import configure_structlog
from app.core.config import get_settings

_settings = get_settings()
configure_structlog(log_level="DEBUG" if _settings.debug else "INFO", json_logs=not _settings.debug)

from app.api.deps import get_generation_provider  # noqa: E402
from app.db import close_db, close_redis, get_redis, get_session_factory, init_db, init_redis  # noqa: E402
from app.queue.worker import run_worker  # noqa: E402
from app.services.job_orchestrator import JobOrchestrator  # noqa: E402


async def main() -> None:
    await init_db()
    await init_redis()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    orchestrator = JobOrchestrator(get_session_factory(), get_generation_provider(), redis=get_redis())
    try:
        await run_worker(
            orchestrator, redis=get_redis(), poll_interval=_settings.worker_poll_interval_seconds, stop=stop
        )
    finally:
        await close_redis()
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
