"""Generation worker: pulls job ids from the queue and executes them."""

import asyncio
import time
import uuid

import structlog

from app.db.redis import get_redis
from app.queue.manager import QueueManager
from app.queue.schemas import JobStatus

logger = structlog.get_logger(__name__)


async def process_next_job(orchestrator, redis=None) -> bool:
    """Pull next job from queue and process it.

    Called by FastAPI BackgroundTasks after submit/refine, and by run_worker.
    Returns True if a job was taken off the queue, False if the queue was empty.

    Steps:
    1. Dequeue the oldest job id
    2. Delegate to JobOrchestrator.execute(), which claims the job (QUEUED -> RUNNING)
       and records COMPLETED or FAILED itself
    3. Anything escaping execute() is an engine bug: log it and fail the job so
       pollers never see it stuck in RUNNING

    Args:
        orchestrator: JobOrchestrator instance
        redis: Redis client instance (injected by caller, or uses get_redis() if None)
    """
    if redis is None:
        redis = get_redis()
    queue = QueueManager(redis)

    job_id = await queue.dequeue()
    if job_id is None:
        return False

    start_time = time.time()
    try:
        job_uuid = uuid.UUID(job_id)
    except ValueError:
        logger.error("job_id_malformed", job_id=job_id)
        return True

    try:
        await orchestrator.execute(job_uuid)
    except Exception as exc:
        logger.error(
            "job_failed",
            job_id=job_id,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )
        await orchestrator.state_machine.transition(job_uuid, JobStatus.FAILED, f"Internal error: {exc}")

    logger.info("job_processed", job_id=job_id, duration_seconds=round(time.time() - start_time, 3))
    return True


async def run_worker(orchestrator, redis=None, poll_interval: float = 2.0, stop: asyncio.Event | None = None) -> None:
    """Explicit ticker loop: drain the queue, then sleep ``poll_interval`` seconds.

    Runs until ``stop`` is set (or forever when no event is given). The caller
    owns the loop and its cancellation.
    """
    if redis is None:
        redis = get_redis()
    stop = stop or asyncio.Event()

    logger.info("worker_started", poll_interval=poll_interval)
    while not stop.is_set():
        processed = await process_next_job(orchestrator, redis=redis)
        if processed:
            continue
        try:
            await asyncio.wait_for(stop.wait(), timeout=poll_interval)
        except TimeoutError:
            pass
    logger.info("worker_stopped")
