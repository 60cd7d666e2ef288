"""Client-side job polling: a plain bounded-interval loop.

All job state lives on the server, so a poll can be resumed from nothing but the
job id (e.g. after a page reload). The caller owns the loop; nothing here is
scheduled in the background.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from app.queue.schemas import JobStatus


async def wait_for_job(
    get_status: Callable[[Any], Awaitable[Any]],
    job_id: Any,
    interval: float = 2.0,
    timeout: float = 300.0,
    on_status: Callable[[JobStatus], None] | None = None,
) -> Any:
    """Poll ``get_status(job_id)`` until the job reaches a terminal state.

    Args:
        get_status: Async callable returning an object with a ``status`` attribute
        job_id: Job identifier
        interval: Seconds between polls
        timeout: Give up after this many seconds
        on_status: Called with every observed status

    Returns:
        The last value returned by ``get_status``

    Raises:
        TimeoutError: the job did not finish within ``timeout``
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    while True:
        job = await get_status(job_id)
        status = JobStatus(job.status)
        if on_status is not None:
            on_status(status)
        if status.is_terminal:
            return job
        if loop.time() >= deadline:
            raise TimeoutError(f"Job {job_id} still {status.value} after {timeout:g} seconds")
        await asyncio.sleep(interval)
