"""QueueManager: Redis sorted set FIFO work queue for generation jobs."""

from redis.asyncio import Redis

from app.queue.schemas import COUNTER_KEY, QUEUE_KEY


class QueueManager:
    """Manages the generation work queue using a Redis sorted set.

    Score is a monotonically increasing counter, so the lowest score is the
    oldest job (FIFO). A sorted set rather than a list gives O(log n) position
    lookups for status responses.
    """

    def __init__(self, redis: Redis):
        self.redis = redis

    async def enqueue(self, job_id: str) -> int:
        """Enqueue a job at the back of the queue.

        Returns:
            1-indexed queue position
        """
        # Atomic counter for FIFO ordering
        counter = await self.redis.incr(COUNTER_KEY)
        await self.redis.zadd(QUEUE_KEY, {job_id: counter}, nx=True)
        return await self.get_position(job_id)

    async def dequeue(self) -> str | None:
        """Remove and return the oldest job id, or None if the queue is empty."""
        result = await self.redis.zpopmin(QUEUE_KEY, count=1)
        if not result:
            return None

        job_id, _score = result[0]
        return job_id

    async def get_position(self, job_id: str) -> int:
        """Get 1-indexed position of job in queue.

        Returns 0 if job not in queue.
        """
        rank = await self.redis.zrank(QUEUE_KEY, job_id)
        return rank + 1 if rank is not None else 0

    async def get_length(self) -> int:
        """Return current queue size."""
        return await self.redis.zcard(QUEUE_KEY)

    async def remove(self, job_id: str) -> None:
        """Remove a job from the queue (e.g. it failed validation before start)."""
        await self.redis.zrem(QUEUE_KEY, job_id)
