"""Job state machine: validated, monotonic status transitions.

The jobs table is the source of truth. Every transition is a compare-and-set
``UPDATE jobs SET status = :new WHERE id = :id AND status IN (:allowed_sources)``
so concurrent writers can never move a job backwards or claim it twice: exactly
one QUEUED -> RUNNING update succeeds per job.

Successful transitions are also published to the ``job:{id}:events`` Redis
channel. Publishing is best effort; polling the jobs table stays the contract.
"""

import json
import uuid
from datetime import UTC, datetime

import structlog
from redis.asyncio import Redis
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models.job import Job
from app.db.models.proposal import Proposal
from app.queue.schemas import JobStatus

logger = structlog.get_logger(__name__)


class JobEventType:
    """Event type constants for the job:{id}:events Pub/Sub channel."""

    STATUS_CHANGED = "job.status.changed"


class JobStateMachine:
    """Manages job state transitions with validation."""

    # Valid state transitions
    TRANSITIONS = {
        JobStatus.QUEUED: [JobStatus.RUNNING, JobStatus.FAILED],  # FAILED: rejected before start
        JobStatus.RUNNING: [JobStatus.COMPLETED, JobStatus.FAILED],
        JobStatus.COMPLETED: [],  # Terminal state
        JobStatus.FAILED: [],  # Terminal state
    }

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], redis: Redis | None = None):
        self.session_factory = session_factory
        self.redis = redis

    @classmethod
    def can_transition(cls, current: JobStatus, new: JobStatus) -> bool:
        return new in cls.TRANSITIONS.get(current, [])

    @classmethod
    def sources_for(cls, new_status: JobStatus) -> list[JobStatus]:
        """States from which ``new_status`` is reachable in one step."""
        return [source for source, targets in cls.TRANSITIONS.items() if new_status in targets]

    async def _compare_and_set(
        self,
        session: AsyncSession,
        job_id: uuid.UUID,
        new_status: JobStatus,
        now: datetime,
        error_message: str | None = None,
    ) -> bool:
        values: dict = {"status": new_status.value, "updated_at": now}
        if new_status == JobStatus.RUNNING:
            values["started_at"] = now
        if new_status.is_terminal:
            values["completed_at"] = now
        if error_message is not None:
            values["error_message"] = error_message

        result = await session.execute(
            update(Job)
            .where(
                Job.id == job_id,
                Job.status.in_([source.value for source in self.sources_for(new_status)]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def transition(
        self,
        job_id: uuid.UUID,
        new_status: JobStatus,
        error_message: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Transition job to new status if valid. Publishes event on success.

        Args:
            job_id: Job identifier
            new_status: Target status to transition to
            error_message: Raw failure text, recorded with FAILED
            now: Current time (for deterministic testing)

        Returns:
            True if transition succeeded, False if invalid from the current
            state or the job does not exist
        """
        now = now or datetime.now(UTC)

        async with self.session_factory() as session:
            applied = await self._compare_and_set(session, job_id, new_status, now, error_message)
            if not applied:
                await session.rollback()
                logger.info("job_transition_refused", job_id=str(job_id), target=new_status.value)
                return False
            await session.commit()

        await self.publish_status(job_id, new_status, error_message, now)
        return True

    async def complete(self, job_id: uuid.UUID, content: str, now: datetime | None = None) -> bool:
        """Move RUNNING -> COMPLETED and attach the proposal in one transaction.

        Returns:
            True if the job completed, False if it was not RUNNING
        """
        now = now or datetime.now(UTC)

        async with self.session_factory() as session:
            applied = await self._compare_and_set(session, job_id, JobStatus.COMPLETED, now)
            if not applied:
                await session.rollback()
                logger.info("job_transition_refused", job_id=str(job_id), target=JobStatus.COMPLETED.value)
                return False
            session.add(Proposal(job_id=job_id, content=content, created_at=now))
            await session.commit()

        await self.publish_status(job_id, JobStatus.COMPLETED, None, now)
        return True

    async def publish_status(
        self,
        job_id: uuid.UUID,
        status: JobStatus,
        error_message: str | None,
        now: datetime,
    ) -> None:
        """Publish a status change to the job's event channel. Never raises."""
        if self.redis is None:
            return
        try:
            await self.redis.publish(
                f"job:{job_id}:events",
                json.dumps(
                    {
                        "type": JobEventType.STATUS_CHANGED,
                        "job_id": str(job_id),
                        "status": status.value,
                        "error_message": error_message,
                        "timestamp": now.isoformat(),
                    }
                ),
            )
        except Exception as exc:
            logger.warning(
                "job_event_publish_failed", job_id=str(job_id), error=str(exc), error_type=type(exc).__name__
            )
