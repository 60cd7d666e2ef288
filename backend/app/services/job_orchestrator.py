"""JobOrchestrator: asynchronous generation jobs.

Lifecycle: submit() writes a QUEUED job and pushes its id on the Redis work
queue, then returns. A worker (process_next_job) calls execute(), which claims
the job with a QUEUED -> RUNNING compare-and-set, calls the generation provider
under a time budget and records COMPLETED (with its Proposal) or FAILED.

Provider failures never propagate to callers: they are recorded on the job with
the raw message so pollers can show them. There is no automatic retry; a caller
submits a new job or refines a completed one.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from uuid import UUID

import structlog
from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.exceptions import (
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
    ProviderFailureError,
    ProviderTimeoutError,
)
from app.db.models.job import Job
from app.db.models.job_context import JobContext
from app.db.models.proposal import Proposal
from app.db.models.version import Version
from app.providers.generation import GenerationProvider, GenerationRequest, extract_document
from app.queue.manager import QueueManager
from app.queue.schemas import JobStatus
from app.queue.state_machine import JobStateMachine

logger = structlog.get_logger(__name__)


class JobOrchestrator:
    """Submits, executes, refines and reports on generation jobs."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        provider: GenerationProvider,
        redis: Redis | None = None,
        timeout_seconds: float | None = None,
    ):
        """Initialize with session factory and generation provider.

        Args:
            session_factory: SQLAlchemy async session factory
            provider: Generation backend (Anthropic, or the fake in tests)
            redis: Work queue and event channel; None disables both, in which
                case the caller drives execute() itself
            timeout_seconds: Provider time budget; defaults to settings
        """
        self.session_factory = session_factory
        self.provider = provider
        self.redis = redis
        self.timeout_seconds = timeout_seconds or get_settings().generation_timeout_seconds
        self.state_machine = JobStateMachine(session_factory, redis)
        self.queue = QueueManager(redis) if redis is not None else None

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        project_id: UUID,
        base_version_id: UUID,
        job_context_id: UUID | None = None,
        instructions: str | None = None,
    ) -> Job:
        """Create a QUEUED job and enqueue it. Returns without waiting for the provider.

        Raises:
            InvalidRequestError: base version or job context missing or in another project
        """
        async with self.session_factory() as session:
            base = await session.get(Version, base_version_id)
            if base is None or base.project_id != project_id:
                raise InvalidRequestError(f"Base version {base_version_id} does not belong to project {project_id}")

            if job_context_id is not None:
                job_context = await session.get(JobContext, job_context_id)
                if job_context is None or job_context.project_id != project_id:
                    raise InvalidRequestError(f"Job context {job_context_id} does not belong to project {project_id}")

            job = self._new_job(
                project_id=project_id,
                base_version_id=base_version_id,
                job_context_id=job_context_id,
                instructions=instructions or None,
            )
            session.add(job)
            await session.commit()

        logger.info(
            "job_submitted", job_id=str(job.id), project_id=str(project_id), base_version_id=str(base_version_id)
        )
        return await self._enqueue(job)

    async def refine(self, job_id: UUID, feedback: str) -> Job:
        """Chain a new job onto a COMPLETED one, carrying the feedback.

        The source job and its proposal are left untouched.

        Raises:
            InvalidRequestError: empty feedback
            NotFoundError: source job missing
            InvalidStateError: source job not COMPLETED
        """
        feedback = (feedback or "").strip()
        if not feedback:
            raise InvalidRequestError("Feedback must not be empty")

        async with self.session_factory() as session:
            source = await session.get(Job, job_id)
            if source is None:
                raise NotFoundError(f"Job {job_id} not found")
            if source.status != JobStatus.COMPLETED:
                raise InvalidStateError(f"Job {job_id} is {source.status}; only COMPLETED jobs can be refined")

            if source.instructions:
                instructions = f"{source.instructions}\n\nFeedback: {feedback}"
            else:
                instructions = f"Feedback: {feedback}"

            job = self._new_job(
                project_id=source.project_id,
                base_version_id=source.base_version_id,
                job_context_id=source.job_context_id,
                instructions=instructions,
                parent_job_id=source.id,
                feedback=feedback,
            )
            session.add(job)
            await session.commit()

        logger.info("job_refined", job_id=str(job.id), parent_job_id=str(job_id))
        return await self._enqueue(job)

    @staticmethod
    def _new_job(**fields) -> Job:
        now = datetime.now(UTC)
        return Job(status=JobStatus.QUEUED.value, created_at=now, updated_at=now, **fields)

    async def _enqueue(self, job: Job) -> Job:
        if self.queue is None:
            return job
        try:
            await self.queue.enqueue(str(job.id))
        except Exception as exc:
            logger.error("job_enqueue_failed", job_id=str(job.id), error=str(exc), error_type=type(exc).__name__)
            await self.state_machine.transition(job.id, JobStatus.FAILED, f"Could not queue job: {exc}")
            return await self.get_status(job.id)
        return job

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, job_id: UUID) -> None:
        """Claim and run one job. A job already claimed elsewhere is left alone."""
        if not await self.state_machine.transition(job_id, JobStatus.RUNNING):
            logger.info("job_claim_lost", job_id=str(job_id))
            return
        logger.info("job_claimed", job_id=str(job_id), provider=self.provider.name)

        try:
            request = await self._build_request(job_id)
            raw = await asyncio.wait_for(self.provider.generate(request), timeout=self.timeout_seconds)
            content = extract_document(raw, request.base_content)
        except TimeoutError:
            error_message = ProviderTimeoutError(self.provider.name, self.timeout_seconds).message
        except (ProviderFailureError, NotFoundError) as exc:
            error_message = exc.message
        except Exception as exc:
            logger.error(
                "generation_provider_crashed",
                job_id=str(job_id),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            error_message = f"Generation provider error: {exc}"
        else:
            if await self.state_machine.complete(job_id, content):
                logger.info("job_completed", job_id=str(job_id), content_length=len(content))
            return

        await self.state_machine.transition(job_id, JobStatus.FAILED, error_message)
        logger.warning("job_failed", job_id=str(job_id), error=error_message)

    async def _build_request(self, job_id: UUID) -> GenerationRequest:
        async with self.session_factory() as session:
            job = await session.get(Job, job_id)
            if job is None:
                raise NotFoundError(f"Job {job_id} not found")
            base = await session.get(Version, job.base_version_id)
            if base is None:
                raise NotFoundError(f"Base version {job.base_version_id} not found")

            job_context_text = None
            if job.job_context_id is not None:
                job_context = await session.get(JobContext, job.job_context_id)
                job_context_text = job_context.raw_text if job_context else None

            previous_proposal = None
            if job.parent_job_id is not None:
                previous_proposal = await session.scalar(
                    select(Proposal.content).where(Proposal.job_id == job.parent_job_id)
                )

        return GenerationRequest(
            base_content=base.content,
            instructions=job.instructions,
            job_context=job_context_text,
            previous_proposal=previous_proposal,
        )

    # ------------------------------------------------------------------
    # Reads and housekeeping
    # ------------------------------------------------------------------

    async def get_status(self, job_id: UUID) -> Job:
        """Side-effect-free read of a job; safe to poll."""
        async with self.session_factory() as session:
            job = await session.get(Job, job_id)
            if job is None:
                raise NotFoundError(f"Job {job_id} not found")
            return job

    async def get_position(self, job_id: UUID) -> int:
        """1-indexed queue position, 0 when the job is not waiting in the queue."""
        if self.queue is None:
            return 0
        return await self.queue.get_position(str(job_id))

    async def list_jobs(self, project_id: UUID) -> list[Job]:
        """All jobs of a project, newest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Job).where(Job.project_id == project_id).order_by(Job.created_at.desc(), Job.id.desc())
            )
            return list(result.scalars().all())

    async def fail_stale_jobs(self, older_than: timedelta, now: datetime | None = None) -> list[UUID]:
        """Fail jobs a crashed worker left behind.

        RUNNING jobs not updated within ``older_than``, and QUEUED jobs that
        old which are no longer on the work queue, move to FAILED. Each move
        is a compare-and-set, so a job finishing concurrently keeps its result.

        Returns:
            Ids of the jobs that were failed
        """
        now = now or datetime.now(UTC)
        cutoff = now - older_than

        async with self.session_factory() as session:
            result = await session.execute(
                select(Job.id, Job.status).where(
                    Job.status.in_([JobStatus.RUNNING.value, JobStatus.QUEUED.value]),
                    Job.updated_at < cutoff,
                )
            )
            candidates = list(result.all())

        failed: list[UUID] = []
        for job_id, status in candidates:
            if status == JobStatus.QUEUED:
                if self.queue is None or await self.queue.get_position(str(job_id)) > 0:
                    continue
                message = "Job was lost from the work queue before it started"
            else:
                message = f"Job stopped responding: no progress for {int(older_than.total_seconds())} seconds"
            if await self.state_machine.transition(job_id, JobStatus.FAILED, message, now=now):
                failed.append(job_id)

        if failed:
            logger.warning("stale_jobs_failed", count=len(failed), job_ids=[str(job_id) for job_id in failed])
        return failed
