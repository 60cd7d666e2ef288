"""JobContextService: job descriptions a generation job can tailor toward."""

from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import InvalidRequestError, NotFoundError
from app.db.models.job_context import JobContext
from app.db.models.project import Project

logger = structlog.get_logger(__name__)


class JobContextService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(self, project_id: UUID, raw_text: str, title: str | None = None) -> JobContext:
        if not raw_text or not raw_text.strip():
            raise InvalidRequestError("Job description text must not be empty")

        async with self.session_factory() as session:
            if await session.get(Project, project_id) is None:
                raise NotFoundError(f"Project {project_id} not found")
            job_context = JobContext(project_id=project_id, raw_text=raw_text, title=title)
            session.add(job_context)
            await session.commit()

        logger.info("job_context_created", job_context_id=str(job_context.id), project_id=str(project_id))
        return job_context

    async def get(self, job_context_id: UUID) -> JobContext:
        async with self.session_factory() as session:
            job_context = await session.get(JobContext, job_context_id)
            if job_context is None:
                raise NotFoundError(f"Job context {job_context_id} not found")
            return job_context

    async def list_for_project(self, project_id: UUID) -> list[JobContext]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(JobContext)
                .where(JobContext.project_id == project_id)
                .order_by(JobContext.created_at.desc())
            )
            return list(result.scalars().all())
