"""ProjectService: project creation and ownership checks.

A project is created together with its BASE version in one transaction, so a
project without a root version is never observable.
"""

from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.exceptions import InvalidRequestError, NotFoundError
from app.db.models.project import Project
from app.db.models.version import Version
from app.schemas.versions import VersionType
from app.services.version_store import VersionStore

logger = structlog.get_logger(__name__)


class ProjectService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], version_store: VersionStore):
        self.session_factory = session_factory
        self.version_store = version_store

    async def create_project(
        self,
        owner_id: str,
        name: str,
        initial_content: str | None = None,
    ) -> tuple[Project, Version]:
        """Create a project and its BASE version.

        Args:
            owner_id: Opaque user id from the identity gateway
            name: Display name (non-blank)
            initial_content: BASE content; defaults to an empty LaTeX skeleton

        Returns:
            (project, base_version)
        """
        name = name.strip()
        if not name:
            raise InvalidRequestError("Project name must not be empty")

        content = initial_content if initial_content is not None else get_settings().default_document

        async with self.session_factory() as session:
            project = Project(owner_id=owner_id, name=name)
            session.add(project)
            await session.flush()
            base = await self.version_store.add_version(session, project.id, None, VersionType.BASE, content)
            await session.commit()

        logger.info("project_created", project_id=str(project.id), base_version_id=str(base.id))
        return project, base

    async def get_project(self, project_id: UUID, owner_id: str) -> Project:
        """Load a project owned by ``owner_id``.

        Projects owned by someone else are reported as missing.
        """
        async with self.session_factory() as session:
            project = await session.get(Project, project_id)
            if project is None or project.owner_id != owner_id:
                raise NotFoundError(f"Project {project_id} not found")
            return project

    async def list_projects(self, owner_id: str) -> list[Project]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Project).where(Project.owner_id == owner_id).order_by(Project.created_at.desc())
            )
            return list(result.scalars().all())
