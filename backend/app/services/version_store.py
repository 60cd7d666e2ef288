"""VersionStore: append-only forest of resume versions.

- Constructor dependency injection (session_factory)
- Content and lineage are written once; later writes only touch compile
  metadata and the ACTIVE marker
- Status changes are compare-and-set updates (DRAFT -> COMPILED | ERROR)
- Lineage traversal is a recursive SQL query, never a pointer walk
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from uuid import UUID

import structlog
from sqlalchemy import literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from app.core.exceptions import InvalidRequestError, InvalidStateError, NotFoundError
from app.db.models.project import Project
from app.db.models.version import Version
from app.schemas.versions import VersionStatus, VersionType

logger = structlog.get_logger(__name__)

BASE_INDEX = "uq_versions_base_per_project"


def _is_base_conflict(exc: IntegrityError, version_type: VersionType | str) -> bool:
    """True when the insert lost a race on the one-BASE-per-project index.

    Postgres names the index in its message; SQLite only names the column.
    """
    message = str(exc.orig)
    if BASE_INDEX in message:
        return True
    return VersionType(version_type) == VersionType.BASE and "UNIQUE constraint failed" in message


class VersionStore:
    """Creates and reads versions; never rewrites their content."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def add_version(
        self,
        session: AsyncSession,
        project_id: UUID,
        parent_id: UUID | None,
        version_type: VersionType | str,
        content: str,
    ) -> Version:
        """Validate and stage a new DRAFT version in a caller-owned transaction.

        The caller commits. Used directly when the version must commit together
        with other rows (accepting a proposal, creating a project).

        Raises:
            NotFoundError: project or parent missing
            InvalidRequestError: parent in another project, BASE with a parent,
                or non-BASE without one
            InvalidStateError: the project already has a BASE version
        """
        version_type = VersionType(version_type)

        project = await session.get(Project, project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        if version_type == VersionType.BASE:
            if parent_id is not None:
                raise InvalidRequestError("A BASE version cannot have a parent")
            existing = await session.scalar(
                select(Version.id).where(
                    Version.project_id == project_id,
                    Version.version_type == VersionType.BASE.value,
                )
            )
            if existing is not None:
                raise InvalidStateError(f"Project {project_id} already has a BASE version")
        else:
            if parent_id is None:
                raise InvalidRequestError(f"A {version_type.value} version requires a parent version")
            parent = await session.get(Version, parent_id)
            if parent is None:
                raise NotFoundError(f"Parent version {parent_id} not found")
            if parent.project_id != project_id:
                raise InvalidRequestError(f"Parent version {parent_id} does not belong to project {project_id}")

        version = Version(
            project_id=project_id,
            parent_id=parent_id,
            version_type=version_type.value,
            status=VersionStatus.DRAFT.value,
            is_active=False,
            content=content,
            created_at=datetime.now(UTC),
        )
        session.add(version)
        await session.flush()
        return version

    async def create_version(
        self,
        project_id: UUID,
        parent_id: UUID | None,
        version_type: VersionType | str,
        content: str,
    ) -> Version:
        """Create a new DRAFT version in its own transaction."""
        async with self.session_factory() as session:
            try:
                version = await self.add_version(session, project_id, parent_id, version_type, content)
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                if _is_base_conflict(exc, version_type):
                    raise InvalidStateError(f"Project {project_id} already has a BASE version") from exc
                logger.warning("version_create_conflict", project_id=str(project_id), error=str(exc.orig))
                raise InvalidStateError(f"Could not create version in project {project_id}: {exc.orig}") from exc

        logger.info(
            "version_created",
            version_id=str(version.id),
            project_id=str(project_id),
            parent_id=str(parent_id) if parent_id else None,
            version_type=version.version_type,
        )
        return version

    async def save_edit(self, parent_id: UUID, content: str) -> Version:
        """Manual edit: always a new MANUAL child of ``parent_id``."""
        parent = await self.get_version(parent_id)
        return await self.create_version(parent.project_id, parent.id, VersionType.MANUAL, content)

    async def get_version(self, version_id: UUID) -> Version:
        async with self.session_factory() as session:
            version = await session.get(Version, version_id)
            if version is None:
                raise NotFoundError(f"Version {version_id} not found")
            return version

    async def list_versions(self, project_id: UUID) -> list[Version]:
        """All versions of a project, newest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Version)
                .where(Version.project_id == project_id)
                .order_by(Version.created_at.desc(), Version.id.desc())
            )
            return list(result.scalars().all())

    async def list_ancestors(self, version_id: UUID) -> list[Version]:
        """Lineage of a version: the version itself first, the BASE root last."""
        lineage = (
            select(Version.id, Version.parent_id, literal(0).label("depth"))
            .where(Version.id == version_id)
            .cte("lineage", recursive=True)
        )
        parent = aliased(Version)
        lineage = lineage.union_all(
            select(parent.id, parent.parent_id, (lineage.c.depth + 1).label("depth")).where(
                parent.id == lineage.c.parent_id
            )
        )

        async with self.session_factory() as session:
            result = await session.execute(
                select(Version).join(lineage, Version.id == lineage.c.id).order_by(lineage.c.depth)
            )
            versions = list(result.scalars().all())

        if not versions:
            raise NotFoundError(f"Version {version_id} not found")
        return versions

    async def _set_compile_result(
        self,
        version_id: UUID,
        status: VersionStatus,
        artifact_url: str | None,
        diagnostics: Iterable[str],
    ) -> Version:
        now = datetime.now(UTC)
        async with self.session_factory() as session:
            result = await session.execute(
                update(Version)
                .where(Version.id == version_id, Version.status == VersionStatus.DRAFT.value)
                .values(
                    status=status.value,
                    artifact_url=artifact_url,
                    diagnostics=list(diagnostics),
                    compiled_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await session.rollback()
                current = await session.get(Version, version_id)
                if current is None:
                    raise NotFoundError(f"Version {version_id} not found")
                raise InvalidStateError(
                    f"Version {version_id} is {current.status}; only DRAFT versions take a compile result"
                )
            await session.commit()
            return await session.get(Version, version_id, populate_existing=True)

    async def mark_compiled(self, version_id: UUID, artifact_url: str, diagnostics: Iterable[str] = ()) -> Version:
        """DRAFT -> COMPILED, recording the artifact URL and any warnings."""
        return await self._set_compile_result(version_id, VersionStatus.COMPILED, artifact_url, diagnostics)

    async def mark_error(self, version_id: UUID, diagnostics: Iterable[str]) -> Version:
        """DRAFT -> ERROR, recording the raw diagnostics."""
        return await self._set_compile_result(version_id, VersionStatus.ERROR, None, diagnostics)

    async def set_active(self, version_id: UUID) -> Version:
        """Move the project's ACTIVE marker to ``version_id``."""
        async with self.session_factory() as session:
            version = await session.get(Version, version_id)
            if version is None:
                raise NotFoundError(f"Version {version_id} not found")

            await session.execute(
                update(Version)
                .where(
                    Version.project_id == version.project_id,
                    Version.is_active.is_(True),
                    Version.id != version_id,
                )
                .values(is_active=False)
                .execution_options(synchronize_session=False)
            )
            await session.execute(
                update(Version)
                .where(Version.id == version_id)
                .values(is_active=True)
                .execution_options(synchronize_session=False)
            )
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise InvalidStateError(f"Concurrent activation in project {version.project_id}; retry") from exc

            logger.info("version_activated", version_id=str(version_id), project_id=str(version.project_id))
            return await session.get(Version, version_id, populate_existing=True)

    async def get_active(self, project_id: UUID) -> Version:
        """The marked ACTIVE version, or the latest version when none is marked."""
        async with self.session_factory() as session:
            version = await session.scalar(
                select(Version).where(Version.project_id == project_id, Version.is_active.is_(True))
            )
            if version is None:
                version = await session.scalar(
                    select(Version)
                    .where(Version.project_id == project_id)
                    .order_by(Version.created_at.desc(), Version.id.desc())
                    .limit(1)
                )
            if version is None:
                raise NotFoundError(f"Project {project_id} has no versions")
            return version
