"""FastAPI dependency providers for services and their backends.

Backends (generation provider, renderer, storage) are resolved from settings
once per process. Tests replace them through ``app.dependency_overrides``.
"""

from functools import lru_cache
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.auth import AuthUser, require_auth
from app.core.config import get_settings
from app.core.exceptions import NotFoundError
from app.db.base import get_session_factory
from app.db.models.job import Job
from app.db.models.project import Project
from app.db.models.version import Version
from app.db.redis import get_redis
from app.providers.generation import GenerationProvider
from app.providers.renderer import DocumentRenderer, PdflatexRenderer
from app.providers.storage import ObjectStorage, build_storage
from app.services.compile_coordinator import CompileCoordinator
from app.services.job_context_service import JobContextService
from app.services.job_orchestrator import JobOrchestrator
from app.services.project_service import ProjectService
from app.services.proposal_reconciler import ProposalReconciler
from app.services.version_store import VersionStore


def get_db() -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


@lru_cache
def get_generation_provider() -> GenerationProvider:
    settings = get_settings()
    if settings.generation_provider == "fake":
        from app.providers.fake import FakeGenerationProvider

        return FakeGenerationProvider()

    from app.providers.anthropic_provider import AnthropicGenerationProvider

    return AnthropicGenerationProvider()


@lru_cache
def get_renderer() -> DocumentRenderer:
    return PdflatexRenderer()


@lru_cache
def get_storage() -> ObjectStorage:
    return build_storage()


def get_version_store(session_factory=Depends(get_db)) -> VersionStore:
    return VersionStore(session_factory)


def get_project_service(
    session_factory=Depends(get_db),
    version_store: VersionStore = Depends(get_version_store),
) -> ProjectService:
    return ProjectService(session_factory, version_store)


def get_job_context_service(session_factory=Depends(get_db)) -> JobContextService:
    return JobContextService(session_factory)


def get_job_orchestrator(
    session_factory=Depends(get_db),
    provider: GenerationProvider = Depends(get_generation_provider),
    redis=Depends(get_redis),
) -> JobOrchestrator:
    return JobOrchestrator(session_factory, provider, redis=redis)


def get_proposal_reconciler(
    session_factory=Depends(get_db),
    version_store: VersionStore = Depends(get_version_store),
) -> ProposalReconciler:
    return ProposalReconciler(session_factory, version_store)


def get_compile_coordinator(
    version_store: VersionStore = Depends(get_version_store),
    renderer: DocumentRenderer = Depends(get_renderer),
    storage: ObjectStorage = Depends(get_storage),
) -> CompileCoordinator:
    return CompileCoordinator(version_store, renderer, storage)


# ---------------------------------------------------------------------------
# Ownership guards: another user's entities are reported as missing (404)
# ---------------------------------------------------------------------------


async def owned_project(
    project_id: UUID,
    user: AuthUser = Depends(require_auth),
    projects: ProjectService = Depends(get_project_service),
) -> Project:
    return await projects.get_project(project_id, user.user_id)


async def owned_version(
    version_id: UUID,
    user: AuthUser = Depends(require_auth),
    session_factory=Depends(get_db),
) -> Version:
    async with session_factory() as session:
        version = await session.get(Version, version_id)
        project = await session.get(Project, version.project_id) if version else None
    if version is None or project is None or project.owner_id != user.user_id:
        raise NotFoundError(f"Version {version_id} not found")
    return version


async def owned_job(
    job_id: UUID,
    user: AuthUser = Depends(require_auth),
    session_factory=Depends(get_db),
) -> Job:
    async with session_factory() as session:
        job = await session.get(Job, job_id)
        project = await session.get(Project, job.project_id) if job else None
    if job is None or project is None or project.owner_id != user.user_id:
        raise NotFoundError(f"Job {job_id} not found")
    return job
