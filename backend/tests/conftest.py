"""Shared test fixtures for all test groups.

Database tests run against a throwaway SQLite file by default. Set
TEST_DATABASE_URL to an async Postgres URL to run them against Postgres.
"""

import os

import pytest
from fakeredis import FakeAsyncRedis
from sqlalchemy.ext.asyncio import AsyncEngine

from app.db.base import Base, build_engine, build_session_factory, create_schema
from app.providers.fake import FakeGenerationProvider, FakeRenderer, InMemoryObjectStorage
from app.services.compile_coordinator import CompileCoordinator
from app.services.job_context_service import JobContextService
from app.services.job_orchestrator import JobOrchestrator
from app.services.project_service import ProjectService
from app.services.proposal_reconciler import ProposalReconciler
from app.services.version_store import VersionStore

SECTIONED_RESUME = (
    "\\documentclass{article}\n"
    "\\begin{document}\n"
    "\\name{Ada Lovelace}\n"
    "% SECTION: EXPERIENCE\n"
    "\\section{Experience}\n"
    "Analyst, Engine Works (1842--1843)\n"
    "% SECTION: SKILLS\n"
    "\\section{Skills}\n"
    "Mathematics, notation\n"
    "\\end{document}\n"
)

UNSECTIONED_RESUME = "Ada Lovelace\nAnalyst at Engine Works\nMathematics and notation\n"


@pytest.fixture
def database_url(tmp_path) -> str:
    return os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
async def engine(database_url) -> AsyncEngine:
    """Fresh schema per test."""
    engine = build_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await create_schema(engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def redis():
    """Create a fake Redis instance for testing."""
    fake_redis = FakeAsyncRedis(decode_responses=True)
    yield fake_redis
    await fake_redis.flushall()
    await fake_redis.aclose()


@pytest.fixture
def provider():
    """Fresh FakeGenerationProvider with happy_path scenario (default)."""
    return FakeGenerationProvider()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def storage():
    return InMemoryObjectStorage()


@pytest.fixture
def version_store(session_factory):
    return VersionStore(session_factory)


@pytest.fixture
def project_service(session_factory, version_store):
    return ProjectService(session_factory, version_store)


@pytest.fixture
def job_context_service(session_factory):
    return JobContextService(session_factory)


@pytest.fixture
def orchestrator(session_factory, provider, redis):
    return JobOrchestrator(session_factory, provider, redis=redis, timeout_seconds=5.0)


@pytest.fixture
def reconciler(session_factory, version_store):
    return ProposalReconciler(session_factory, version_store)


@pytest.fixture
def compiler(version_store, renderer, storage):
    return CompileCoordinator(version_store, renderer, storage)


@pytest.fixture
async def project(project_service):
    """(project, base_version) with a sectioned LaTeX resume."""
    return await project_service.create_project("user-1", "Backend roles", SECTIONED_RESUME)


@pytest.fixture
def sectioned_resume() -> str:
    return SECTIONED_RESUME


@pytest.fixture
def unsectioned_resume() -> str:
    return UNSECTIONED_RESUME
