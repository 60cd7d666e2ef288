"""API-specific test fixtures."""

from contextlib import asynccontextmanager

import pytest
from fakeredis import FakeAsyncRedis
from fastapi import FastAPI
from fastapi.testclient import TestClient

USER_A = {"X-User-Id": "user_a"}


@pytest.fixture
def api_client(engine, database_url, provider, renderer, storage):
    """FastAPI test client with test database, fake Redis and fake backends.

    Initializes the global database via init_db inside the TestClient's
    own event loop so route handlers can use get_session_factory().
    The engine fixture ensures a clean schema before this runs.
    """
    from fastapi.middleware.cors import CORSMiddleware

    import app.db.base as db_mod
    import app.db.redis as redis_mod
    from app.api.deps import get_generation_provider, get_renderer, get_storage
    from app.api.routes import api_router
    from app.core.config import get_settings
    from app.db import close_db, init_db
    from app.main import register_exception_handlers

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        """Test lifespan - initialize DB and Redis in TestClient's event loop."""
        # Reset globals so init_db creates a fresh engine in THIS loop
        db_mod._engine = None
        db_mod._session_factory = None
        await init_db(database_url)
        redis_mod._redis = FakeAsyncRedis(decode_responses=True)
        yield
        await redis_mod._redis.aclose()
        redis_mod._redis = None
        await close_db()

    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Resume Version Engine - Test Client",
        version="0.1.0",
        lifespan=test_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(api_router)

    app.dependency_overrides[get_generation_provider] = lambda: provider
    app.dependency_overrides[get_renderer] = lambda: renderer
    app.dependency_overrides[get_storage] = lambda: storage

    with TestClient(app) as client:
        yield client


@pytest.fixture
def created_project(api_client, sectioned_resume):
    """Project owned by user_a, as returned by POST /projects."""
    response = api_client.post(
        "/projects", json={"name": "Backend roles", "initialContent": sectioned_resume}, headers=USER_A
    )
    assert response.status_code == 201
    return response.json()
