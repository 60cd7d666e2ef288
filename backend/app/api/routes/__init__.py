from fastapi import APIRouter

from app.api.routes import health, job_contexts, jobs, projects, versions

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(job_contexts.router, prefix="/projects", tags=["job-contexts"])
api_router.include_router(versions.router, prefix="/versions", tags=["versions"])
api_router.include_router(jobs.router, prefix="/ai/jobs", tags=["ai-jobs"])
