"""Job context (target job description) API routes, nested under a project."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends

from app.api.deps import get_job_context_service, owned_project
from app.db.models.project import Project
from app.schemas.common import CamelModel
from app.services.job_context_service import JobContextService

router = APIRouter()


class JobContextCreate(CamelModel):
    raw_text: str
    title: str | None = None


class JobContextResponse(CamelModel):
    id: UUID
    project_id: UUID
    title: str | None
    raw_text: str
    created_at: datetime


@router.post("/{project_id}/job-contexts", status_code=201, response_model=JobContextResponse)
async def create_job_context(
    request: JobContextCreate,
    project: Project = Depends(owned_project),
    job_contexts: JobContextService = Depends(get_job_context_service),
):
    return await job_contexts.create(project.id, request.raw_text, request.title)


@router.get("/{project_id}/job-contexts", response_model=list[JobContextResponse])
async def list_job_contexts(
    project: Project = Depends(owned_project),
    job_contexts: JobContextService = Depends(get_job_context_service),
):
    return await job_contexts.list_for_project(project.id)
