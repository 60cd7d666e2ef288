"""Project API routes."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends

from app.api.deps import get_project_service, owned_project
from app.core.auth import AuthUser, require_auth
from app.db.models.project import Project
from app.schemas.common import CamelModel
from app.services.project_service import ProjectService

router = APIRouter()


class ProjectCreate(CamelModel):
    name: str
    initial_content: str | None = None


class ProjectResponse(CamelModel):
    id: UUID
    name: str
    owner_id: str
    created_at: datetime


class ProjectCreatedResponse(ProjectResponse):
    base_version_id: UUID


@router.post("", status_code=201, response_model=ProjectCreatedResponse)
async def create_project(
    request: ProjectCreate,
    user: AuthUser = Depends(require_auth),
    projects: ProjectService = Depends(get_project_service),
):
    """Create a project together with its BASE version."""
    project, base = await projects.create_project(user.user_id, request.name, request.initial_content)
    return ProjectCreatedResponse(
        id=project.id,
        name=project.name,
        owner_id=project.owner_id,
        created_at=project.created_at,
        base_version_id=base.id,
    )


@router.get("", response_model=list[ProjectResponse])
async def list_projects(
    user: AuthUser = Depends(require_auth),
    projects: ProjectService = Depends(get_project_service),
):
    return await projects.list_projects(user.user_id)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(project: Project = Depends(owned_project)):
    return project
