"""Version API routes: manual edits, compile, lineage, diff and activation."""

from uuid import UUID

from fastapi import APIRouter, Depends

from app.api.deps import (
    get_compile_coordinator,
    get_version_store,
    owned_project,
    owned_version,
)
from app.core.exceptions import NotFoundError
from app.db.models.project import Project
from app.db.models.version import Version
from app.domain.diff import diff_whole, unified_diff
from app.schemas.common import CamelModel
from app.schemas.versions import CompileStatus, NewVersionResponse, VersionResponse
from app.services.compile_coordinator import CompileCoordinator
from app.services.version_store import VersionStore

router = APIRouter()


class SaveEditRequest(CamelModel):
    content: str


class CompileResponse(CamelModel):
    status: CompileStatus
    artifact_url: str | None = None
    diagnostics: list[str]


class VersionDiffResponse(CamelModel):
    diff: str
    has_changes: bool
    added_lines: int
    removed_lines: int


@router.get("/project/{project_id}", response_model=list[VersionResponse])
async def list_project_versions(
    project: Project = Depends(owned_project),
    versions: VersionStore = Depends(get_version_store),
):
    """All versions of a project, newest first."""
    return await versions.list_versions(project.id)


@router.get("/project/{project_id}/active", response_model=VersionResponse)
async def get_active_version(
    project: Project = Depends(owned_project),
    versions: VersionStore = Depends(get_version_store),
):
    return await versions.get_active(project.id)


@router.get("/{version_id}", response_model=VersionResponse)
async def get_version(version: Version = Depends(owned_version)):
    return version


@router.put("/{version_id}", status_code=201, response_model=NewVersionResponse)
async def save_edit(
    request: SaveEditRequest,
    version: Version = Depends(owned_version),
    versions: VersionStore = Depends(get_version_store),
):
    """Manual edit: always creates a new MANUAL child, never mutates ``version_id``."""
    new_version = await versions.save_edit(version.id, request.content)
    return NewVersionResponse(new_version_id=new_version.id)


@router.post("/{version_id}/compile", response_model=CompileResponse)
async def compile_version(
    version: Version = Depends(owned_version),
    compiler: CompileCoordinator = Depends(get_compile_coordinator),
):
    """Render a DRAFT version. Compile errors come back as ``status=error``, not as HTTP errors."""
    result = await compiler.compile(version.id)
    return CompileResponse(status=result.status, artifact_url=result.artifact_url, diagnostics=result.diagnostics)


@router.get("/{version_id}/ancestors", response_model=list[VersionResponse])
async def list_ancestors(
    version: Version = Depends(owned_version),
    versions: VersionStore = Depends(get_version_store),
):
    """Lineage from this version back to the project's BASE version."""
    return await versions.list_ancestors(version.id)


@router.get("/{version_id}/diff/{other_version_id}", response_model=VersionDiffResponse)
async def diff_versions(
    other_version_id: UUID,
    version: Version = Depends(owned_version),
    versions: VersionStore = Depends(get_version_store),
):
    other = await versions.get_version(other_version_id)
    if other.project_id != version.project_id:
        raise NotFoundError(f"Version {other_version_id} not found in project {version.project_id}")

    whole = diff_whole(version.content, other.content)
    return VersionDiffResponse(
        diff=unified_diff(version.content, other.content, before_label=str(version.id), after_label=str(other.id)),
        has_changes=whole.has_changes,
        added_lines=whole.added_lines,
        removed_lines=whole.removed_lines,
    )


@router.post("/{version_id}/activate", response_model=VersionResponse)
async def activate_version(
    version: Version = Depends(owned_version),
    versions: VersionStore = Depends(get_version_store),
):
    return await versions.set_active(version.id)
