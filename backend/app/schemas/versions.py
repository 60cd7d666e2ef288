"""Version enums and API schemas."""

from datetime import datetime
from enum import StrEnum
from uuid import UUID

from app.schemas.common import CamelModel


class VersionType(StrEnum):
    BASE = "BASE"
    MANUAL = "MANUAL"
    AI_GENERATED = "AI_GENERATED"


class VersionStatus(StrEnum):
    """Compile status. DRAFT moves once, to COMPILED or ERROR."""

    DRAFT = "DRAFT"
    COMPILED = "COMPILED"
    ERROR = "ERROR"


class CompileStatus(StrEnum):
    SUCCESS = "success"
    WARNING = "warning"  # artifact produced and diagnostics non-empty
    ERROR = "error"


class VersionResponse(CamelModel):
    id: UUID
    project_id: UUID
    parent_id: UUID | None
    version_type: VersionType
    status: VersionStatus
    is_active: bool
    content: str
    artifact_url: str | None = None
    diagnostics: list[str] | None = None
    created_at: datetime
    compiled_at: datetime | None = None


class NewVersionResponse(CamelModel):
    new_version_id: UUID
