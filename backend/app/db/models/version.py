"""Version model: immutable document snapshots forming a forest per project."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
    event,
    inspect,
    text,
)

from app.core.exceptions import InternalError
from app.db.base import Base

# Columns that may never change once a row is flushed
IMMUTABLE_FIELDS = ("content", "parent_id", "project_id", "version_type")


class Version(Base):
    """A single resume version.

    Rows are append-only: content and lineage are fixed at insert time. The only
    columns that change afterwards are compile-derived metadata (status,
    artifact_url, diagnostics, compiled_at) and the is_active marker.
    """

    __tablename__ = "versions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False, index=True)
    parent_id = Column(Uuid, ForeignKey("versions.id"), nullable=True, index=True)  # None only for BASE

    version_type = Column(String(20), nullable=False)  # VersionType enum value
    status = Column(String(20), nullable=False, default="DRAFT")  # VersionStatus enum value
    is_active = Column(Boolean, nullable=False, default=False)

    content = Column(Text, nullable=False)

    # Compile-derived metadata
    artifact_url = Column(Text, nullable=True)
    diagnostics = Column(JSON, nullable=True)  # raw renderer messages, list[str]
    compiled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        # Exactly one BASE root per project
        Index(
            "uq_versions_base_per_project",
            "project_id",
            unique=True,
            postgresql_where=text("version_type = 'BASE'"),
            sqlite_where=text("version_type = 'BASE'"),
        ),
        # At most one ACTIVE marker per project
        Index(
            "uq_versions_active_per_project",
            "project_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
        Index("ix_versions_project_created", "project_id", "created_at"),
    )


@event.listens_for(Version, "before_update")
def _reject_content_rewrite(mapper, connection, target: Version) -> None:
    state = inspect(target)
    changed = [name for name in IMMUTABLE_FIELDS if state.attrs[name].history.has_changes()]
    if changed:
        raise InternalError(f"Version {target.id} is immutable; refused update of {', '.join(changed)}")
