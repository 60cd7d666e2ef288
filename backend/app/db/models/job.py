"""Job model: asynchronous generation requests and their status."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, Uuid

from app.db.base import Base


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False, index=True)
    base_version_id = Column(Uuid, ForeignKey("versions.id"), nullable=False, index=True)
    job_context_id = Column(Uuid, ForeignKey("job_contexts.id"), nullable=True)

    instructions = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="QUEUED")  # JobStatus enum values
    error_message = Column(Text, nullable=True)

    # Refine chains: the job this one was refined from, and the feedback that asked for it
    parent_job_id = Column(Uuid, ForeignKey("jobs.id"), nullable=True, index=True)
    feedback = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_jobs_status_updated", "status", "updated_at"),)
