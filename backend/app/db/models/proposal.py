"""Proposal model: generated content attached to a completed job."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Text, Uuid

from app.db.base import Base


class Proposal(Base):
    """Read-only output of a generation job.

    Written in the same transaction that moves the job to COMPLETED and never
    updated afterwards. The per-section breakdown is derived on read.
    """

    __tablename__ = "proposals"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id = Column(Uuid, ForeignKey("jobs.id"), nullable=False, unique=True)

    content = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
