"""JobContext model: target-role descriptions referenced by generation jobs."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid

from app.db.base import Base


class JobContext(Base):
    __tablename__ = "job_contexts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False, index=True)

    title = Column(String(255), nullable=True)  # e.g. "Senior Backend Engineer @ Acme"
    raw_text = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
