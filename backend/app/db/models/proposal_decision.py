"""ProposalDecision model: the write-once accept/reject outcome of a proposal."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Uuid

from app.db.base import Base


class ProposalDecision(Base):
    """Records that a job's proposal has been consumed.

    The unique job_id makes the decision the single point of serialization per
    job: a second accept, or an accept racing a reject, loses on the constraint.
    """

    __tablename__ = "proposal_decisions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id = Column(Uuid, ForeignKey("jobs.id"), nullable=False, unique=True)

    decision = Column(String(20), nullable=False)  # ProposalDecisionType enum value
    version_id = Column(Uuid, ForeignKey("versions.id"), nullable=True)  # set on accept
    accepted_sections = Column(JSON, nullable=True)  # list[str] actually applied

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
