"""Re-export all models so Base.metadata sees them."""

from app.db.models.job import Job
from app.db.models.job_context import JobContext
from app.db.models.project import Project
from app.db.models.proposal import Proposal
from app.db.models.proposal_decision import ProposalDecision
from app.db.models.version import Version

__all__ = [
    "Job",
    "JobContext",
    "Project",
    "Proposal",
    "ProposalDecision",
    "Version",
]
