"""ProposalReconciler: turns a completed job's proposal into a version, or discards it.

Merge-then-commit: the merged document is computed in memory from the base
version and the proposal, then the new AI_GENERATED version and the ACCEPTED
decision are committed in one transaction. The unique job_id on
proposal_decisions is the single serialization point per job, so a second
accept (or an accept racing a reject) fails cleanly and never creates a
duplicate version.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import (
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
    ProposalMissingError,
    ProposalNotReadyError,
)
from app.db.models.job import Job
from app.db.models.proposal import Proposal
from app.db.models.proposal_decision import ProposalDecision
from app.db.models.version import Version
from app.domain.diff import ChangeType, SectionProposal, WholeDiff, diff_sections, diff_whole
from app.domain.merge import merge_sections
from app.domain.sections import parse
from app.queue.schemas import JobStatus
from app.schemas.versions import VersionType
from app.services.version_store import VersionStore

logger = structlog.get_logger(__name__)


class DecisionType(StrEnum):
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class SectionView:
    """What a reconciliation UI shows for one proposal.

    ``sections`` is empty when either document has no recognizable sections;
    the whole-document diff then applies and accept takes the full proposal.
    """

    sections: list[SectionProposal]
    default_selection: list[str]
    has_changes: bool
    whole: WholeDiff

    @property
    def modified_names(self) -> list[str]:
        return [proposal.section_name for proposal in self.sections if proposal.change_type == ChangeType.MODIFIED]


def build_section_view(base_content: str, proposal_content: str) -> SectionView:
    """Split both documents and classify their sections. Pure."""
    base_doc = parse(base_content)
    proposal_doc = parse(proposal_content)
    whole = diff_whole(base_content, proposal_content)

    if not (base_doc.is_sectioned and proposal_doc.is_sectioned):
        return SectionView(sections=[], default_selection=[], has_changes=whole.has_changes, whole=whole)

    sections = diff_sections(list(base_doc.sections), list(proposal_doc.sections))
    # Changed content is opt-out: every modified section starts selected
    default_selection = [proposal.section_name for proposal in sections if proposal.change_type == ChangeType.MODIFIED]
    return SectionView(
        sections=sections,
        default_selection=default_selection,
        has_changes=whole.has_changes,
        whole=whole,
    )


class ProposalReconciler:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], version_store: VersionStore):
        self.session_factory = session_factory
        self.version_store = version_store

    async def _load(self, session: AsyncSession, job_id: UUID) -> tuple[Job, Proposal]:
        job = await session.get(Job, job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        if job.status != JobStatus.COMPLETED:
            raise ProposalNotReadyError(str(job_id), job.status)

        proposal = await session.scalar(select(Proposal).where(Proposal.job_id == job_id))
        if proposal is None:
            logger.error("proposal_missing", job_id=str(job_id))
            raise ProposalMissingError(str(job_id))
        return job, proposal

    async def get_proposal(self, job_id: UUID) -> Proposal:
        """The proposal of a COMPLETED job.

        Raises:
            NotFoundError: job missing
            ProposalNotReadyError: job not COMPLETED yet
            ProposalMissingError: job COMPLETED without a proposal
        """
        async with self.session_factory() as session:
            _, proposal = await self._load(session, job_id)
            return proposal

    async def compute_section_view(self, job_id: UUID) -> SectionView:
        async with self.session_factory() as session:
            job, proposal = await self._load(session, job_id)
            base = await session.get(Version, job.base_version_id)

        return build_section_view(base.content, proposal.content)

    async def get_decision(self, job_id: UUID) -> ProposalDecision | None:
        async with self.session_factory() as session:
            return await session.scalar(select(ProposalDecision).where(ProposalDecision.job_id == job_id))

    async def accept(self, job_id: UUID, accepted_section_names: Iterable[str] | None = None) -> Version:
        """Create an AI_GENERATED version from the proposal.

        Args:
            job_id: COMPLETED job whose proposal to apply
            accepted_section_names: Sections to take from the proposal. None
                means the default selection (all modified sections). Ignored
                when the documents have no recognizable sections.

        Returns:
            The new version, a child of the job's base version

        Raises:
            InvalidStateError: the proposal was already accepted or rejected
            InvalidRequestError: unknown section names
        """
        async with self.session_factory() as session:
            job, proposal = await self._load(session, job_id)

            decision = await session.scalar(select(ProposalDecision).where(ProposalDecision.job_id == job_id))
            if decision is not None:
                raise InvalidStateError(f"Proposal for job {job_id} was already {decision.decision.lower()}")

            base = await session.get(Version, job.base_version_id)
            base_doc, proposal_doc = parse(base.content), parse(proposal.content)
            view = build_section_view(base.content, proposal.content)

            if view.sections:
                if accepted_section_names is None:
                    selected = set(view.default_selection)
                else:
                    selected = set(accepted_section_names)
                    known = {section.section_name for section in view.sections}
                    unknown = sorted(selected - known)
                    if unknown:
                        raise InvalidRequestError(f"Unknown sections: {', '.join(unknown)}")
                merged = merge_sections(base_doc, proposal_doc, view.sections, selected)
                applied = [name for name in view.modified_names if name in selected]
            else:
                merged = proposal.content
                applied = []

            version = await self.version_store.add_version(
                session, job.project_id, job.base_version_id, VersionType.AI_GENERATED, merged
            )
            session.add(
                ProposalDecision(
                    job_id=job.id,
                    decision=DecisionType.ACCEPTED.value,
                    version_id=version.id,
                    accepted_sections=applied,
                )
            )
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise InvalidStateError(f"Proposal for job {job_id} was already decided") from exc

        logger.info(
            "proposal_accepted",
            job_id=str(job_id),
            version_id=str(version.id),
            accepted_sections=applied,
        )
        return version

    async def reject(self, job_id: UUID) -> None:
        """Discard a job's proposal. Never writes a version.

        Idempotent: a job that already has a decision is left as it is.
        """
        async with self.session_factory() as session:
            if await session.get(Job, job_id) is None:
                raise NotFoundError(f"Job {job_id} not found")

            decision = await session.scalar(select(ProposalDecision).where(ProposalDecision.job_id == job_id))
            if decision is not None:
                logger.info("proposal_reject_noop", job_id=str(job_id), decision=decision.decision)
                return

            session.add(ProposalDecision(job_id=job_id, decision=DecisionType.REJECTED.value, accepted_sections=[]))
            try:
                await session.commit()
            except IntegrityError:
                # A concurrent accept or reject recorded its decision first
                await session.rollback()
                logger.info("proposal_reject_noop", job_id=str(job_id), decision="concurrent")
                return

        logger.info("proposal_rejected", job_id=str(job_id))
