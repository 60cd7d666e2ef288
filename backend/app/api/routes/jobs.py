"""AI generation job routes: submit, poll, review, accept, reject, refine."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends

from app.api.deps import (
    get_job_orchestrator,
    get_project_service,
    get_proposal_reconciler,
    owned_job,
    owned_project,
)
from app.core.auth import AuthUser, require_auth
from app.db.models.job import Job
from app.db.models.project import Project
from app.domain.diff import ChangeType
from app.queue.schemas import JobStatus
from app.queue.worker import process_next_job
from app.schemas.common import CamelModel
from app.schemas.versions import NewVersionResponse
from app.services.job_orchestrator import JobOrchestrator
from app.services.project_service import ProjectService
from app.services.proposal_reconciler import ProposalReconciler

router = APIRouter()


class SubmitJobRequest(CamelModel):
    """Request model for job submission."""

    project_id: UUID
    base_version_id: UUID
    job_context_id: UUID | None = None
    instructions: str | None = None


class SubmitJobResponse(CamelModel):
    """Response model for job submission and refinement."""

    job_id: UUID
    status: JobStatus
    position: int


class JobStatusResponse(CamelModel):
    """Response model for job status polling."""

    job_id: UUID
    project_id: UUID
    base_version_id: UUID
    job_context_id: UUID | None = None
    parent_job_id: UUID | None = None
    status: JobStatus
    error_message: str | None = None
    position: int = 0
    decision: str | None = None  # ACCEPTED | REJECTED once the proposal was handled
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class SectionProposalResponse(CamelModel):
    section_name: str
    before: str
    after: str
    change_type: ChangeType


class ProposalResponse(CamelModel):
    job_id: UUID
    content: str
    sections: list[SectionProposalResponse]
    default_selection: list[str]
    has_changes: bool
    added_lines: int
    removed_lines: int


class AcceptRequest(CamelModel):
    accepted_sections: list[str] | None = None  # None: accept the default selection


class RefineRequest(CamelModel):
    feedback: str


def _status_response(job: Job, position: int = 0, decision: str | None = None) -> JobStatusResponse:
    return JobStatusResponse(
        job_id=job.id,
        project_id=job.project_id,
        base_version_id=job.base_version_id,
        job_context_id=job.job_context_id,
        parent_job_id=job.parent_job_id,
        status=job.status,
        error_message=job.error_message,
        position=position,
        decision=decision,
        created_at=job.created_at,
        updated_at=job.updated_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
    )


@router.post("", status_code=202, response_model=SubmitJobResponse)
async def submit_job(
    request: SubmitJobRequest,
    background_tasks: BackgroundTasks,
    user: AuthUser = Depends(require_auth),
    projects: ProjectService = Depends(get_project_service),
    orchestrator: JobOrchestrator = Depends(get_job_orchestrator),
):
    """Submit a generation job. Returns immediately with the QUEUED job."""
    await projects.get_project(request.project_id, user.user_id)

    job = await orchestrator.submit(
        request.project_id,
        request.base_version_id,
        job_context_id=request.job_context_id,
        instructions=request.instructions,
    )
    position = await orchestrator.get_position(job.id)

    # Trigger worker processing in the background
    background_tasks.add_task(process_next_job, orchestrator, redis=orchestrator.redis)

    return SubmitJobResponse(job_id=job.id, status=job.status, position=position)


@router.get("/project/{project_id}", response_model=list[JobStatusResponse])
async def list_project_jobs(
    project: Project = Depends(owned_project),
    orchestrator: JobOrchestrator = Depends(get_job_orchestrator),
):
    """All jobs of a project, newest first."""
    return [_status_response(job) for job in await orchestrator.list_jobs(project.id)]


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    job: Job = Depends(owned_job),
    orchestrator: JobOrchestrator = Depends(get_job_orchestrator),
    reconciler: ProposalReconciler = Depends(get_proposal_reconciler),
):
    """Current job state. Side-effect free: poll at a bounded interval until COMPLETED or FAILED."""
    job = await orchestrator.get_status(job.id)
    position = await orchestrator.get_position(job.id) if job.status == JobStatus.QUEUED else 0
    decision = await reconciler.get_decision(job.id)
    return _status_response(job, position=position, decision=decision.decision if decision else None)


@router.get("/{job_id}/proposal", response_model=ProposalResponse)
async def get_proposal(
    job: Job = Depends(owned_job),
    reconciler: ProposalReconciler = Depends(get_proposal_reconciler),
):
    """Proposal content with its per-section breakdown. 404 until the job is COMPLETED."""
    proposal = await reconciler.get_proposal(job.id)
    view = await reconciler.compute_section_view(job.id)
    return ProposalResponse(
        job_id=job.id,
        content=proposal.content,
        sections=[
            SectionProposalResponse(
                section_name=section.section_name,
                before=section.before,
                after=section.after,
                change_type=section.change_type,
            )
            for section in view.sections
        ],
        default_selection=view.default_selection,
        has_changes=view.has_changes,
        added_lines=view.whole.added_lines,
        removed_lines=view.whole.removed_lines,
    )


@router.post("/{job_id}/accept", response_model=NewVersionResponse)
async def accept_proposal(
    request: AcceptRequest | None = None,
    job: Job = Depends(owned_job),
    reconciler: ProposalReconciler = Depends(get_proposal_reconciler),
):
    """Apply the selected sections as a new AI_GENERATED version of the job's base."""
    accepted = request.accepted_sections if request is not None else None
    version = await reconciler.accept(job.id, accepted)
    return NewVersionResponse(new_version_id=version.id)


@router.post("/{job_id}/reject")
async def reject_proposal(
    job: Job = Depends(owned_job),
    reconciler: ProposalReconciler = Depends(get_proposal_reconciler),
):
    """Discard the proposal. Idempotent; never writes a version."""
    await reconciler.reject(job.id)
    return {}


@router.post("/{job_id}/refine", status_code=202, response_model=SubmitJobResponse)
async def refine_job(
    request: RefineRequest,
    background_tasks: BackgroundTasks,
    job: Job = Depends(owned_job),
    orchestrator: JobOrchestrator = Depends(get_job_orchestrator),
):
    """Chain a new job onto a COMPLETED one with the user's feedback appended."""
    new_job = await orchestrator.refine(job.id, request.feedback)
    position = await orchestrator.get_position(new_job.id)

    background_tasks.add_task(process_next_job, orchestrator, redis=orchestrator.redis)

    return SubmitJobResponse(job_id=new_job.id, status=new_job.status, position=position)
