"""Tests for JobOrchestrator: submit, execute, refine and stale-job housekeeping."""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import InvalidRequestError, InvalidStateError, NotFoundError
from app.providers.fake import FakeGenerationProvider
from app.queue.schemas import JobStatus
from app.services.job_orchestrator import JobOrchestrator
from app.services.proposal_reconciler import ProposalReconciler

pytestmark = pytest.mark.unit


async def _run(orchestrator, job):
    await orchestrator.execute(job.id)
    return await orchestrator.get_status(job.id)


async def test_submit_returns_queued_job_with_position(orchestrator, project):
    project_row, base = project

    first = await orchestrator.submit(project_row.id, base.id, instructions="Emphasize Python")
    second = await orchestrator.submit(project_row.id, base.id)

    assert first.status == JobStatus.QUEUED
    assert first.base_version_id == base.id
    assert await orchestrator.get_position(first.id) == 1
    assert await orchestrator.get_position(second.id) == 2


async def test_submit_rejects_base_from_another_project(orchestrator, project_service, project):
    project_row, _ = project
    _, other_base = await project_service.create_project("user-1", "Other")

    with pytest.raises(InvalidRequestError):
        await orchestrator.submit(project_row.id, other_base.id)
    with pytest.raises(InvalidRequestError):
        await orchestrator.submit(project_row.id, uuid.uuid4())

    assert await orchestrator.list_jobs(project_row.id) == []


async def test_submit_rejects_job_context_from_another_project(
    orchestrator, project_service, job_context_service, project
):
    project_row, base = project
    other, _ = await project_service.create_project("user-1", "Other")
    foreign_context = await job_context_service.create(other.id, "Staff engineer")

    with pytest.raises(InvalidRequestError):
        await orchestrator.submit(project_row.id, base.id, job_context_id=foreign_context.id)


async def test_enqueue_failure_fails_the_job(orchestrator, project):
    project_row, base = project
    orchestrator.queue.enqueue = AsyncMock(side_effect=ConnectionError("redis down"))

    job = await orchestrator.submit(project_row.id, base.id)

    assert job.status == JobStatus.FAILED
    assert job.error_message == "Could not queue job: redis down"


async def test_execute_completes_with_proposal(orchestrator, reconciler, provider, job_context_service, project):
    project_row, base = project
    job_context = await job_context_service.create(project_row.id, "Senior backend engineer")
    job = await orchestrator.submit(project_row.id, base.id, job_context_id=job_context.id, instructions="Be concise")

    finished = await _run(orchestrator, job)

    assert finished.status == JobStatus.COMPLETED
    assert finished.error_message is None
    assert finished.started_at is not None and finished.completed_at is not None
    proposal = await reconciler.get_proposal(job.id)
    assert "% Tailored: Be concise" in proposal.content
    request = provider.requests[-1]
    assert request.base_content == base.content
    assert request.job_context == "Senior backend engineer"
    assert request.previous_proposal is None


async def test_execute_twice_runs_provider_once(orchestrator, provider, project):
    project_row, base = project
    job = await orchestrator.submit(project_row.id, base.id)

    await orchestrator.execute(job.id)
    await orchestrator.execute(job.id)

    assert len(provider.requests) == 1


@pytest.mark.parametrize(
    ("provider_kwargs", "expected"),
    [
        ({"scenario": "provider_error"}, "Generation provider error: upstream returned HTTP 500"),
        ({"scenario": "malformed"}, "Malformed provider response: empty content"),
        ({"response": "Sure! Here is the improved resume."}, "missing \\begin{document}"),
        ({"response": "\\documentclass{article}\n\\begin{document}\n\\name{Ada"}, "missing \\end{document}"),
        ({"scenario": "hang"}, "fake timed out after 0.05 seconds"),
    ],
)
async def test_provider_failures_are_recorded_on_the_job(
    session_factory, redis, project, provider_kwargs, expected
):
    project_row, base = project
    orchestrator = JobOrchestrator(
        session_factory, FakeGenerationProvider(**provider_kwargs), redis=redis, timeout_seconds=0.05
    )
    job = await orchestrator.submit(project_row.id, base.id)

    finished = await _run(orchestrator, job)

    assert finished.status == JobStatus.FAILED
    assert expected in finished.error_message
    assert finished.completed_at is not None


async def test_failed_job_has_no_proposal(session_factory, redis, reconciler, project):
    from app.core.exceptions import ProposalNotReadyError

    project_row, base = project
    orchestrator = JobOrchestrator(session_factory, FakeGenerationProvider("provider_error"), redis=redis)
    job = await orchestrator.submit(project_row.id, base.id)
    await orchestrator.execute(job.id)

    with pytest.raises(ProposalNotReadyError):
        await reconciler.get_proposal(job.id)


async def test_refine_chains_a_new_job_on_the_same_base(orchestrator, reconciler, provider, project):
    """Refining leaves the first job and its proposal untouched."""
    project_row, base = project
    first = await orchestrator.submit(project_row.id, base.id, instructions="Emphasize Python")
    await orchestrator.execute(first.id)
    first_proposal = (await reconciler.get_proposal(first.id)).content

    refined = await orchestrator.refine(first.id, "make it shorter")
    finished = await _run(orchestrator, refined)

    assert refined.id != first.id
    assert refined.base_version_id == base.id
    assert refined.parent_job_id == first.id
    assert refined.feedback == "make it shorter"
    assert refined.instructions == "Emphasize Python\n\nFeedback: make it shorter"
    assert finished.status == JobStatus.COMPLETED
    assert provider.requests[-1].previous_proposal == first_proposal
    assert (await reconciler.get_proposal(first.id)).content == first_proposal
    assert (await orchestrator.get_status(first.id)).status == JobStatus.COMPLETED


async def test_refined_job_fate_is_independent_of_the_source(session_factory, redis, version_store, project):
    project_row, base = project
    provider = FakeGenerationProvider()
    orchestrator = JobOrchestrator(session_factory, provider, redis=redis)
    first = await orchestrator.submit(project_row.id, base.id)
    await orchestrator.execute(first.id)

    provider.scenario = "provider_error"
    refined = await orchestrator.refine(first.id, "try again")
    await orchestrator.execute(refined.id)

    assert (await orchestrator.get_status(refined.id)).status == JobStatus.FAILED
    assert (await orchestrator.get_status(first.id)).status == JobStatus.COMPLETED
    await ProposalReconciler(session_factory, version_store).get_proposal(first.id)


async def test_refine_without_instructions_uses_feedback_alone(orchestrator, project):
    project_row, base = project
    first = await orchestrator.submit(project_row.id, base.id)
    await orchestrator.execute(first.id)

    refined = await orchestrator.refine(first.id, "  make it shorter ")

    assert refined.instructions == "Feedback: make it shorter"


async def test_refine_validation(orchestrator, project):
    project_row, base = project
    queued = await orchestrator.submit(project_row.id, base.id)

    with pytest.raises(InvalidRequestError):
        await orchestrator.refine(queued.id, "   ")
    with pytest.raises(NotFoundError):
        await orchestrator.refine(uuid.uuid4(), "shorter")
    with pytest.raises(InvalidStateError):
        await orchestrator.refine(queued.id, "shorter")


async def test_get_status_missing_job(orchestrator):
    with pytest.raises(NotFoundError):
        await orchestrator.get_status(uuid.uuid4())


async def test_list_jobs_newest_first(orchestrator, project):
    project_row, base = project
    first = await orchestrator.submit(project_row.id, base.id)
    second = await orchestrator.submit(project_row.id, base.id)

    assert [job.id for job in await orchestrator.list_jobs(project_row.id)] == [second.id, first.id]


async def test_fail_stale_running_job(orchestrator, project):
    project_row, base = project
    job = await orchestrator.submit(project_row.id, base.id)
    long_ago = datetime.now(UTC) - timedelta(hours=1)
    await orchestrator.state_machine.transition(job.id, JobStatus.RUNNING, now=long_ago)

    failed = await orchestrator.fail_stale_jobs(timedelta(minutes=15))

    assert failed == [job.id]
    stale = await orchestrator.get_status(job.id)
    assert stale.status == JobStatus.FAILED
    assert stale.error_message == "Job stopped responding: no progress for 900 seconds"


async def test_fail_stale_jobs_spares_fresh_and_queued_jobs(orchestrator, project):
    project_row, base = project
    running = await orchestrator.submit(project_row.id, base.id)
    waiting = await orchestrator.submit(project_row.id, base.id)
    await orchestrator.state_machine.transition(running.id, JobStatus.RUNNING)

    later = datetime.now(UTC) + timedelta(minutes=5)
    assert await orchestrator.fail_stale_jobs(timedelta(minutes=15), now=later) == []
    assert (await orchestrator.get_status(waiting.id)).status == JobStatus.QUEUED


async def test_fail_stale_jobs_fails_queued_job_lost_from_queue(orchestrator, project):
    project_row, base = project
    lost = await orchestrator.submit(project_row.id, base.id)
    waiting = await orchestrator.submit(project_row.id, base.id)
    await orchestrator.queue.remove(str(lost.id))

    later = datetime.now(UTC) + timedelta(hours=1)
    failed = await orchestrator.fail_stale_jobs(timedelta(minutes=15), now=later)

    assert failed == [lost.id]
    assert (await orchestrator.get_status(lost.id)).error_message == (
        "Job was lost from the work queue before it started"
    )
    assert (await orchestrator.get_status(waiting.id)).status == JobStatus.QUEUED
