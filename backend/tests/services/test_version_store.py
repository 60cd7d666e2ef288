"""Tests for VersionStore: append-only versions, lineage and the ACTIVE marker."""

import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import InternalError, InvalidRequestError, InvalidStateError, NotFoundError
from app.db.models.version import Version
from app.schemas.versions import VersionStatus, VersionType

pytestmark = pytest.mark.unit


async def test_project_starts_with_a_single_draft_base(version_store, project, sectioned_resume):
    project_row, base = project

    versions = await version_store.list_versions(project_row.id)

    assert [version.id for version in versions] == [base.id]
    assert base.version_type == VersionType.BASE
    assert base.parent_id is None
    assert base.status == VersionStatus.DRAFT
    assert base.content == sectioned_resume


async def test_save_edit_creates_manual_child_and_leaves_parent_alone(version_store, project):
    _, base = project

    edit = await version_store.save_edit(base.id, "edited")

    assert edit.id != base.id
    assert edit.parent_id == base.id
    assert edit.version_type == VersionType.MANUAL
    assert edit.status == VersionStatus.DRAFT
    assert (await version_store.get_version(base.id)).content == base.content


async def test_edits_of_the_same_parent_are_siblings(version_store, project):
    project_row, base = project

    first = await version_store.save_edit(base.id, "one")
    second = await version_store.save_edit(base.id, "two")

    assert first.parent_id == second.parent_id == base.id
    assert len(await version_store.list_versions(project_row.id)) == 3


async def test_list_versions_newest_first(version_store, project):
    project_row, base = project
    first = await version_store.save_edit(base.id, "one")
    second = await version_store.save_edit(first.id, "two")

    versions = await version_store.list_versions(project_row.id)

    assert [version.id for version in versions] == [second.id, first.id, base.id]


async def test_second_base_is_refused(version_store, project):
    project_row, _ = project

    with pytest.raises(InvalidStateError):
        await version_store.create_version(project_row.id, None, VersionType.BASE, "another root")


@pytest.mark.parametrize(
    ("version_type", "orig", "expected"),
    [
        (
            VersionType.BASE,
            "duplicate key value violates unique constraint \"uq_versions_base_per_project\"",
            "already has a BASE version",
        ),
        (VersionType.BASE, "UNIQUE constraint failed: versions.project_id", "already has a BASE version"),
        (VersionType.MANUAL, "FOREIGN KEY constraint failed", "Could not create version"),
        (VersionType.MANUAL, "UNIQUE constraint failed: versions.id", "Could not create version"),
    ],
)
async def test_insert_conflicts_are_reported_by_cause(version_store, project, version_type, orig, expected):
    project_row, base = project
    version_store.add_version = AsyncMock(side_effect=IntegrityError("INSERT INTO versions", {}, Exception(orig)))
    parent_id = None if version_type == VersionType.BASE else base.id

    with pytest.raises(InvalidStateError, match=expected):
        await version_store.create_version(project_row.id, parent_id, version_type, "text")


async def test_base_with_parent_is_refused(version_store, project):
    project_row, base = project

    with pytest.raises(InvalidRequestError):
        await version_store.create_version(project_row.id, base.id, VersionType.BASE, "x")


async def test_non_base_without_parent_is_refused(version_store, project):
    project_row, _ = project

    with pytest.raises(InvalidRequestError):
        await version_store.create_version(project_row.id, None, VersionType.MANUAL, "orphan")


async def test_parent_from_another_project_is_refused(version_store, project_service, project):
    project_row, _ = project
    _, other_base = await project_service.create_project("user-1", "Other")

    with pytest.raises(InvalidRequestError):
        await version_store.create_version(project_row.id, other_base.id, VersionType.MANUAL, "x")


async def test_missing_parent_and_project(version_store, project):
    project_row, _ = project

    with pytest.raises(NotFoundError):
        await version_store.create_version(project_row.id, uuid.uuid4(), VersionType.MANUAL, "x")
    with pytest.raises(NotFoundError):
        await version_store.create_version(uuid.uuid4(), None, VersionType.BASE, "x")
    with pytest.raises(NotFoundError):
        await version_store.save_edit(uuid.uuid4(), "x")


async def test_content_cannot_be_rewritten_through_the_orm(version_store, session_factory, project):
    _, base = project

    async with session_factory() as session:
        version = await session.get(Version, base.id)
        version.content = "rewritten"
        with pytest.raises(InternalError, match="immutable"):
            await session.commit()

    assert (await version_store.get_version(base.id)).content == base.content


async def test_ancestors_run_from_self_to_base(version_store, project):
    _, base = project
    first = await version_store.save_edit(base.id, "one")
    second = await version_store.save_edit(first.id, "two")
    await version_store.save_edit(base.id, "sibling")

    lineage = await version_store.list_ancestors(second.id)

    assert [version.id for version in lineage] == [second.id, first.id, base.id]
    assert lineage[-1].version_type == VersionType.BASE


async def test_ancestors_of_missing_version(version_store):
    with pytest.raises(NotFoundError):
        await version_store.list_ancestors(uuid.uuid4())


async def test_mark_compiled_records_artifact_and_warnings(version_store, project):
    _, base = project

    compiled = await version_store.mark_compiled(base.id, "https://artifacts.test/x.pdf", ["Overfull \\hbox"])

    assert compiled.status == VersionStatus.COMPILED
    assert compiled.artifact_url == "https://artifacts.test/x.pdf"
    assert compiled.diagnostics == ["Overfull \\hbox"]
    assert compiled.compiled_at is not None
    assert compiled.content == base.content


async def test_compile_result_is_recorded_once(version_store, project):
    _, base = project
    await version_store.mark_error(base.id, ["! Missing } inserted."])

    with pytest.raises(InvalidStateError):
        await version_store.mark_compiled(base.id, "https://artifacts.test/x.pdf")
    with pytest.raises(InvalidStateError):
        await version_store.mark_error(base.id, ["again"])

    stored = await version_store.get_version(base.id)
    assert stored.status == VersionStatus.ERROR
    assert stored.artifact_url is None


async def test_mark_missing_version(version_store):
    with pytest.raises(NotFoundError):
        await version_store.mark_error(uuid.uuid4(), [])


async def test_active_defaults_to_latest_version(version_store, project):
    project_row, base = project
    edit = await version_store.save_edit(base.id, "latest")

    assert (await version_store.get_active(project_row.id)).id == edit.id


async def test_set_active_moves_the_single_marker(version_store, project):
    project_row, base = project
    edit = await version_store.save_edit(base.id, "edit")

    await version_store.set_active(edit.id)
    await version_store.set_active(base.id)

    versions = await version_store.list_versions(project_row.id)
    assert [version.id for version in versions if version.is_active] == [base.id]
    assert (await version_store.get_active(project_row.id)).id == base.id


async def test_set_active_missing_version(version_store):
    with pytest.raises(NotFoundError):
        await version_store.set_active(uuid.uuid4())
