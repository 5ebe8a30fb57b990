import pytest

from core.errors import AuthenticationRequired, SuggestionNotFound
from services.project_data_manager import ProjectDataManager
from services.project_service import ProjectService
from tests.conftest import OWNER_EMAIL


async def test_sync_restores_projects_missing_from_the_mirror(projects, owner, mirror):
    project_id = (await projects.create_project(owner, {"name": "Website"})).id
    await projects.create_task(owner, project_id, {"title": "Design"})
    mirror.delete_project(project_id)
    assert projects.list_projects(owner) == []

    synced = await projects.sync_from_drive(owner)

    assert [p.id for p in synced] == [project_id]
    assert [t.title for t in mirror.get_project_tasks(project_id)] == ["Design"]
    assert mirror.get_user_project_role(project_id, OWNER_EMAIL).role == "owner"


async def test_sync_indexes_shared_projects_and_skips_the_rest(projects, owner, store, mirror):
    shared = await store.create_project({"name": "Shared", "owner_id": "carol@x.com"})
    await store.mutate_project_data(
        shared.project.drive_file_id, lambda s: ProjectDataManager.add_member(s, OWNER_EMAIL, "member")
    )
    await store.share_project(shared.project.drive_file_id, [OWNER_EMAIL])
    private = await store.create_project({"name": "Private", "owner_id": "carol@x.com"})

    synced = await projects.sync_from_drive(owner)

    assert [p.id for p in synced] == [shared.project.id]
    assert mirror.get_project(private.project.id) is None


async def test_sync_needs_drive_access(mirror, owner):
    with pytest.raises(AuthenticationRequired):
        await ProjectService(mirror).sync_from_drive(owner)


async def test_projects_created_without_drive_stay_local(mirror, owner):
    local = ProjectService(mirror)

    project = await local.create_project(owner, {"name": "Offline"})
    task = await local.create_task(owner, project.id, {"title": "Plan"})

    assert project.drive_file_id == ""
    assert mirror.get_task(task.id).title == "Plan"
    with pytest.raises(AuthenticationRequired):
        await local.reindex_project(project.id)


async def test_unknown_suggestion_is_reported_as_such(projects, owner):
    project = await projects.create_project(owner, {"name": "Website"})

    with pytest.raises(SuggestionNotFound):
        await projects.resolve_ai_suggestion(owner, project.id, "missing", applied=True)
