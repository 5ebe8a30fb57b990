import pytest

from core.errors import Conflict, RemoteStoreError
from services.drive_service import DOCUMENT_NAME, DriveDocumentStore
from services.project_data_manager import ProjectDataManager


def _fields(name="Website", owner="alice@gmail.com"):
    return {"name": name, "owner_id": owner}


async def test_create_project_writes_folder_and_document(store, drive):
    snapshot = await store.create_project(_fields())

    folder = drive.files[snapshot.project.drive_file_id]
    assert folder["name"] == f"PM_Website_{snapshot.project.id}"
    assert drive.document_for(folder["id"])["name"] == DOCUMENT_NAME
    assert snapshot.version == 1
    assert drive.snapshot(folder["id"]).owner_member().user_id == "alice@gmail.com"


async def test_get_project_data_returns_none_without_document(store, drive):
    folder = drive._new_file("PM_empty_1", "application/vnd.google-apps.folder")
    assert await store.get_project_data(folder["id"]) is None


async def test_unconditional_writes_are_last_writer_wins(store, drive):
    created = await store.create_project(_fields())
    container = created.project.drive_file_id

    base = await store.get_project_data(container)
    with_a = ProjectDataManager.add_task(base, {"title": "A", "created_by_id": "alice@gmail.com"})
    with_b = ProjectDataManager.add_task(base, {"title": "B", "created_by_id": "alice@gmail.com"})
    await store.update_project_data(container, with_a)
    await store.update_project_data(container, with_b)

    stored = drive.snapshot(container)
    assert [t.title for t in stored.tasks] == ["B"]
    assert stored.version == base.version + 2


async def test_stale_expected_version_raises_conflict(store, drive):
    created = await store.create_project(_fields())
    container = created.project.drive_file_id
    base = await store.get_project_data(container)

    first = ProjectDataManager.add_task(base, {"title": "A", "created_by_id": "alice@gmail.com"})
    await store.update_project_data(container, first, expected_version=base.version)

    second = ProjectDataManager.add_task(base, {"title": "B", "created_by_id": "alice@gmail.com"})
    with pytest.raises(Conflict):
        await store.update_project_data(container, second, expected_version=base.version)
    assert [t.title for t in drive.snapshot(container).tasks] == ["A"]


async def test_mutate_reapplies_change_after_concurrent_write(store, drive):
    created = await store.create_project(_fields())
    container = created.project.drive_file_id
    calls = []

    def add_b(snapshot):
        calls.append(snapshot.version)
        if len(calls) == 1:
            # Another writer lands between this read and the write.
            other = ProjectDataManager.add_task(snapshot, {"title": "A", "created_by_id": "bob@y.com"})
            drive.put_snapshot(container, other.model_copy(update={"version": snapshot.version + 1}))
        return ProjectDataManager.add_task(snapshot, {"title": "B", "created_by_id": "alice@gmail.com"})

    result = await store.mutate_project_data(container, add_b)

    assert len(calls) == 2
    assert sorted(t.title for t in result.tasks) == ["A", "B"]
    assert sorted(t.title for t in drive.snapshot(container).tasks) == ["A", "B"]


async def test_mutate_gives_up_with_conflict(store, drive):
    created = await store.create_project(_fields())
    container = created.project.drive_file_id

    def always_raced(snapshot):
        drive.put_snapshot(container, snapshot.model_copy(update={"version": snapshot.version + 1}))
        return snapshot

    with pytest.raises(Conflict):
        await store.mutate_project_data(container, always_raced)


async def test_list_projects_paginates_and_skips_unreadable_folders(store, drive):
    for name in ("One", "Two", "Three"):
        await store.create_project(_fields(name))
    broken = drive._new_file("PM_Broken_x", "application/vnd.google-apps.folder")
    doc = drive._new_file(DOCUMENT_NAME, "application/json", [broken["id"]])
    doc["content"] = "{not json"

    projects = await store.list_projects()

    assert sorted(p.name for p in projects) == ["One", "Three", "Two"]


async def test_failed_document_write_leaves_orphan_folder(store, drive):
    drive.fail_uploads = True

    with pytest.raises(RemoteStoreError):
        await store.create_project(_fields())

    assert len(drive.folders()) == 1


async def test_sharing_and_access_check(store, drive):
    created = await store.create_project(_fields())
    container = created.project.drive_file_id

    await store.share_project(container, ["bob@y.com"])

    assert await store.has_project_access(container, "BOB@y.com")
    assert not await store.has_project_access(container, "carol@z.com")
    assert drive.permissions(container)[0] == {"role": "writer", "type": "user", "emailAddress": "bob@y.com"}


async def test_access_check_errors_count_as_no_access(store, drive):
    created = await store.create_project(_fields())
    drive.fail_permissions = True

    assert await store.has_project_access(created.project.drive_file_id, "alice@gmail.com") is False


async def test_shareable_link(store, drive):
    created = await store.create_project(_fields())
    container = created.project.drive_file_id

    link = await store.create_shareable_link(container)

    assert link == f"https://drive.google.com/drive/folders/{container}"
    assert {"role": "reader", "type": "anyone"} in drive.permissions(container)


async def test_requests_are_counted(drive):
    store = DriveDocumentStore("token", transport=drive.transport)
    await store.create_project(_fields())
    assert store.request_count == 3


async def test_container_locks_are_released_after_writes(store):
    created = await store.create_project(_fields())
    container = created.project.drive_file_id

    await store.mutate_project_data(
        container, lambda s: ProjectDataManager.add_task(s, {"title": "A", "created_by_id": "alice@gmail.com"})
    )
    assert len(store.locks) == 0

    held = store.locks.for_container(container)
    assert len(store.locks) == 1

    del held
    assert len(store.locks) == 0
