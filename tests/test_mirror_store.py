from sqlmodel import select

from models.models import Activity, Comment, Invitation, ProjectMember, Task, utc_now
from schemas.project_data_schema import ProjectDoc
from services.project_data_manager import ProjectDataManager


def _snapshot(project_id="p1", owner="alice@gmail.com"):
    now = utc_now()
    project = ProjectDoc(
        id=project_id,
        name="Website",
        owner_id=owner,
        drive_file_id=f"folder-{project_id}",
        created_at=now,
        updated_at=now,
    )
    return ProjectDataManager.initial_snapshot(project).model_copy(update={"version": 1})


def test_index_snapshot_creates_owner_role(mirror):
    mirror.index_snapshot(_snapshot())

    member = mirror.get_user_project_role("p1", "Alice@Gmail.com")
    assert member is not None
    assert member.role == "owner"
    assert mirror.get_user_project_role("p1", "bob@y.com") is None
    assert mirror.get_project("p1").document_version == 1


def test_index_snapshot_removes_rows_missing_from_snapshot(mirror):
    data = ProjectDataManager.add_task(_snapshot(), {"title": "Old", "created_by_id": "alice@gmail.com"})
    data = ProjectDataManager.add_member(data, "bob@y.com", "member")
    mirror.index_snapshot(data)

    trimmed = ProjectDataManager.remove_member(ProjectDataManager.delete_task(data, data.tasks[0].id), "bob@y.com")
    mirror.index_snapshot(trimmed)

    assert mirror.get_project_tasks("p1") == []
    assert [m.user_id for m in mirror.get_project_members("p1")] == ["alice@gmail.com"]


def test_build_snapshot_matches_indexed_document(mirror):
    data = ProjectDataManager.add_task(_snapshot(), {"title": "Design", "created_by_id": "alice@gmail.com"})
    data = ProjectDataManager.add_comment(
        data, {"task_id": data.tasks[0].id, "author_id": "alice@gmail.com", "content": "looks good"}
    )
    data = ProjectDataManager.add_activity(data, {"type": "task_created", "description": "x", "metadata": {"a": 1}})
    mirror.index_snapshot(data)

    rebuilt = mirror.build_snapshot("p1")

    assert rebuilt.version == 1
    assert [t.title for t in rebuilt.tasks] == ["Design"]
    assert [c.content for c in rebuilt.comments] == ["looks good"]
    assert rebuilt.activities[0].metadata == {"a": 1}
    assert rebuilt.project.created_at.tzinfo is not None


def test_projects_for_email_unions_memberships_and_pending_invitations(mirror):
    mirror.index_snapshot(ProjectDataManager.add_member(_snapshot("p1"), "bob@y.com", "member"))
    mirror.index_snapshot(_snapshot("p2"))
    mirror.index_snapshot(_snapshot("p3"))
    mirror.create_invitation("p2", "BOB@y.com", "admin", "Alice")

    ids = sorted(p.id for p in mirror.get_projects_for_email("bob@y.com"))

    assert ids == ["p1", "p2"]
    assert mirror.get_projects_for_email("nobody@z.com") == []


def test_delete_project_cascades_to_every_child(mirror, session):
    data = ProjectDataManager.add_task(_snapshot(), {"title": "Design", "created_by_id": "alice@gmail.com"})
    data = ProjectDataManager.add_comment(
        data, {"task_id": data.tasks[0].id, "author_id": "alice@gmail.com", "content": "c"}
    )
    data = ProjectDataManager.add_activity(data, {"type": "task_created", "description": "x"})
    mirror.index_snapshot(data)
    mirror.create_invitation("p1", "bob@y.com", "member", "Alice")

    assert mirror.delete_project("p1") is True

    assert mirror.get_project("p1") is None
    for model in (ProjectMember, Task, Comment, Activity, Invitation):
        assert session.exec(select(model).where(model.project_id == "p1")).all() == []


def test_provisional_until_first_login(mirror):
    mirror.index_snapshot(ProjectDataManager.add_member(_snapshot(), "bob@y.com", "member"))
    assert mirror.is_provisional("bob@y.com")

    mirror.upsert_user("Bob@Y.com", first_name="Bob")

    assert not mirror.is_provisional("bob@y.com")
    assert mirror.get_user("bob@y.com").first_name == "Bob"


def test_record_usage_accumulates_per_month(mirror):
    mirror.record_usage("alice@gmail.com", drive_requests=3)
    usage = mirror.record_usage("alice@gmail.com", drive_requests=2, ai_requests=1)

    assert usage.drive_requests == 5
    assert usage.ai_requests == 1
