import pytest

from core.errors import (
    AccessDenied,
    AlreadyProcessed,
    AuthenticationRequired,
    DuplicateInvitation,
    GmailRequiredForOwner,
    InvalidInvitationRole,
    NoInvitationFound,
    OwnerSetupIncomplete,
)
from models.models import InvitationStatus
from services.invitation_service import InvitationWorkflow
from services.project_service import ProjectService
from services.session_service import TokenBundle
from tests.conftest import OWNER_EMAIL, FakeNotifier


async def _project(projects, owner, name="Website"):
    return await projects.create_project(owner, {"name": name})


async def test_project_creator_is_owner(projects, owner, mirror):
    project = await _project(projects, owner)

    member = mirror.get_user_project_role(project.id, OWNER_EMAIL)
    assert member.role == "owner"
    assert project.google_api_config["client_id"] == owner.credentials.client_id


async def test_invite_creates_provisional_membership_and_pending_invitation(workflow, projects, owner, mirror, drive, notifier):
    project = await _project(projects, owner)

    invitation = await workflow.create_invitation(owner, project.id, "Bob@Y.com", "member")

    member = mirror.get_user_project_role(project.id, "bob@y.com")
    assert member.role == "member"
    assert mirror.is_provisional("bob@y.com")
    assert invitation.status == InvitationStatus.PENDING.value
    assert invitation.email == "bob@y.com"
    assert notifier.sent[0]["to"] == "bob@y.com"
    assert notifier.sent[0]["invite_link"].endswith(f"/invite/{invitation.id}")
    assert {"role": "writer", "type": "user", "emailAddress": "bob@y.com"} in drive.permissions(project.drive_file_id)
    assert drive.snapshot(project.drive_file_id).find_member("bob@y.com") is not None


async def test_email_login_auto_accepts_and_inherits_credentials(workflow, projects, owner, mirror):
    project = await _project(projects, owner)
    invitation = await workflow.create_invitation(owner, project.id, "bob@y.com", "member")

    context = await workflow.login_with_email("bob@y.com")

    assert context.has_inherited_config
    assert context.inherited_from_project_id == project.id
    assert context.credentials.client_id == owner.credentials.client_id
    assert mirror.get_invitation(invitation.id).status == InvitationStatus.ACCEPTED.value
    assert not mirror.is_provisional("bob@y.com")
    assert len([m for m in mirror.get_project_members(project.id) if m.user_id == "bob@y.com"]) == 1


async def test_email_login_without_any_invitation_is_refused(workflow, registry):
    with pytest.raises(NoInvitationFound) as exc_info:
        await workflow.login_with_email("stranger@z.com")

    assert len(registry) == 0
    body = exc_info.value.to_dict()
    assert body["errorType"] == "no_invitation"
    assert body["suggestions"]


async def test_email_login_before_owner_setup_is_refused(workflow, projects, mirror, registry):
    user = mirror.upsert_user(OWNER_EMAIL)
    bare_owner = registry.create(user)
    bare_owner.attach_tokens(TokenBundle(access_token="drive-access-token"))
    project = await projects.create_project(bare_owner, {"name": "No config"})
    await workflow.create_invitation(bare_owner, project.id, "bob@y.com", "member")

    with pytest.raises(OwnerSetupIncomplete):
        await workflow.login_with_email("bob@y.com")
    assert len(registry) == 1


async def test_accept_link_twice_is_already_processed(workflow, projects, owner, mirror):
    project = await _project(projects, owner)
    invitation = await workflow.create_invitation(owner, project.id, "bob@y.com", "admin")

    context = await workflow.accept_invitation(invitation.id, {"first_name": "Bob", "email": "evil@x.com"})
    with pytest.raises(AlreadyProcessed):
        await workflow.accept_invitation(invitation.id)

    assert context.email == "bob@y.com"
    assert context.user.first_name == "Bob"
    assert context.has_inherited_config
    bobs = [m for m in mirror.get_project_members(project.id) if m.user_id == "bob@y.com"]
    assert len(bobs) == 1 and bobs[0].role == "admin"


async def test_reject_drops_provisional_membership(workflow, projects, owner, mirror, drive):
    project = await _project(projects, owner)
    invitation = await workflow.create_invitation(owner, project.id, "bob@y.com", "member")

    rejected = await workflow.reject_invitation(invitation.id)

    assert rejected.status == InvitationStatus.REJECTED.value
    assert mirror.get_user_project_role(project.id, "bob@y.com") is None
    assert drive.snapshot(project.drive_file_id).activities[-1].type == "invitation_rejected"
    with pytest.raises(AlreadyProcessed):
        await workflow.accept_invitation(invitation.id)


async def test_duplicate_and_owner_role_invitations_are_rejected(workflow, projects, owner):
    project = await _project(projects, owner)
    await workflow.create_invitation(owner, project.id, "bob@y.com", "member")

    with pytest.raises(DuplicateInvitation):
        await workflow.create_invitation(owner, project.id, "BOB@y.com", "admin")
    with pytest.raises(InvalidInvitationRole):
        await workflow.create_invitation(owner, project.id, "carol@z.com", "owner")


async def test_plain_members_cannot_invite(workflow, projects, owner):
    project = await _project(projects, owner)
    await workflow.create_invitation(owner, project.id, "bob@y.com", "member")
    bob = await workflow.login_with_email("bob@y.com")

    with pytest.raises(AccessDenied):
        await workflow.create_invitation(bob, project.id, "carol@z.com", "member")


async def test_failed_email_does_not_fail_invitation(mirror, projects, registry, owner):
    workflow = InvitationWorkflow(mirror, projects, registry, notifier=FakeNotifier(error=RuntimeError("smtp down")))
    project = await _project(projects, owner)

    invitation = await workflow.create_invitation(owner, project.id, "bob@y.com", "member")

    assert mirror.get_pending_invitation(project.id, "bob@y.com").id == invitation.id


async def test_rotated_credentials_do_not_reach_inherited_sessions(workflow, projects, owner, credentials):
    project = await _project(projects, owner)
    await workflow.create_invitation(owner, project.id, "bob@y.com", "member")
    bob = await workflow.login_with_email("bob@y.com")

    rotated = credentials.model_copy(update={"api_key": "rotated-key"})
    await projects.update_credentials(owner, project.id, rotated)

    assert bob.credentials.api_key == "api-key"
    workflow.inherit_project_config(bob, project.id)
    assert bob.credentials.api_key == "rotated-key"


async def test_owner_setup_requires_gmail(workflow, credentials):
    with pytest.raises(GmailRequiredForOwner):
        workflow.setup_owner("alice@company.com", credentials)


async def test_auto_inherit_fills_empty_session(workflow, projects, owner, mirror, registry):
    project = await _project(projects, owner)
    await workflow.create_invitation(owner, project.id, "bob@y.com", "member")
    await workflow.login_with_email("bob@y.com")
    bare = registry.create(mirror.get_user("bob@y.com"))

    assert workflow.auto_inherit(bare) is True
    assert bare.inherited_from_project_id == project.id
    assert workflow.auto_inherit(bare) is False


# ============================================================
# Requests that carry no Drive token
# ============================================================
@pytest.fixture
def tokenless_projects(mirror):
    return ProjectService(mirror)


@pytest.fixture
def tokenless_workflow(mirror, tokenless_projects, registry, notifier):
    return InvitationWorkflow(mirror, tokenless_projects, registry, notifier=notifier)


async def test_member_without_drive_token_cannot_change_drive_project(
    workflow, tokenless_workflow, tokenless_projects, projects, owner, mirror, drive
):
    project = await _project(projects, owner)
    await workflow.create_invitation(owner, project.id, "bob@y.com", "member")
    bob = await tokenless_workflow.login_with_email("bob@y.com")

    with pytest.raises(AuthenticationRequired):
        await tokenless_projects.create_task(bob, project.id, {"title": "Bob task"})
    await projects.create_task(owner, project.id, {"title": "Alice task"})

    assert [t.title for t in mirror.get_project_tasks(project.id)] == ["Alice task"]
    assert [t.title for t in drive.snapshot(project.drive_file_id).tasks] == ["Alice task"]


async def test_reject_without_drive_token_reaches_document_on_next_write(
    workflow, tokenless_workflow, projects, owner, mirror, drive
):
    project = await _project(projects, owner)
    invitation = await workflow.create_invitation(owner, project.id, "bob@y.com", "member")

    rejected = await tokenless_workflow.reject_invitation(invitation.id)

    assert rejected.drive_synced is False
    assert mirror.get_user_project_role(project.id, "bob@y.com") is None
    assert drive.snapshot(project.drive_file_id).find_member("bob@y.com") is not None

    await projects.create_task(owner, project.id, {"title": "Alice task"})

    stored = drive.snapshot(project.drive_file_id)
    assert stored.find_member("bob@y.com") is None
    assert "invitation_rejected" in [a.type for a in stored.activities]
    assert mirror.get_user_project_role(project.id, "bob@y.com") is None
    assert mirror.get_invitation(invitation.id).drive_synced is True
    with pytest.raises(NoInvitationFound):
        await workflow.login_with_email("bob@y.com")


async def test_reinvite_after_deferred_reject_restores_membership(
    workflow, tokenless_workflow, projects, owner, mirror, drive
):
    project = await _project(projects, owner)
    first = await workflow.create_invitation(owner, project.id, "bob@y.com", "member")
    await tokenless_workflow.reject_invitation(first.id)

    await workflow.create_invitation(owner, project.id, "bob@y.com", "admin")

    assert drive.snapshot(project.drive_file_id).find_member("bob@y.com").role == "admin"
    assert mirror.get_user_project_role(project.id, "bob@y.com").role == "admin"


async def test_link_accept_without_drive_token_is_written_on_reindex(
    workflow, tokenless_workflow, projects, owner, mirror, drive
):
    project = await _project(projects, owner)
    invitation = await workflow.create_invitation(owner, project.id, "bob@y.com", "member")

    await tokenless_workflow.accept_invitation(invitation.id)
    assert "invitation_accepted" not in [a.type for a in drive.snapshot(project.drive_file_id).activities]

    await projects.reindex_project(project.id)

    stored = drive.snapshot(project.drive_file_id)
    assert "invitation_accepted" in [a.type for a in stored.activities]
    assert stored.find_member("bob@y.com") is not None
    assert mirror.get_invitation(invitation.id).drive_synced is True
