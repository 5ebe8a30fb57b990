# services/invitation_service.py
import logging
from typing import Dict, Optional, Tuple

from starlette.concurrency import run_in_threadpool

from core.config import settings
from core.errors import (
    AlreadyProcessed,
    CredentialsNotConfigured,
    DuplicateInvitation,
    GmailRequiredForOwner,
    InvalidInvitationRole,
    InvitationNotFound,
    NoInvitationFound,
    OwnerSetupIncomplete,
    ProjectNotFound,
    RemoteStoreError,
)
from models.models import (
    Invitation,
    InvitationStatus,
    Project,
    ProjectRole,
)
from schemas.project_data_schema import CredentialSet
from services.email_service import EmailService, email_service
from services.mirror_store import MirrorStore, normalize_email
from services.project_service import ProjectService, invitation_outcome
from services.session_service import SessionContext, SessionRegistry

logger = logging.getLogger(__name__)

INVITABLE_ROLES = (ProjectRole.ADMIN.value, ProjectRole.MEMBER.value)


def display_name(context: SessionContext) -> str:
    user = context.user
    name = " ".join(part for part in (user.first_name, user.last_name) if part)
    return name or user.email


def profile_fields(profile: Optional[Dict[str, Optional[str]]]) -> Dict[str, Optional[str]]:
    keys = ("first_name", "last_name", "profile_image_url")
    return {k: v for k, v in (profile or {}).items() if k in keys}


def is_gmail(email: str) -> bool:
    return normalize_email(email).endswith(("@gmail.com", "@googlemail.com"))


class InvitationWorkflow:
    """
    Invitation lifecycle: pending -> accepted | rejected, both terminal.

    Creating an invitation also creates a provisional membership keyed by the
    invitee's email, so "is a member" and "has ever logged in" are separate
    facts. Accepting (through the link or by logging in with the email) gives
    the invitee a session holding a copy of the project's credential set.
    """

    def __init__(
        self,
        mirror: MirrorStore,
        projects: ProjectService,
        registry: SessionRegistry,
        notifier: EmailService = email_service,
    ):
        self.mirror = mirror
        self.projects = projects
        self.registry = registry
        self.notifier = notifier

    # ============================================================
    # ✅ Create
    # ============================================================
    async def create_invitation(
        self, context: SessionContext, project_id: str, email: str, role: str
    ) -> Invitation:
        self.projects.require_manager(project_id, context.user_id)
        if role not in INVITABLE_ROLES:
            raise InvalidInvitationRole()

        email = normalize_email(email)
        if self.mirror.get_pending_invitation(project_id, email) or self.mirror.get_user_project_role(project_id, email):
            raise DuplicateInvitation()

        project = self.mirror.get_project(project_id)
        await self.projects.add_member(project_id, email, role, actor_id=context.user_id)
        invitation = self.mirror.create_invitation(project_id, email, role, display_name(context))
        logger.info("Invitation %s created for %s on project %s", invitation.id, email, project_id)

        await self._share_container(project, email)
        await self._send_invitation_email(invitation, project)
        return invitation

    async def _share_container(self, project: Project, email: str) -> None:
        """Grant the invitee writer access on the Drive folder. Best effort."""
        store = self.projects.store
        if store is None or not project.drive_file_id:
            return
        try:
            await store.share_project(project.drive_file_id, [email])
        except RemoteStoreError as e:
            logger.warning("Could not share project %s with %s: %s", project.id, email, e.message)

    async def _send_invitation_email(self, invitation: Invitation, project: Project) -> bool:
        try:
            sent = await run_in_threadpool(
                self.notifier.send_invitation_email,
                invitation.email,
                project.name,
                invitation.inviter_name,
                invitation.role,
                settings.invitation_link(invitation.id),
                project.id,
            )
        except Exception:
            logger.exception("Invitation email for %s raised; invitation kept", invitation.email)
            return False
        if not sent:
            logger.warning("Invitation email to %s was not sent; invitation kept", invitation.email)
        return sent

    # ============================================================
    # ✅ View
    # ============================================================
    def get_invitation(self, invitation_id: str) -> Tuple[Invitation, Optional[Project]]:
        invitation = self.mirror.get_invitation(invitation_id)
        if invitation is None:
            raise InvitationNotFound()
        return invitation, self.mirror.get_project(invitation.project_id)

    def _pending_invitation(self, invitation_id: str) -> Invitation:
        invitation = self.mirror.get_invitation(invitation_id)
        if invitation is None:
            raise InvitationNotFound()
        if not invitation.is_pending():
            raise AlreadyProcessed(f"This invitation has already been {invitation.status}.")
        return invitation

    async def _record_outcome(
        self, invitation: Invitation, status: InvitationStatus, *, drop_member: bool = True
    ) -> Invitation:
        """
        Write the outcome to the project document and mark the invitation.
        Without Drive access (link or email-login flows) a Drive-backed project
        gets it in the mirror now and in the document on its next Drive write.
        """
        project = self.mirror.get_project(invitation.project_id)
        if project is None:
            return self.mirror.set_invitation_status(invitation, status)

        change = invitation_outcome(invitation, status, drop_member=drop_member)
        if project.drive_file_id and self.projects.store is None:
            self.projects.apply_locally(project.id, change)
            logger.info("Invitation %s %s; project document update deferred", invitation.id, status.value)
            return self.mirror.set_invitation_status(invitation, status, drive_synced=False)

        await self.projects.apply(project.id, change)
        return self.mirror.set_invitation_status(invitation, status)

    # ============================================================
    # ✅ Accept through the invitation link
    # ============================================================
    async def accept_invitation(self, invitation_id: str, profile: Optional[Dict[str, Optional[str]]] = None) -> SessionContext:
        invitation = self._pending_invitation(invitation_id)
        project = self.mirror.get_project(invitation.project_id)
        if project is None:
            raise ProjectNotFound()

        await self._record_outcome(invitation, InvitationStatus.ACCEPTED)

        user = self.mirror.upsert_user(invitation.email, **profile_fields(profile))
        context = self.registry.create(user)
        if project.google_api_config:
            context.inherit_credentials(CredentialSet.model_validate(project.google_api_config), project.id)
        logger.info("Invitation %s accepted by %s", invitation.id, invitation.email)
        return context

    # ============================================================
    # ✅ Accept by logging in with the email only
    # ============================================================
    async def login_with_email(self, email: str) -> SessionContext:
        email = normalize_email(email)
        projects = self.mirror.get_projects_for_email(email)
        if not projects:
            logger.info("Email login refused for %s: no invitation or membership", email)
            raise NoInvitationFound()

        pending = self.mirror.get_pending_invitations_for_email(email)
        source = next((p for p in projects if p.google_api_config), None)
        if pending and source is None:
            raise OwnerSetupIncomplete()

        for invitation in pending:
            await self._record_outcome(invitation, InvitationStatus.ACCEPTED)
            logger.info("Invitation %s accepted on login by %s", invitation.id, email)

        user = self.mirror.upsert_user(email)
        context = self.registry.create(user)
        if source is not None:
            context.inherit_credentials(CredentialSet.model_validate(source.google_api_config), source.id)
        return context

    # ============================================================
    # ✅ Reject
    # ============================================================
    async def reject_invitation(self, invitation_id: str) -> Invitation:
        invitation = self._pending_invitation(invitation_id)
        member = self.mirror.get_user_project_role(invitation.project_id, invitation.email)
        drop_member = (
            member is not None
            and member.role != ProjectRole.OWNER.value
            and self.mirror.is_provisional(invitation.email)
        )
        rejected = await self._record_outcome(invitation, InvitationStatus.REJECTED, drop_member=drop_member)
        logger.info("Invitation %s rejected", invitation.id)
        return rejected

    # ============================================================
    # ✅ Owner setup and credential inheritance
    # ============================================================
    def setup_owner(self, email: str, credentials: CredentialSet, profile: Optional[Dict[str, Optional[str]]] = None) -> SessionContext:
        if settings.REQUIRE_GMAIL_FOR_OWNERS and not is_gmail(email):
            raise GmailRequiredForOwner()
        user = self.mirror.upsert_user(email, **profile_fields(profile))
        credentials = credentials.model_copy(update={"email": user.email}).with_enabled_apis({})
        return self.registry.create(user, credentials)

    def inherit_project_config(self, context: SessionContext, project_id: str) -> CredentialSet:
        """Copy the project's current credential set into the session."""
        self.projects.require_member(project_id, context.user_id)
        project = self.mirror.get_project(project_id)
        if project is None or not project.google_api_config:
            raise CredentialsNotConfigured("This project has no Google API configuration yet.")
        context.inherit_credentials(CredentialSet.model_validate(project.google_api_config), project_id)
        return context.credentials

    def auto_inherit(self, context: SessionContext) -> bool:
        """Give a credential-less session the set of a project someone else owns."""
        if context.credentials is not None:
            return False
        for project in self.mirror.get_user_projects(context.user_id):
            if project.owner_id != context.user_id and project.google_api_config:
                context.inherit_credentials(CredentialSet.model_validate(project.google_api_config), project.id)
                return True
        return False
