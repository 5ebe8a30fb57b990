# services/project_service.py
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from core.errors import (
    AccessDenied,
    AuthenticationRequired,
    InvalidInvitationRole,
    ProjectNotFound,
    SuggestionNotFound,
    TaskNotFound,
)
from models.models import (
    MANAGER_ROLES,
    ActivityType,
    AiSuggestion,
    Comment,
    Invitation,
    InvitationStatus,
    Project,
    ProjectMember,
    ProjectRole,
    Task,
    TaskPriority,
    TaskStatus,
    utc_now,
)
from schemas.project_data_schema import CredentialSet, ProjectData, ProjectDoc
from services.ai_insights_service import AIInsightsService
from services.drive_service import DriveDocumentStore
from services.mirror_store import MirrorStore, as_utc, normalize_email
from services.project_data_manager import ProjectDataManager, new_id
from services.session_service import SessionContext

logger = logging.getLogger(__name__)

Change = Callable[[ProjectData], ProjectData]


def activity(
    kind: ActivityType,
    description: str,
    *,
    user_id: Optional[str] = None,
    entity_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "type": kind.value,
        "description": description,
        "user_id": user_id,
        "entity_id": entity_id,
        "metadata": metadata,
    }


def with_activity(change: Change, fields: Dict[str, Any]) -> Change:
    """Compose a change with the activity record that describes it."""
    return lambda snapshot: ProjectDataManager.add_activity(change(snapshot), fields)


def invitation_outcome(invitation: Invitation, status: InvitationStatus, *, drop_member: bool = True) -> Change:
    """
    The document change for an accepted or rejected invitation.

    Accepting keeps (or restores) the membership. Rejecting drops it when
    `drop_member` is set and it is not the owner's.
    """
    email, role, invitation_id = invitation.email, invitation.role, invitation.id
    if status == InvitationStatus.ACCEPTED:
        return with_activity(
            lambda s: ProjectDataManager.add_member(s, email, role),
            activity(
                ActivityType.INVITATION_ACCEPTED,
                f"{email} joined the project",
                user_id=email,
                entity_id=invitation_id,
            ),
        )

    def decline(snapshot: ProjectData) -> ProjectData:
        member = snapshot.find_member(email)
        if drop_member and member is not None and member.role != ProjectRole.OWNER:
            return ProjectDataManager.remove_member(snapshot, email)
        return snapshot

    return with_activity(
        decline,
        activity(ActivityType.INVITATION_REJECTED, f"{email} declined the invitation", entity_id=invitation_id),
    )


class ProjectService:
    """
    Project operations for one request.

    Access is always checked against the mirror first. Changes are applied
    as ProjectDataManager functions to the project document: through the
    Drive store when the session can reach Drive, otherwise to a snapshot
    rebuilt from the mirror. The mirror is re-indexed from whatever snapshot
    was written.
    """

    def __init__(
        self,
        mirror: MirrorStore,
        store: Optional[DriveDocumentStore] = None,
        ai_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.mirror = mirror
        self.store = store
        self.ai_transport = ai_transport
        self._reported_requests = 0

    # ============================================================
    # ✅ Access checks
    # ============================================================
    def require_member(self, project_id: str, user_id: str) -> ProjectMember:
        member = self.mirror.get_user_project_role(project_id, user_id)
        if member is None:
            raise AccessDenied()
        return member

    def require_manager(self, project_id: str, user_id: str) -> ProjectMember:
        member = self.require_member(project_id, user_id)
        if member.role not in MANAGER_ROLES:
            raise AccessDenied("Only the project owner or an admin can do this.")
        return member

    def require_owner(self, project_id: str, user_id: str) -> ProjectMember:
        member = self.require_member(project_id, user_id)
        if member.role != ProjectRole.OWNER.value:
            raise AccessDenied("Only the project owner can do this.")
        return member

    def get_task_for(self, context: SessionContext, task_id: str) -> Task:
        """Unknown task -> TaskNotFound; task in a project the caller cannot see -> AccessDenied."""
        task = self.mirror.get_task(task_id)
        if task is None:
            raise TaskNotFound()
        self.require_member(task.project_id, context.user_id)
        return task

    # ============================================================
    # ✅ Snapshot plumbing
    # ============================================================
    def _get_project_row(self, project_id: str) -> Project:
        project = self.mirror.get_project(project_id)
        if project is None:
            raise ProjectNotFound()
        return project

    def _require_store(self, action: str) -> DriveDocumentStore:
        if self.store is None:
            raise AuthenticationRequired(
                f"Google Drive access is required to {action}.",
                help_text="This project is stored in Google Drive. Connect your Google account and try again.",
            )
        return self.store

    async def apply(self, project_id: str, change: Change, user_id: Optional[str] = None) -> ProjectData:
        """
        Apply `change` to the project document and re-index the mirror from
        the stored result. Drive-backed projects need a Drive store; invitation
        outcomes recorded without one are written in the same update.
        """
        project = self._get_project_row(project_id)
        if not project.drive_file_id:
            return self.apply_locally(project_id, change)

        store = self._require_store("change this project")
        pending = self.mirror.get_unsynced_invitations(project_id)
        if pending:
            change = self._with_invitation_outcomes(pending, change)
        snapshot = await store.mutate_project_data(project.drive_file_id, change)
        self.mirror.index_snapshot(snapshot)
        if pending:
            self.mirror.mark_invitations_synced(pending)
            logger.info("Wrote %s deferred invitation outcomes to project %s", len(pending), project_id)
        if user_id:
            self._record_drive_usage(user_id)
        return snapshot

    def apply_locally(self, project_id: str, change: Change) -> ProjectData:
        """Mirror-only write. For Drive-backed projects only invitation outcomes go this way."""
        current = self.mirror.build_snapshot(project_id)
        if current is None:
            raise ProjectNotFound()
        snapshot = change(current).model_copy(update={"version": current.version + 1})
        self.mirror.index_snapshot(snapshot)
        return snapshot

    def _with_invitation_outcomes(self, invitations: List[Invitation], change: Change) -> Change:
        outcomes = [
            invitation_outcome(
                invitation,
                InvitationStatus(invitation.status),
                drop_member=self.mirror.is_provisional(invitation.email),
            )
            for invitation in invitations
        ]

        def combined(snapshot: ProjectData) -> ProjectData:
            for outcome in outcomes:
                snapshot = outcome(snapshot)
            return change(snapshot)

        return combined

    async def reindex_project(self, project_id: str) -> ProjectData:
        """Rebuild the mirror rows of one project from its Drive document."""
        project = self._get_project_row(project_id)
        if not project.drive_file_id:
            raise AuthenticationRequired("This project is not stored in Google Drive.")
        store = self._require_store("refresh this project")
        if self.mirror.get_unsynced_invitations(project_id):
            return await self.apply(project_id, lambda s: s)
        snapshot = await store.get_project_data(project.drive_file_id)
        if snapshot is None:
            raise ProjectNotFound("The project document is missing from Google Drive.")
        self.mirror.index_snapshot(snapshot)
        return snapshot

    async def sync_from_drive(self, context: SessionContext) -> List[Project]:
        """
        Index every Drive project the caller owns or holds a grant on, then
        return the caller's projects. Restores the mirror after it was lost.
        """
        store = self.store
        if store is None:
            raise AuthenticationRequired("Google Drive access is required to sync projects.")
        indexed = 0
        for doc in await store.list_projects():
            if doc.owner_id != context.user_id and not await store.has_project_access(doc.drive_file_id, context.email):
                continue
            if self.mirror.get_project(doc.id) is not None and self.mirror.get_unsynced_invitations(doc.id):
                await self.apply(doc.id, lambda s: s)
            else:
                snapshot = await store.get_project_data(doc.drive_file_id)
                if snapshot is None:
                    continue
                self.mirror.index_snapshot(snapshot)
            indexed += 1
        logger.info("Indexed %s Drive projects for %s", indexed, context.user_id)
        self._record_drive_usage(context.user_id)
        return self.list_projects(context)

    def _record_drive_usage(self, user_id: str) -> None:
        if self.store is None:
            return
        delta = self.store.request_count - self._reported_requests
        if delta > 0:
            self.mirror.record_usage(user_id, drive_requests=delta)
            self._reported_requests = self.store.request_count

    # ============================================================
    # ✅ Projects
    # ============================================================
    async def create_project(self, context: SessionContext, fields: Dict[str, Any]) -> Project:
        owner_id = context.user_id
        fields = {
            **fields,
            "owner_id": owner_id,
            "allowed_emails": fields.get("allowed_emails") or [context.email],
        }
        # Only a session's own credential set is embedded; an inherited copy
        # belongs to someone else's project.
        if context.credentials is not None and context.inherited_from_project_id is None:
            fields["google_api_config"] = context.credentials

        if self.store is not None:
            snapshot = await self.store.create_project(fields)
        else:
            now = utc_now()
            project_doc = {**fields, "id": new_id(), "drive_file_id": "", "created_at": now, "updated_at": now}
            snapshot = ProjectDataManager.initial_snapshot(ProjectDoc.model_validate(project_doc)).model_copy(
                update={"version": 1}
            )
            logger.info("Drive unavailable; project %s kept in the local mirror only", snapshot.project.id)
        self.mirror.index_snapshot(snapshot)

        project_id = snapshot.project.id
        await self.apply(
            project_id,
            lambda s: ProjectDataManager.add_activity(
                s,
                activity(
                    ActivityType.PROJECT_CREATED,
                    f'Project "{s.project.name}" was created',
                    user_id=owner_id,
                    entity_id=project_id,
                ),
            ),
            user_id=owner_id,
        )
        self.mirror.record_usage(owner_id, projects_created=1)
        return self._get_project_row(project_id)

    def list_projects(self, context: SessionContext) -> List[Project]:
        return self.mirror.get_user_projects(context.user_id)

    def get_project(self, context: SessionContext, project_id: str) -> Project:
        self.require_member(project_id, context.user_id)
        return self._get_project_row(project_id)

    async def update_project(self, context: SessionContext, project_id: str, updates: Dict[str, Any]) -> Project:
        self.require_manager(project_id, context.user_id)
        change = with_activity(
            lambda s: ProjectDataManager.update_project(s, updates),
            activity(
                ActivityType.PROJECT_UPDATED,
                "Project details were updated",
                user_id=context.user_id,
                entity_id=project_id,
                metadata={"fields": sorted(updates)},
            ),
        )
        await self.apply(project_id, change, user_id=context.user_id)
        return self._get_project_row(project_id)

    def delete_project(self, context: SessionContext, project_id: str) -> None:
        """Owner only. The Drive folder is left in the owner's Drive."""
        self.require_owner(project_id, context.user_id)
        self.mirror.delete_project(project_id)

    async def update_credentials(
        self, context: SessionContext, project_id: str, credentials: CredentialSet
    ) -> Project:
        """Replace the project's credential set. Sessions that copied the old one keep it."""
        self.require_owner(project_id, context.user_id)
        change = with_activity(
            lambda s: ProjectDataManager.update_project(s, {"google_api_config": credentials}),
            activity(
                ActivityType.CREDENTIALS_UPDATED,
                "Google API credentials were updated",
                user_id=context.user_id,
                entity_id=project_id,
            ),
        )
        await self.apply(project_id, change, user_id=context.user_id)
        return self._get_project_row(project_id)

    async def propagate_enabled_apis(self, context: SessionContext, flags: Dict[str, bool]) -> List[str]:
        """Apply enabled-API flags to every credential set the caller owns."""
        updated = []
        for project in self.mirror.get_projects_owned_by(context.user_id):
            if not project.google_api_config:
                continue
            credentials = CredentialSet.model_validate(project.google_api_config).with_enabled_apis(flags)
            await self.apply(
                project.id,
                lambda s, c=credentials: ProjectDataManager.update_project(s, {"google_api_config": c}),
                user_id=context.user_id,
            )
            updated.append(project.id)
        return updated

    async def create_shareable_link(self, context: SessionContext, project_id: str) -> str:
        self.require_owner(project_id, context.user_id)
        project = self._get_project_row(project_id)
        if not project.drive_file_id:
            raise AuthenticationRequired("This project is not stored in Google Drive.")
        link = await self._require_store("share this project").create_shareable_link(project.drive_file_id)
        self._record_drive_usage(context.user_id)
        return link

    # ============================================================
    # ✅ Members
    # ============================================================
    def list_members(self, context: SessionContext, project_id: str) -> List[Tuple[ProjectMember, bool]]:
        """Members paired with whether the identity has never logged in."""
        self.require_member(project_id, context.user_id)
        return [(m, self.mirror.is_provisional(m.user_id)) for m in self.mirror.get_project_members(project_id)]

    async def add_member(
        self, project_id: str, email: str, role: str, actor_id: Optional[str] = None
    ) -> ProjectMember:
        """Add (or keep) a membership for `email`; no access check, callers do that."""
        if role == ProjectRole.OWNER.value:
            raise InvalidInvitationRole()
        user_id = normalize_email(email)
        existing = self.mirror.get_user_project_role(project_id, user_id)
        if existing is not None:
            return existing
        change = with_activity(
            lambda s: ProjectDataManager.add_member(s, user_id, role),
            activity(
                ActivityType.MEMBER_ADDED,
                f"{user_id} was added as {role}",
                user_id=actor_id,
                entity_id=user_id,
                metadata={"role": role},
            ),
        )
        await self.apply(project_id, change, user_id=actor_id)
        return self.mirror.get_user_project_role(project_id, user_id)

    async def add_member_as(self, context: SessionContext, project_id: str, email: str, role: str) -> ProjectMember:
        self.require_manager(project_id, context.user_id)
        return await self.add_member(project_id, email, role, actor_id=context.user_id)

    async def remove_member(self, context: SessionContext, project_id: str, user_id: str) -> None:
        self.require_manager(project_id, context.user_id)
        user_id = normalize_email(user_id)
        if self.mirror.get_user_project_role(project_id, user_id) is None:
            raise AccessDenied(f"{user_id} is not a member of this project.")
        change = with_activity(
            lambda s: ProjectDataManager.remove_member(s, user_id),
            activity(
                ActivityType.MEMBER_REMOVED,
                f"{user_id} was removed from the project",
                user_id=context.user_id,
                entity_id=user_id,
            ),
        )
        await self.apply(project_id, change, user_id=context.user_id)

    # ============================================================
    # ✅ Tasks
    # ============================================================
    def list_tasks(self, context: SessionContext, project_id: str) -> List[Task]:
        self.require_member(project_id, context.user_id)
        return self.mirror.get_project_tasks(project_id)

    async def create_task(self, context: SessionContext, project_id: str, fields: Dict[str, Any]) -> Task:
        self.require_member(project_id, context.user_id)
        created: Dict[str, str] = {}

        def change(snapshot: ProjectData) -> ProjectData:
            updated = ProjectDataManager.add_task(snapshot, {**fields, "created_by_id": context.user_id})
            task = updated.tasks[-1]
            created["id"] = task.id
            return ProjectDataManager.add_activity(
                updated,
                activity(
                    ActivityType.TASK_CREATED,
                    f'Task "{task.title}" was created',
                    user_id=context.user_id,
                    entity_id=task.id,
                ),
            )

        await self.apply(project_id, change, user_id=context.user_id)
        return self.mirror.get_task(created["id"])

    async def update_task(self, context: SessionContext, task_id: str, updates: Dict[str, Any]) -> Task:
        task = self.get_task_for(context, task_id)
        old_status = task.status
        new_status = updates.get("status")
        if new_status is not None and new_status != old_status:
            fields = activity(
                ActivityType.TASK_STATUS_CHANGED,
                f'Task "{task.title}" moved from {old_status} to {new_status}',
                user_id=context.user_id,
                entity_id=task_id,
                metadata={"oldStatus": old_status, "newStatus": new_status},
            )
        else:
            fields = activity(
                ActivityType.TASK_UPDATED,
                f'Task "{task.title}" was updated',
                user_id=context.user_id,
                entity_id=task_id,
            )
        change = with_activity(lambda s: ProjectDataManager.update_task(s, task_id, updates), fields)
        await self.apply(task.project_id, change, user_id=context.user_id)
        return self.mirror.get_task(task_id)

    async def delete_task(self, context: SessionContext, task_id: str) -> None:
        task = self.get_task_for(context, task_id)
        change = with_activity(
            lambda s: ProjectDataManager.delete_task(s, task_id),
            activity(
                ActivityType.TASK_DELETED,
                f'Task "{task.title}" was deleted',
                user_id=context.user_id,
                entity_id=task_id,
            ),
        )
        await self.apply(task.project_id, change, user_id=context.user_id)

    # ============================================================
    # ✅ Comments
    # ============================================================
    def list_comments(self, context: SessionContext, task_id: str) -> List[Comment]:
        self.get_task_for(context, task_id)
        return self.mirror.get_task_comments(task_id)

    async def add_comment(self, context: SessionContext, task_id: str, fields: Dict[str, Any]) -> Comment:
        task = self.get_task_for(context, task_id)
        created: Dict[str, str] = {}

        def change(snapshot: ProjectData) -> ProjectData:
            if snapshot.find_task(task_id) is None:
                raise TaskNotFound()
            updated = ProjectDataManager.add_comment(
                snapshot, {**fields, "task_id": task_id, "author_id": context.user_id}
            )
            created["id"] = updated.comments[-1].id
            return ProjectDataManager.add_activity(
                updated,
                activity(
                    ActivityType.COMMENT_ADDED,
                    f'New comment on "{task.title}"',
                    user_id=context.user_id,
                    entity_id=task_id,
                ),
            )

        await self.apply(task.project_id, change, user_id=context.user_id)
        return self.mirror.session.get(Comment, created["id"])

    # ============================================================
    # ✅ Activity feed and stats
    # ============================================================
    def list_activities(self, context: SessionContext, project_id: str, limit: int = 20):
        self.require_member(project_id, context.user_id)
        return [self.mirror.activity_doc(a) for a in self.mirror.get_project_activities(project_id, limit)]

    def get_stats(self, context: SessionContext, project_id: str) -> Dict[str, int]:
        self.require_member(project_id, context.user_id)
        tasks = self.mirror.get_project_tasks(project_id)
        now = utc_now()
        return {
            "total_tasks": len(tasks),
            "todo_tasks": sum(1 for t in tasks if t.status == TaskStatus.TODO.value),
            "in_progress_tasks": sum(1 for t in tasks if t.status == TaskStatus.IN_PROGRESS.value),
            "completed_tasks": sum(1 for t in tasks if t.status == TaskStatus.DONE.value),
            "overdue_tasks": sum(
                1
                for t in tasks
                if t.due_date is not None and as_utc(t.due_date) < now and t.status != TaskStatus.DONE.value
            ),
            "high_priority_tasks": sum(
                1 for t in tasks if t.priority in (TaskPriority.HIGH.value, TaskPriority.CRITICAL.value)
            ),
            "team_members": len(self.mirror.get_project_members(project_id)),
        }

    # ============================================================
    # ✅ AI suggestions and insights
    # ============================================================
    def list_ai_suggestions(self, context: SessionContext, project_id: str) -> List[AiSuggestion]:
        self.require_member(project_id, context.user_id)
        return self.mirror.get_project_ai_suggestions(project_id)

    async def add_ai_suggestion(
        self, context: SessionContext, project_id: str, fields: Dict[str, Any]
    ) -> AiSuggestion:
        self.require_manager(project_id, context.user_id)
        created: Dict[str, str] = {}

        def change(snapshot: ProjectData) -> ProjectData:
            updated = ProjectDataManager.add_ai_suggestion(snapshot, fields)
            suggestion = updated.ai_suggestions[-1]
            created["id"] = suggestion.id
            return ProjectDataManager.add_activity(
                updated,
                activity(ActivityType.AI_SUGGESTION_ADDED, f'AI suggestion: "{suggestion.title}"', entity_id=suggestion.id),
            )

        await self.apply(project_id, change, user_id=context.user_id)
        return self.mirror.session.get(AiSuggestion, created["id"])

    async def resolve_ai_suggestion(
        self, context: SessionContext, project_id: str, suggestion_id: str, *, applied: bool
    ) -> None:
        """Mark a suggestion applied, or dismiss it."""
        self.require_member(project_id, context.user_id)
        suggestion = self.mirror.session.get(AiSuggestion, suggestion_id)
        if suggestion is None or suggestion.project_id != project_id:
            raise SuggestionNotFound()
        await self.apply(
            project_id,
            lambda s: ProjectDataManager.update_ai_suggestion(
                s, suggestion_id, applied=True if applied else None, dismissed=not applied
            ),
            user_id=context.user_id,
        )

    def _ai_service(self, context: SessionContext, project: Project) -> AIInsightsService:
        api_key = context.credentials.gemini_api_key if context.credentials else None
        if not api_key and project.google_api_config:
            api_key = project.google_api_config.get("gemini_api_key")
        return AIInsightsService(api_key, transport=self.ai_transport)

    async def generate_insights(self, context: SessionContext, project_id: str) -> Dict[str, Any]:
        self.require_member(project_id, context.user_id)
        snapshot = self.mirror.build_snapshot(project_id)
        service = self._ai_service(context, self._get_project_row(project_id))
        insights = await service.generate_project_insights(snapshot.project, snapshot.tasks, snapshot.members)
        self.mirror.record_usage(context.user_id, ai_requests=1)
        return insights

    async def analyze_workload(self, context: SessionContext, project_id: str) -> Dict[str, Any]:
        self.require_member(project_id, context.user_id)
        snapshot = self.mirror.build_snapshot(project_id)
        service = self._ai_service(context, self._get_project_row(project_id))
        analysis = await service.generate_workload_analysis(snapshot.members, snapshot.tasks)
        self.mirror.record_usage(context.user_id, ai_requests=1)
        return analysis
