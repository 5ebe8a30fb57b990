# services/mirror_store.py
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Type

from sqlmodel import Session, SQLModel, select, desc

from models.models import (
    Activity,
    AiSuggestion,
    Comment,
    Invitation,
    InvitationStatus,
    Project,
    ProjectMember,
    Task,
    UsageTracking,
    User,
    utc_now,
)
from schemas.project_data_schema import (
    ActivityDoc,
    AiSuggestionDoc,
    CommentDoc,
    CredentialSet,
    MemberDoc,
    ProjectData,
    ProjectDoc,
    TaskDoc,
)
from services.project_data_manager import new_id

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored here is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_fields(row: SQLModel) -> Dict[str, Any]:
    return {
        key: as_utc(value) if isinstance(value, datetime) else value
        for key, value in row.model_dump().items()
    }


def current_month() -> str:
    return utc_now().strftime("%Y-%m")


class MirrorStore:
    """
    Relational index of the project documents plus the records that only live
    locally (users, invitations, usage counters).

    Project, member, task, comment, activity and suggestion rows are derived
    from ProjectData snapshots through `index_snapshot` and can be rebuilt
    from them at any time. Every public method commits its own work.
    """

    def __init__(self, session: Session):
        self.session = session

    # ============================================================
    # ✅ Users
    # ============================================================
    def get_user(self, user_id: str) -> Optional[User]:
        return self.session.get(User, normalize_email(user_id))

    def upsert_user(
        self,
        email: str,
        *,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        profile_image_url: Optional[str] = None,
        logged_in: bool = True,
    ) -> User:
        user_id = normalize_email(email)
        now = utc_now()
        user = self.session.get(User, user_id)
        if user is None:
            user = User(id=user_id, email=user_id, created_at=now)
        user.first_name = first_name or user.first_name
        user.last_name = last_name or user.last_name
        user.profile_image_url = profile_image_url or user.profile_image_url
        user.updated_at = now
        if logged_in:
            user.last_login_at = now
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def is_provisional(self, user_id: str) -> bool:
        """True while the identity behind a membership has never logged in."""
        user = self.get_user(user_id)
        return user is None or user.last_login_at is None

    # ============================================================
    # ✅ Projects
    # ============================================================
    def get_project(self, project_id: str) -> Optional[Project]:
        return self.session.get(Project, project_id)

    def get_user_projects(self, user_id: str) -> List[Project]:
        project_ids = self.session.exec(
            select(ProjectMember.project_id).where(ProjectMember.user_id == normalize_email(user_id))
        ).all()
        return self._projects_by_id(project_ids)

    def get_projects_owned_by(self, user_id: str) -> List[Project]:
        return list(
            self.session.exec(
                select(Project).where(Project.owner_id == normalize_email(user_id)).order_by(Project.created_at)
            ).all()
        )

    def get_projects_for_email(self, email: str) -> List[Project]:
        """
        Projects that reference `email` through a membership keyed by it or
        through a pending invitation to it.
        """
        email = normalize_email(email)
        member_of = self.session.exec(
            select(ProjectMember.project_id).where(ProjectMember.user_id == email)
        ).all()
        invited_to = self.session.exec(
            select(Invitation.project_id).where(
                Invitation.email == email,
                Invitation.status == InvitationStatus.PENDING.value,
            )
        ).all()
        return self._projects_by_id([*member_of, *invited_to])

    def _projects_by_id(self, project_ids: Iterable[str]) -> List[Project]:
        ids = set(project_ids)
        if not ids:
            return []
        return list(
            self.session.exec(select(Project).where(Project.id.in_(ids)).order_by(Project.created_at)).all()
        )

    def delete_project(self, project_id: str) -> bool:
        """Remove the project and every row that belongs to it."""
        project = self.get_project(project_id)
        if project is None:
            return False
        for model in (ProjectMember, Task, Comment, Activity, AiSuggestion, Invitation):
            for row in self.session.exec(select(model).where(model.project_id == project_id)).all():
                self.session.delete(row)
        self.session.delete(project)
        self.session.commit()
        logger.info("Project %s removed from the mirror", project_id)
        return True

    # ============================================================
    # ✅ Membership
    # ============================================================
    def get_user_project_role(self, project_id: str, user_id: str) -> Optional[ProjectMember]:
        """The caller's membership, or None when they have no access to the project."""
        return self.session.exec(
            select(ProjectMember).where(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == normalize_email(user_id),
            )
        ).first()

    def get_project_members(self, project_id: str) -> List[ProjectMember]:
        return list(
            self.session.exec(
                select(ProjectMember).where(ProjectMember.project_id == project_id).order_by(ProjectMember.joined_at)
            ).all()
        )

    # ============================================================
    # ✅ Tasks, comments, activities, suggestions
    # ============================================================
    def get_task(self, task_id: str) -> Optional[Task]:
        return self.session.get(Task, task_id)

    def get_project_tasks(self, project_id: str) -> List[Task]:
        return list(
            self.session.exec(
                select(Task).where(Task.project_id == project_id).order_by(Task.position, Task.created_at)
            ).all()
        )

    def get_task_comments(self, task_id: str) -> List[Comment]:
        return list(
            self.session.exec(select(Comment).where(Comment.task_id == task_id).order_by(Comment.created_at)).all()
        )

    def get_project_activities(self, project_id: str, limit: int = 20) -> List[Activity]:
        return list(
            self.session.exec(
                select(Activity)
                .where(Activity.project_id == project_id)
                .order_by(desc(Activity.created_at))
                .limit(limit)
            ).all()
        )

    def get_project_ai_suggestions(self, project_id: str) -> List[AiSuggestion]:
        return list(
            self.session.exec(
                select(AiSuggestion)
                .where(AiSuggestion.project_id == project_id, AiSuggestion.dismissed_at.is_(None))
                .order_by(desc(AiSuggestion.created_at))
            ).all()
        )

    # ============================================================
    # ✅ Invitations (mirror only)
    # ============================================================
    def create_invitation(self, project_id: str, email: str, role: str, inviter_name: str) -> Invitation:
        invitation = Invitation(
            id=new_id(),
            project_id=project_id,
            email=normalize_email(email),
            role=role,
            inviter_name=inviter_name,
            status=InvitationStatus.PENDING.value,
            created_at=utc_now(),
        )
        self.session.add(invitation)
        self.session.commit()
        self.session.refresh(invitation)
        return invitation

    def get_invitation(self, invitation_id: str) -> Optional[Invitation]:
        return self.session.get(Invitation, invitation_id)

    def get_pending_invitation(self, project_id: str, email: str) -> Optional[Invitation]:
        return self.session.exec(
            select(Invitation).where(
                Invitation.project_id == project_id,
                Invitation.email == normalize_email(email),
                Invitation.status == InvitationStatus.PENDING.value,
            )
        ).first()

    def get_pending_invitations_for_email(self, email: str) -> List[Invitation]:
        return list(
            self.session.exec(
                select(Invitation)
                .where(
                    Invitation.email == normalize_email(email),
                    Invitation.status == InvitationStatus.PENDING.value,
                )
                .order_by(Invitation.created_at)
            ).all()
        )

    def set_invitation_status(
        self, invitation: Invitation, status: InvitationStatus, *, drive_synced: bool = True
    ) -> Invitation:
        invitation.status = status.value
        invitation.processed_at = utc_now()
        invitation.drive_synced = drive_synced
        self.session.add(invitation)
        self.session.commit()
        self.session.refresh(invitation)
        return invitation

    def get_unsynced_invitations(self, project_id: str) -> List[Invitation]:
        """Accepted or rejected invitations whose outcome is not in the project document yet."""
        return list(
            self.session.exec(
                select(Invitation)
                .where(
                    Invitation.project_id == project_id,
                    Invitation.status != InvitationStatus.PENDING.value,
                    Invitation.drive_synced == False,  # noqa: E712
                )
                .order_by(Invitation.processed_at)
            ).all()
        )

    def mark_invitations_synced(self, invitations: Iterable[Invitation]) -> None:
        for invitation in invitations:
            invitation.drive_synced = True
            self.session.add(invitation)
        self.session.commit()

    # ============================================================
    # ✅ Usage tracking (mirror only)
    # ============================================================
    def get_user_usage(self, user_id: str, month: Optional[str] = None) -> Optional[UsageTracking]:
        return self.session.exec(
            select(UsageTracking).where(
                UsageTracking.user_id == normalize_email(user_id),
                UsageTracking.month == (month or current_month()),
            )
        ).first()

    def record_usage(self, user_id: str, **increments: float) -> UsageTracking:
        usage = self.get_user_usage(user_id)
        if usage is None:
            usage = UsageTracking(user_id=normalize_email(user_id), month=current_month())
        for counter, amount in increments.items():
            setattr(usage, counter, (getattr(usage, counter) or 0) + amount)
        self.session.add(usage)
        self.session.commit()
        self.session.refresh(usage)
        return usage

    # ============================================================
    # ✅ Snapshot indexing
    # ============================================================
    def index_snapshot(self, snapshot: ProjectData) -> Project:
        """
        Make the mirror rows of one project match `snapshot` exactly:
        upsert what the snapshot holds, delete what it no longer holds.
        """
        project_id = snapshot.project.id
        values = snapshot.project.model_dump(exclude={"google_api_config"})
        values["google_api_config"] = (
            snapshot.project.google_api_config.model_dump() if snapshot.project.google_api_config else None
        )
        values["document_version"] = snapshot.version

        project = self.get_project(project_id)
        if project is None:
            project = Project(**values)
        else:
            project.sqlmodel_update(values)
        self.session.add(project)

        self._sync_rows(ProjectMember, project_id, snapshot.members, lambda m: m.model_dump())
        self._sync_rows(Task, project_id, snapshot.tasks, lambda t: t.model_dump())
        self._sync_rows(
            Comment,
            project_id,
            snapshot.comments,
            lambda c: {**c.model_dump(), "project_id": project_id},
        )
        self._sync_rows(Activity, project_id, snapshot.activities, self._activity_values)
        self._sync_rows(AiSuggestion, project_id, snapshot.ai_suggestions, lambda s: s.model_dump())

        self.session.commit()
        self.session.refresh(project)
        return project

    def _sync_rows(
        self,
        model: Type[SQLModel],
        project_id: str,
        docs: List[Any],
        to_values: Callable[[Any], Dict[str, Any]],
    ) -> None:
        wanted = {doc.id: doc for doc in docs}
        existing = {row.id: row for row in self.session.exec(select(model).where(model.project_id == project_id)).all()}

        # Deletes go first so a re-keyed membership cannot trip uq_project_member.
        for row_id, row in existing.items():
            if row_id not in wanted:
                self.session.delete(row)
        self.session.flush()

        for doc_id, doc in wanted.items():
            values = to_values(doc)
            row = existing.get(doc_id)
            if row is None:
                row = model(**values)
            else:
                row.sqlmodel_update(values)
            self.session.add(row)

    @staticmethod
    def _activity_values(activity: ActivityDoc) -> Dict[str, Any]:
        values = activity.model_dump(exclude={"metadata"})
        values["meta"] = activity.metadata
        return values

    def build_snapshot(self, project_id: str) -> Optional[ProjectData]:
        """Rebuild a project's snapshot from its mirror rows."""
        project = self.get_project(project_id)
        if project is None:
            return None
        comments = self.session.exec(select(Comment).where(Comment.project_id == project_id)).all()
        activities = self.session.exec(
            select(Activity).where(Activity.project_id == project_id).order_by(Activity.created_at)
        ).all()
        suggestions = self.session.exec(
            select(AiSuggestion).where(AiSuggestion.project_id == project_id).order_by(AiSuggestion.created_at)
        ).all()
        return ProjectData(
            project=self._project_doc(project),
            tasks=[TaskDoc.model_validate(_row_fields(t)) for t in self.get_project_tasks(project_id)],
            members=[MemberDoc.model_validate(_row_fields(m)) for m in self.get_project_members(project_id)],
            comments=[CommentDoc.model_validate(_row_fields(c)) for c in comments],
            activities=[self.activity_doc(a) for a in activities],
            ai_suggestions=[AiSuggestionDoc.model_validate(_row_fields(s)) for s in suggestions],
            version=project.document_version,
        )

    @staticmethod
    def _project_doc(project: Project) -> ProjectDoc:
        fields = _row_fields(project)
        if fields.get("google_api_config"):
            fields["google_api_config"] = CredentialSet.model_validate(fields["google_api_config"])
        return ProjectDoc.model_validate(fields)

    @staticmethod
    def activity_doc(activity: Activity) -> ActivityDoc:
        fields = _row_fields(activity)
        fields["metadata"] = fields.pop("meta", None)
        return ActivityDoc.model_validate(fields)
