# services/project_data_manager.py
import uuid
from typing import Any, Dict, Optional

from core.errors import OwnerMembershipRequired, TaskNotFound
from models.models import ProjectRole, utc_now
from schemas.project_data_schema import (
    ActivityDoc,
    AiSuggestionDoc,
    CommentDoc,
    MemberDoc,
    ProjectData,
    ProjectDoc,
    TaskDoc,
)

# Fields a caller may never set through a task/project update.
_TASK_PROTECTED = {"id", "project_id", "created_by_id", "created_at", "updated_at"}
_PROJECT_PROTECTED = {"id", "owner_id", "drive_file_id", "created_at", "updated_at"}


def new_id() -> str:
    return uuid.uuid4().hex


class ProjectDataManager:
    """
    Pure `(snapshot, change) -> new snapshot` functions.

    No I/O and no shared state: every function builds new lists and new
    documents, so the snapshot passed in is never modified. Callers persist
    the returned snapshot as a whole.
    """

    @staticmethod
    def initial_snapshot(project: ProjectDoc) -> ProjectData:
        """Empty project document holding only the owner's membership."""
        owner = MemberDoc(
            id=new_id(),
            project_id=project.id,
            user_id=project.owner_id,
            role=ProjectRole.OWNER,
            joined_at=project.created_at,
        )
        return ProjectData(project=project, members=[owner])

    # ------------------------------------------------------------
    # Project
    # ------------------------------------------------------------
    @staticmethod
    def update_project(snapshot: ProjectData, updates: Dict[str, Any]) -> ProjectData:
        changes = {k: v for k, v in updates.items() if k not in _PROJECT_PROTECTED}
        project = ProjectDoc.model_validate(
            {**snapshot.project.model_dump(), **changes, "updated_at": utc_now()}
        )
        return snapshot.model_copy(update={"project": project})

    # ------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------
    @staticmethod
    def add_task(snapshot: ProjectData, fields: Dict[str, Any]) -> ProjectData:
        now = utc_now()
        task = TaskDoc.model_validate(
            {
                **fields,
                "id": new_id(),
                "project_id": snapshot.project.id,
                "created_at": now,
                "updated_at": now,
            }
        )
        return snapshot.model_copy(update={"tasks": [*snapshot.tasks, task]})

    @staticmethod
    def update_task(snapshot: ProjectData, task_id: str, updates: Dict[str, Any]) -> ProjectData:
        """Merge `updates` into the task. Raises TaskNotFound for an unknown id."""
        if snapshot.find_task(task_id) is None:
            raise TaskNotFound(f"Task {task_id} not found in project {snapshot.project.id}.")

        changes = {k: v for k, v in updates.items() if k not in _TASK_PROTECTED}
        now = utc_now()
        tasks = [
            TaskDoc.model_validate({**task.model_dump(), **changes, "updated_at": now})
            if task.id == task_id
            else task
            for task in snapshot.tasks
        ]
        return snapshot.model_copy(update={"tasks": tasks})

    @staticmethod
    def delete_task(snapshot: ProjectData, task_id: str) -> ProjectData:
        """Remove the task and every comment attached to it."""
        return snapshot.model_copy(
            update={
                "tasks": [t for t in snapshot.tasks if t.id != task_id],
                "comments": [c for c in snapshot.comments if c.task_id != task_id],
            }
        )

    # ------------------------------------------------------------
    # Append-only records
    # ------------------------------------------------------------
    @staticmethod
    def add_comment(snapshot: ProjectData, fields: Dict[str, Any]) -> ProjectData:
        comment = CommentDoc.model_validate({**fields, "id": new_id(), "created_at": utc_now()})
        return snapshot.model_copy(update={"comments": [*snapshot.comments, comment]})

    @staticmethod
    def add_activity(snapshot: ProjectData, fields: Dict[str, Any]) -> ProjectData:
        activity = ActivityDoc.model_validate(
            {
                **fields,
                "id": new_id(),
                "project_id": snapshot.project.id,
                "created_at": utc_now(),
            }
        )
        return snapshot.model_copy(update={"activities": [*snapshot.activities, activity]})

    @staticmethod
    def add_ai_suggestion(snapshot: ProjectData, fields: Dict[str, Any]) -> ProjectData:
        suggestion = AiSuggestionDoc.model_validate(
            {
                **fields,
                "id": new_id(),
                "project_id": snapshot.project.id,
                "created_at": utc_now(),
            }
        )
        return snapshot.model_copy(update={"ai_suggestions": [*snapshot.ai_suggestions, suggestion]})

    @staticmethod
    def update_ai_suggestion(
        snapshot: ProjectData,
        suggestion_id: str,
        *,
        applied: Optional[bool] = None,
        dismissed: bool = False,
    ) -> ProjectData:
        changes: Dict[str, Any] = {}
        if applied is not None:
            changes["applied"] = applied
        if dismissed:
            changes["dismissed_at"] = utc_now()
        suggestions = [
            s.model_copy(update=changes) if s.id == suggestion_id else s
            for s in snapshot.ai_suggestions
        ]
        return snapshot.model_copy(update={"ai_suggestions": suggestions})

    # ------------------------------------------------------------
    # Members
    # ------------------------------------------------------------
    @staticmethod
    def add_member(snapshot: ProjectData, user_id: str, role: str) -> ProjectData:
        """At most one membership per user: an existing one is kept as is."""
        if snapshot.find_member(user_id) is not None:
            return snapshot.model_copy()
        member = MemberDoc(
            id=new_id(),
            project_id=snapshot.project.id,
            user_id=user_id,
            role=role,
            joined_at=utc_now(),
        )
        return snapshot.model_copy(update={"members": [*snapshot.members, member]})

    @staticmethod
    def remove_member(snapshot: ProjectData, user_id: str) -> ProjectData:
        member = snapshot.find_member(user_id)
        if member is not None and member.role == ProjectRole.OWNER:
            raise OwnerMembershipRequired()
        return snapshot.model_copy(
            update={"members": [m for m in snapshot.members if m.user_id != user_id]}
        )
