# models/models.py
# Local mirror tables. Every row here is an index of the project documents
# kept in Drive, except users, invitations and usage counters which only
# exist in the mirror.
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from enum import Enum

from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint, Column, JSON, DateTime


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _json_list() -> Any:
    return Field(default_factory=list, sa_column=Column(JSON, nullable=False))


def _timestamp(**kwargs) -> Any:
    return Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False, **kwargs))


def _optional_timestamp() -> Any:
    return Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


# ============================================================
# ENUMS
# ============================================================
class ProjectRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    ON_HOLD = "on_hold"


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SuggestionPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ActivityType(str, Enum):
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    INVITATION_ACCEPTED = "invitation_accepted"
    INVITATION_REJECTED = "invitation_rejected"
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_STATUS_CHANGED = "task_status_changed"
    TASK_DELETED = "task_deleted"
    COMMENT_ADDED = "comment_added"
    AI_SUGGESTION_ADDED = "ai_suggestion_added"
    CREDENTIALS_UPDATED = "credentials_updated"


MANAGER_ROLES = (ProjectRole.OWNER.value, ProjectRole.ADMIN.value)


# ============================================================
# USER
# ============================================================
class User(SQLModel, table=True):
    __tablename__ = "user"

    # Identities are keyed by their normalised email address, the same key
    # provisional memberships use before the identity ever authenticates.
    id: str = Field(primary_key=True, max_length=255)
    email: str = Field(index=True, max_length=255, nullable=False)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    profile_image_url: Optional[str] = None
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()
    last_login_at: Optional[datetime] = _optional_timestamp()


# ============================================================
# PROJECT
# ============================================================
class Project(SQLModel, table=True):
    __tablename__ = "project"

    id: str = Field(primary_key=True, max_length=64)
    name: str = Field(max_length=200)
    description: Optional[str] = None
    owner_id: str = Field(index=True, max_length=255)
    color: str = Field(default="#7C3AED", max_length=20)
    status: str = Field(default=ProjectStatus.ACTIVE.value, max_length=20)
    drive_file_id: str = Field(index=True, max_length=255)
    allowed_emails: List[str] = _json_list()
    start_date: Optional[datetime] = _optional_timestamp()
    end_date: Optional[datetime] = _optional_timestamp()
    budget: Optional[float] = None
    spent_budget: float = Field(default=0)
    google_api_config: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    document_version: int = Field(default=0)
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


# ============================================================
# PROJECT MEMBER
# ============================================================
class ProjectMember(SQLModel, table=True):
    __tablename__ = "project_member"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_member"),)

    id: str = Field(primary_key=True, max_length=64)
    project_id: str = Field(index=True, max_length=64)
    # May be a raw email for an identity that has never logged in.
    user_id: str = Field(index=True, max_length=255)
    role: str = Field(default=ProjectRole.MEMBER.value, max_length=20)
    joined_at: datetime = _timestamp()


# ============================================================
# TASK
# ============================================================
class Task(SQLModel, table=True):
    __tablename__ = "task"

    id: str = Field(primary_key=True, max_length=64)
    project_id: str = Field(index=True, max_length=64)
    title: str = Field(max_length=500)
    description: Optional[str] = None
    status: str = Field(default=TaskStatus.TODO.value, max_length=20, index=True)
    priority: str = Field(default=TaskPriority.MEDIUM.value, max_length=20)
    assignee_id: Optional[str] = Field(default=None, max_length=255)
    created_by_id: str = Field(max_length=255)
    due_date: Optional[datetime] = _optional_timestamp()
    start_date: Optional[datetime] = _optional_timestamp()
    estimated_hours: Optional[float] = None
    actual_hours: float = Field(default=0)
    progress: int = Field(default=0)
    position: int = Field(default=0)
    depends_on: List[str] = _json_list()
    tags: List[str] = _json_list()
    attachments: List[str] = _json_list()
    sprint_id: Optional[str] = None
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


# ============================================================
# COMMENT
# ============================================================
class Comment(SQLModel, table=True):
    __tablename__ = "comment"

    id: str = Field(primary_key=True, max_length=64)
    task_id: str = Field(index=True, max_length=64)
    # Denormalised so project deletes can cascade without a join.
    project_id: str = Field(index=True, max_length=64)
    author_id: str = Field(max_length=255)
    content: str
    mentions: List[str] = _json_list()
    attachments: List[str] = _json_list()
    task_links: List[str] = _json_list()
    created_at: datetime = _timestamp()


# ============================================================
# ACTIVITY
# ============================================================
class Activity(SQLModel, table=True):
    __tablename__ = "activity"

    id: str = Field(primary_key=True, max_length=64)
    project_id: str = Field(index=True, max_length=64)
    user_id: Optional[str] = Field(default=None, max_length=255)
    type: str = Field(max_length=50)
    description: str
    entity_id: Optional[str] = Field(default=None, max_length=255)
    # `metadata` is reserved on SQLModel classes.
    meta: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = _timestamp()


# ============================================================
# AI SUGGESTION
# ============================================================
class AiSuggestion(SQLModel, table=True):
    __tablename__ = "ai_suggestion"

    id: str = Field(primary_key=True, max_length=64)
    project_id: str = Field(index=True, max_length=64)
    type: str = Field(max_length=50)
    title: str
    description: str
    priority: str = Field(default=SuggestionPriority.MEDIUM.value, max_length=20)
    applied: bool = Field(default=False)
    dismissed_at: Optional[datetime] = _optional_timestamp()
    created_at: datetime = _timestamp()


# ============================================================
# INVITATION
# ============================================================
class Invitation(SQLModel, table=True):
    __tablename__ = "invitation"

    id: str = Field(primary_key=True, max_length=64)
    project_id: str = Field(index=True, max_length=64)
    email: str = Field(index=True, max_length=255, nullable=False)
    role: str = Field(default=ProjectRole.MEMBER.value, max_length=20)
    inviter_name: str = Field(max_length=255)
    status: str = Field(default=InvitationStatus.PENDING.value, max_length=20, index=True)
    created_at: datetime = _timestamp()
    processed_at: Optional[datetime] = _optional_timestamp()
    # False while an outcome recorded without Drive access still has to reach the project document
    drive_synced: bool = Field(default=True)

    def is_pending(self) -> bool:
        return self.status == InvitationStatus.PENDING.value


# ============================================================
# USAGE TRACKING
# ============================================================
class UsageTracking(SQLModel, table=True):
    __tablename__ = "usage_tracking"
    __table_args__ = (UniqueConstraint("user_id", "month", name="uq_usage_user_month"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=255)
    month: str = Field(max_length=7)  # YYYY-MM
    drive_requests: int = Field(default=0)
    ai_requests: int = Field(default=0)
    projects_created: int = Field(default=0)
    storage_used: float = Field(default=0)  # MB
