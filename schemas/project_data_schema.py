# project_data_schema.py
# Documents stored as `project-data.json` inside each project's Drive folder.
# Field names are camelCase on the wire so existing documents stay readable.
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.models import (
    ProjectRole,
    ProjectStatus,
    SuggestionPriority,
    TaskPriority,
    TaskStatus,
)

# Features that can never be switched off for a credential set.
CORE_APIS = ("auth", "drive", "ai")

DEFAULT_ENABLED_APIS: Dict[str, bool] = {
    "auth": True,
    "drive": True,
    "ai": True,
    "gmail": False,
    "contacts": False,
    "tasks": False,
    "calendar": False,
    "docs": False,
    "sheets": False,
}


class DocumentModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        use_enum_values=True,
        validate_default=True,
        extra="ignore",
    )


# ============================================================
# ✅ Credential set (owner's Google API configuration)
# ============================================================
class CredentialSet(DocumentModel):
    api_key: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(..., min_length=1)
    gemini_api_key: Optional[str] = None
    email: Optional[str] = None
    enabled_apis: Dict[str, bool] = Field(default_factory=lambda: dict(DEFAULT_ENABLED_APIS))

    def with_enabled_apis(self, flags: Dict[str, bool]) -> "CredentialSet":
        merged = {**self.enabled_apis, **flags}
        for name in CORE_APIS:
            merged[name] = True
        return self.model_copy(update={"enabled_apis": merged})

    def is_enabled(self, feature: str) -> bool:
        return bool(self.enabled_apis.get(feature, False))


# ============================================================
# ✅ Entities
# ============================================================
class ProjectDoc(DocumentModel):
    id: str
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    owner_id: str
    color: str = "#7C3AED"
    status: ProjectStatus = ProjectStatus.ACTIVE
    # Drive folder id of the container holding the project document.
    drive_file_id: str
    allowed_emails: List[str] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    budget: Optional[float] = None
    spent_budget: float = 0
    google_api_config: Optional[CredentialSet] = None
    created_at: datetime
    updated_at: datetime


class TaskDoc(DocumentModel):
    id: str
    project_id: str
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee_id: Optional[str] = None
    created_by_id: str
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    estimated_hours: Optional[float] = None
    actual_hours: float = 0
    progress: int = Field(default=0, ge=0, le=100)
    position: int = 0
    depends_on: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    attachments: List[str] = Field(default_factory=list)
    sprint_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class MemberDoc(DocumentModel):
    id: str
    project_id: str
    user_id: str
    role: ProjectRole = ProjectRole.MEMBER
    joined_at: datetime


class CommentDoc(DocumentModel):
    id: str
    task_id: str
    author_id: str
    content: str = Field(..., min_length=1)
    mentions: List[str] = Field(default_factory=list)
    attachments: List[str] = Field(default_factory=list)
    task_links: List[str] = Field(default_factory=list)
    created_at: datetime


class ActivityDoc(DocumentModel):
    id: str
    project_id: str
    user_id: Optional[str] = None
    type: str
    description: str
    entity_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime


class AiSuggestionDoc(DocumentModel):
    id: str
    project_id: str
    type: str
    title: str
    description: str
    priority: SuggestionPriority = SuggestionPriority.MEDIUM
    applied: bool = False
    dismissed_at: Optional[datetime] = None
    created_at: datetime


# ============================================================
# ✅ Snapshot: the entire persisted state of one project
# ============================================================
class ProjectData(DocumentModel):
    project: ProjectDoc
    tasks: List[TaskDoc] = Field(default_factory=list)
    members: List[MemberDoc] = Field(default_factory=list)
    comments: List[CommentDoc] = Field(default_factory=list)
    activities: List[ActivityDoc] = Field(default_factory=list)
    ai_suggestions: List[AiSuggestionDoc] = Field(default_factory=list)
    # Incremented on every stored write; used as the optimistic-concurrency token.
    version: int = 0

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)

    @classmethod
    def from_json(cls, text: str) -> "ProjectData":
        return cls.model_validate_json(text)

    def find_task(self, task_id: str) -> Optional[TaskDoc]:
        return next((t for t in self.tasks if t.id == task_id), None)

    def find_member(self, user_id: str) -> Optional[MemberDoc]:
        return next((m for m in self.members if m.user_id == user_id), None)

    def owner_member(self) -> Optional[MemberDoc]:
        return next((m for m in self.members if m.role == ProjectRole.OWNER), None)
