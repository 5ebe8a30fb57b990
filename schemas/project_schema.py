# project_schema.py
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Any, Dict, List, Optional
from datetime import datetime

from models.models import ProjectRole, ProjectStatus, SuggestionPriority
from schemas.project_data_schema import CredentialSet, DEFAULT_ENABLED_APIS


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    color: str = Field(default="#7C3AED", max_length=20)
    status: ProjectStatus = ProjectStatus.ACTIVE
    allowed_emails: List[EmailStr] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    budget: Optional[float] = Field(default=None, ge=0)
    # owner_id and the Drive folder are set server-side

    model_config = ConfigDict(use_enum_values=True)


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    color: Optional[str] = Field(default=None, max_length=20)
    status: Optional[ProjectStatus] = None
    allowed_emails: Optional[List[EmailStr]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    budget: Optional[float] = Field(default=None, ge=0)
    spent_budget: Optional[float] = Field(default=None, ge=0)

    model_config = ConfigDict(use_enum_values=True)


class ProjectRead(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    owner_id: str
    color: str
    status: str
    drive_file_id: str
    allowed_emails: List[str] = []
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    budget: Optional[float] = None
    spent_budget: float = 0
    has_credentials: bool = False
    document_version: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_project(cls, project: Any) -> "ProjectRead":
        read = cls.model_validate(project)
        read.has_credentials = bool(project.google_api_config)
        return read


# ============================================================
# ✅ Credential set (owner input)
# ============================================================
class CredentialSetIn(BaseModel):
    api_key: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(..., min_length=1)
    gemini_api_key: Optional[str] = None
    enabled_apis: Dict[str, bool] = Field(default_factory=lambda: dict(DEFAULT_ENABLED_APIS))

    def to_credential_set(self, email: Optional[str] = None) -> CredentialSet:
        return CredentialSet(
            api_key=self.api_key,
            client_id=self.client_id,
            client_secret=self.client_secret,
            gemini_api_key=self.gemini_api_key,
            email=email,
        ).with_enabled_apis(self.enabled_apis)


# ============================================================
# ✅ Members
# ============================================================
class MemberAdd(BaseModel):
    email: EmailStr
    role: ProjectRole = ProjectRole.MEMBER

    model_config = ConfigDict(use_enum_values=True)


class MemberRead(BaseModel):
    id: str
    project_id: str
    user_id: str
    role: str
    joined_at: datetime
    # True while the member's identity has never logged in.
    provisional: bool = False

    model_config = ConfigDict(from_attributes=True)


# ============================================================
# ✅ Activity feed, stats, AI
# ============================================================
class ActivityRead(BaseModel):
    id: str
    project_id: str
    user_id: Optional[str] = None
    type: str
    description: str
    entity_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProjectStats(BaseModel):
    total_tasks: int
    todo_tasks: int
    in_progress_tasks: int
    completed_tasks: int
    overdue_tasks: int
    high_priority_tasks: int
    team_members: int


class AiSuggestionCreate(BaseModel):
    type: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    priority: SuggestionPriority = SuggestionPriority.MEDIUM

    model_config = ConfigDict(use_enum_values=True)


class AiSuggestionRead(BaseModel):
    id: str
    project_id: str
    type: str
    title: str
    description: str
    priority: str
    applied: bool
    dismissed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ShareLinkRead(BaseModel):
    link: str
