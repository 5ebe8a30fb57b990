# task_schema.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime

from models.models import TaskPriority, TaskStatus


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee_id: Optional[str] = None
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    progress: int = Field(default=0, ge=0, le=100)
    position: int = 0
    depends_on: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    attachments: List[str] = Field(default_factory=list)
    sprint_id: Optional[str] = None
    # project_id comes from the URL, created_by_id from the session

    model_config = ConfigDict(use_enum_values=True)


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[str] = None
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    actual_hours: Optional[float] = Field(default=None, ge=0)
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    position: Optional[int] = None
    depends_on: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    attachments: Optional[List[str]] = None
    sprint_id: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class TaskRead(BaseModel):
    id: str
    project_id: str
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    assignee_id: Optional[str] = None
    created_by_id: str
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    estimated_hours: Optional[float] = None
    actual_hours: float = 0
    progress: int = 0
    position: int = 0
    depends_on: List[str] = Field(default=[])
    tags: List[str] = Field(default=[])
    attachments: List[str] = Field(default=[])
    sprint_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Comments
class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    mentions: List[str] = Field(default_factory=list)
    attachments: List[str] = Field(default_factory=list)
    task_links: List[str] = Field(default_factory=list)


class CommentRead(BaseModel):
    id: str
    task_id: str
    author_id: str
    content: str
    mentions: List[str] = Field(default=[])
    attachments: List[str] = Field(default=[])
    task_links: List[str] = Field(default=[])
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
