from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional
from datetime import datetime

from models.models import InvitationStatus, ProjectRole


# ============================================================
# ✅ Create Invitation (input)
# ============================================================
class InvitationCreate(BaseModel):
    email: EmailStr
    role: ProjectRole = ProjectRole.MEMBER
    # inviter name comes from the session; project id from the URL

    model_config = ConfigDict(use_enum_values=True)


# ============================================================
# ✅ Read Invitation (output)
# ============================================================
class InvitationRead(BaseModel):
    id: str
    project_id: str
    email: str
    role: str
    inviter_name: str
    status: InvitationStatus
    created_at: datetime
    processed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class InvitationDetails(BaseModel):
    """Public view of an invitation, shown on the invite page before sign-in."""

    id: str
    project_id: str
    project_name: Optional[str] = None
    inviter_name: str
    role: str
    email: str
    status: InvitationStatus


# ============================================================
# ✅ Accept Invitation (result)
# ============================================================
class InvitationAcceptResult(BaseModel):
    ok: bool = True
    access_token: str
    token_type: str = "bearer"
    project_id: str
    has_inherited_config: bool = Field(default=False)
    message: str = "Invitation accepted successfully"
