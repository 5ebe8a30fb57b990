# user_schema.py
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Dict, List, Optional
from datetime import datetime

from schemas.project_schema import CredentialSetIn


# ---------------------------
# Users
# ---------------------------
class UserRead(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    created_at: datetime
    last_login_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------
# Login / owner setup
# ---------------------------
class EmailLogin(BaseModel):
    email: EmailStr


class GoogleConfigRequest(CredentialSetIn):
    email: EmailStr
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)


class SessionTokenRead(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserRead
    has_inherited_config: bool = False
    inherited_from_project_id: Optional[str] = None


class GoogleConfigResponse(SessionTokenRead):
    auth_url: str


class OAuthExchangeRequest(BaseModel):
    code: str = Field(..., min_length=1)


# ---------------------------
# Session state
# ---------------------------
class AuthStatusRead(BaseModel):
    authenticated: bool
    has_credentials: bool = False
    has_inherited_config: bool = False
    has_valid_token: bool = False
    gmail_enabled: bool = False
    granted_features: List[str] = []
    client_id: Optional[str] = None
    user: Optional[UserRead] = None


class EnabledApisRead(BaseModel):
    enabled_apis: Dict[str, bool]
    updated_projects: List[str] = []


class EnabledApisUpdate(BaseModel):
    enabled_apis: Dict[str, bool]


class InheritedConfigRead(BaseModel):
    project_id: str
    has_inherited_config: bool
    enabled_apis: Dict[str, bool]


class UsageRead(BaseModel):
    user_id: str
    month: str
    drive_requests: int = 0
    ai_requests: int = 0
    projects_created: int = 0
    storage_used: float = 0

    model_config = ConfigDict(from_attributes=True)
