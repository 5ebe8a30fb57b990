from .invitation_schema import InvitationCreate, InvitationRead, InvitationDetails, InvitationAcceptResult
from .project_data_schema import (
    CredentialSet,
    ProjectData,
    ProjectDoc,
    TaskDoc,
    MemberDoc,
    CommentDoc,
    ActivityDoc,
    AiSuggestionDoc,
)
from .project_schema import (
    ProjectCreate, ProjectRead, ProjectUpdate,
    CredentialSetIn,
    MemberAdd, MemberRead,
    ActivityRead, ProjectStats,
    AiSuggestionCreate, AiSuggestionRead,
    ShareLinkRead,
)
from .task_schema import TaskCreate, TaskRead, TaskUpdate, CommentCreate, CommentRead
from .user_schema import (
    UserRead,
    EmailLogin,
    GoogleConfigRequest, GoogleConfigResponse,
    OAuthExchangeRequest,
    SessionTokenRead,
    AuthStatusRead,
    EnabledApisRead, EnabledApisUpdate,
    InheritedConfigRead,
    UsageRead,
)

__all__ = [
    # Invitation
    "InvitationCreate", "InvitationRead", "InvitationDetails", "InvitationAcceptResult",

    # Project document
    "CredentialSet", "ProjectData", "ProjectDoc", "TaskDoc", "MemberDoc",
    "CommentDoc", "ActivityDoc", "AiSuggestionDoc",

    # Project
    "ProjectCreate", "ProjectRead", "ProjectUpdate",
    "CredentialSetIn",
    "MemberAdd", "MemberRead",
    "ActivityRead", "ProjectStats",
    "AiSuggestionCreate", "AiSuggestionRead",
    "ShareLinkRead",

    # Task
    "TaskCreate", "TaskRead", "TaskUpdate",
    "CommentCreate", "CommentRead",

    # User / session
    "UserRead", "EmailLogin",
    "GoogleConfigRequest", "GoogleConfigResponse",
    "OAuthExchangeRequest", "SessionTokenRead",
    "AuthStatusRead",
    "EnabledApisRead", "EnabledApisUpdate",
    "InheritedConfigRead",
    "UsageRead",
]
