# services/session_service.py
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from core.config import settings
from models.models import User, utc_now
from schemas.project_data_schema import CredentialSet

logger = logging.getLogger(__name__)

# Google OAuth scopes that unlock each optional feature.
FEATURE_SCOPES: Dict[str, str] = {
    "gmail": "https://www.googleapis.com/auth/gmail.send",
    "calendar": "https://www.googleapis.com/auth/calendar",
    "tasks": "https://www.googleapis.com/auth/tasks",
    "contacts": "https://www.googleapis.com/auth/contacts",
    "drive": "https://www.googleapis.com/auth/drive",
    "docs": "https://www.googleapis.com/auth/documents",
    "sheets": "https://www.googleapis.com/auth/spreadsheets",
}


# ============================================================
# ✅ OAuth token bundle
# ============================================================
@dataclass(frozen=True)
class TokenBundle:
    access_token: str
    refresh_token: Optional[str] = None
    scope: str = ""
    expires_at: Optional[datetime] = None

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """Plain timestamp comparison, never a network call."""
        if not self.access_token:
            return False
        if self.expires_at is None:
            return True
        return (now or utc_now()) < self.expires_at

    def has_scope(self, feature: str) -> bool:
        scope = FEATURE_SCOPES.get(feature)
        return bool(scope) and scope in self.scope


# ============================================================
# ✅ Per-session context
# ============================================================
@dataclass
class SessionContext:
    """
    Everything one signed-in browser session holds. Credentials are a value
    copy: changing a project's credential set later does not reach into
    sessions that copied it before.
    """

    session_id: str
    user: User
    expires_at: datetime
    credentials: Optional[CredentialSet] = None
    # Project whose credential set was copied into this session, if any.
    inherited_from_project_id: Optional[str] = None
    tokens: Optional[TokenBundle] = None

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def email(self) -> str:
        return self.user.email

    @property
    def has_inherited_config(self) -> bool:
        return self.inherited_from_project_id is not None and self.credentials is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at

    def has_valid_token(self, now: Optional[datetime] = None) -> bool:
        return self.tokens is not None and self.tokens.is_valid(now)

    def has_feature(self, feature: str) -> bool:
        return self.tokens is not None and self.tokens.has_scope(feature)

    def granted_features(self) -> List[str]:
        return [feature for feature in FEATURE_SCOPES if self.has_feature(feature)]

    def inherit_credentials(self, credentials: CredentialSet, project_id: str) -> None:
        self.credentials = credentials.model_copy(deep=True)
        self.inherited_from_project_id = project_id
        logger.info("Session %s inherited credentials from project %s", self.session_id, project_id)

    def set_own_credentials(self, credentials: CredentialSet) -> None:
        self.credentials = credentials.model_copy(deep=True)
        self.inherited_from_project_id = None

    def attach_tokens(self, tokens: TokenBundle) -> None:
        self.tokens = tokens
        if tokens.expires_at is not None and tokens.expires_at < self.expires_at:
            self.expires_at = tokens.expires_at


# ============================================================
# ✅ Registry: session id -> context
# ============================================================
class SessionRegistry:
    def __init__(self, lifetime: Optional[timedelta] = None):
        self.lifetime = lifetime or timedelta(minutes=settings.SESSION_EXPIRE_MINUTES)
        self._sessions: Dict[str, SessionContext] = {}

    def create(self, user: User, credentials: Optional[CredentialSet] = None) -> SessionContext:
        context = SessionContext(
            session_id=secrets.token_urlsafe(24),
            # Detached copy: the DB session that loaded `user` closes with the request.
            user=User(**user.model_dump()),
            expires_at=utc_now() + self.lifetime,
        )
        if credentials is not None:
            context.set_own_credentials(credentials)
        self._sessions[context.session_id] = context
        logger.info("Session created for %s", user.email)
        return context

    def get(self, session_id: str) -> Optional[SessionContext]:
        context = self._sessions.get(session_id)
        if context is not None and context.is_expired():
            self.destroy(session_id)
            return None
        return context

    def destroy(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            logger.info("Session %s ended", session_id)

    def __len__(self) -> int:
        return len(self._sessions)


session_registry = SessionRegistry()
