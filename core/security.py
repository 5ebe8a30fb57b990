# core/security.py
from typing import Optional, Dict, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from core.config import settings
from services.session_service import SessionContext, SessionRegistry, session_registry


# ========================================
# 🔑 JWT / APP CONFIG
# ========================================
SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM or "HS256"
OAUTH_STATE_PURPOSE = "oauth_state"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/email-login", auto_error=False)


def get_session_registry() -> SessionRegistry:
    return session_registry


# ========================================
# 🔑 Token Helpers
# ========================================
def create_session_token(context: SessionContext) -> str:
    """Bearer token naming the server-side session. It carries no credentials."""
    to_encode: Dict[str, Any] = {
        "sub": context.email,
        "sid": context.session_id,
        "exp": context.expires_at,
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def create_oauth_state(context: SessionContext) -> str:
    """Signed `state` for the OAuth round trip, tying the callback to a session."""
    to_encode = {"sid": context.session_id, "purpose": OAUTH_STATE_PURPOSE, "exp": context.expires_at}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode JWT and return payload."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token.",
            headers={"WWW-Authenticate": "Bearer"},
        )


def session_from_oauth_state(state: str, registry: SessionRegistry) -> Optional[SessionContext]:
    try:
        payload = jwt.decode(state, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("purpose") != OAUTH_STATE_PURPOSE:
        return None
    return registry.get(payload.get("sid", ""))


# ========================================
# 👤 Session resolution
# ========================================
def get_optional_context(
    token: Optional[str] = Depends(oauth2_scheme),
    registry: SessionRegistry = Depends(get_session_registry),
) -> Optional[SessionContext]:
    if not token:
        return None
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("purpose"):
        return None
    return registry.get(payload.get("sid", ""))


def get_current_context(
    token: Optional[str] = Depends(oauth2_scheme),
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionContext:
    """Resolve the bearer token to its live session, or 401."""
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_token(token)
    session_id = payload.get("sid")
    if not session_id or payload.get("purpose"):
        raise HTTPException(status_code=401, detail="Invalid token payload")

    context = registry.get(session_id)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired. Please sign in again.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return context
