import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from core.config import settings
from core.dependencies import (
    get_invitation_workflow,
    get_mirror,
    get_oauth_transport,
    get_project_service,
)
from core.errors import CredentialsNotConfigured, OAuthExchangeError
from core.security import (
    create_oauth_state,
    create_session_token,
    get_current_context,
    get_optional_context,
    get_session_registry,
    session_from_oauth_state,
)
from models.models import User
from schemas.user_schema import (
    AuthStatusRead,
    EmailLogin,
    EnabledApisRead,
    EnabledApisUpdate,
    GoogleConfigRequest,
    GoogleConfigResponse,
    InheritedConfigRead,
    OAuthExchangeRequest,
    SessionTokenRead,
    UsageRead,
    UserRead,
)
from services.google_oauth_service import GoogleOAuthService
from services.invitation_service import InvitationWorkflow
from services.mirror_store import MirrorStore, current_month, normalize_email
from services.project_service import ProjectService
from services.session_service import SessionContext, SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Authentication"])


# ==========================================================
# ✅ Helpers
# ==========================================================
def _session_token(context: SessionContext) -> dict:
    return {
        "access_token": create_session_token(context),
        "token_type": "bearer",
        "expires_at": context.expires_at,
        "user": UserRead.model_validate(context.user),
        "has_inherited_config": context.has_inherited_config,
        "inherited_from_project_id": context.inherited_from_project_id,
    }


def _auth_status(context: Optional[SessionContext]) -> AuthStatusRead:
    if context is None:
        return AuthStatusRead(authenticated=False)
    return AuthStatusRead(
        authenticated=True,
        has_credentials=context.credentials is not None,
        has_inherited_config=context.has_inherited_config,
        has_valid_token=context.has_valid_token(),
        gmail_enabled=context.has_feature("gmail"),
        granted_features=context.granted_features(),
        client_id=context.credentials.client_id if context.credentials else None,
        user=UserRead.model_validate(context.user),
    )


async def _complete_oauth(
    context: SessionContext,
    code: str,
    mirror: MirrorStore,
    transport: Optional[httpx.AsyncBaseTransport],
) -> None:
    """Exchange the code with the session's credential set and store the tokens."""
    if context.credentials is None:
        raise CredentialsNotConfigured()
    oauth = GoogleOAuthService(context.credentials, transport=transport)
    tokens, id_token = await oauth.exchange_code(code, settings.OAUTH_REDIRECT_URI)
    context.attach_tokens(tokens)

    if id_token:
        profile = await oauth.verify_id_token(id_token)
        if normalize_email(profile["email"]) != context.user_id:
            logger.warning("Google account does not match the session user %s", context.user_id)
            return
        user = mirror.upsert_user(
            context.user_id,
            first_name=profile["first_name"],
            last_name=profile["last_name"],
            profile_image_url=profile["profile_image_url"],
        )
        context.user = User(**user.model_dump())


# ==========================================================
# ✅ Owner setup: credential set + OAuth consent URL
# ==========================================================
@router.post("/google-config", response_model=GoogleConfigResponse)
def google_config(
    data: GoogleConfigRequest,
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
):
    """Start an owner session holding the submitted Google API configuration."""
    credentials = data.to_credential_set(email=normalize_email(data.email))
    context = workflow.setup_owner(
        data.email,
        credentials,
        {"first_name": data.first_name, "last_name": data.last_name},
    )
    oauth = GoogleOAuthService(context.credentials)
    auth_url = oauth.get_auth_url(settings.OAUTH_REDIRECT_URI, state=create_oauth_state(context))
    logger.info("Owner setup started for %s", context.email)
    return {**_session_token(context), "auth_url": auth_url}


# ==========================================================
# ✅ Member login by email (implicit invitation accept)
# ==========================================================
@router.post("/email-login", response_model=SessionTokenRead)
async def email_login(
    data: EmailLogin,
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
):
    context = await workflow.login_with_email(data.email)
    return _session_token(context)


# ==========================================================
# ✅ OAuth code exchange (API) and browser callback
# ==========================================================
@router.post("/oauth/exchange", response_model=AuthStatusRead)
async def oauth_exchange(
    data: OAuthExchangeRequest,
    context: SessionContext = Depends(get_current_context),
    mirror: MirrorStore = Depends(get_mirror),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_oauth_transport),
):
    await _complete_oauth(context, data.code, mirror, transport)
    return _auth_status(context)


@router.get("/callback")
async def oauth_callback(
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    registry: SessionRegistry = Depends(get_session_registry),
    mirror: MirrorStore = Depends(get_mirror),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_oauth_transport),
):
    frontend = settings.FRONTEND_URL.rstrip("/")
    if error:
        logger.info("OAuth consent was declined: %s", error)
        return RedirectResponse(f"{frontend}/?error=oauth_denied")

    context = session_from_oauth_state(state, registry) if state else None
    if context is None or not code:
        return RedirectResponse(f"{frontend}/?error=auth_failed")

    try:
        await _complete_oauth(context, code, mirror, transport)
    except (OAuthExchangeError, CredentialsNotConfigured) as e:
        logger.warning("OAuth callback failed: %s", e.message)
        return RedirectResponse(f"{frontend}/?error=auth_failed")
    return RedirectResponse(f"{frontend}/dashboard")


# ==========================================================
# ✅ Session state
# ==========================================================
@router.get("/status", response_model=AuthStatusRead)
def auth_status(
    context: Optional[SessionContext] = Depends(get_optional_context),
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
):
    if context is not None:
        workflow.auto_inherit(context)
    return _auth_status(context)


@router.get("/user", response_model=UserRead)
def current_user(context: SessionContext = Depends(get_current_context)):
    return context.user


@router.post("/logout")
def logout(
    context: SessionContext = Depends(get_current_context),
    registry: SessionRegistry = Depends(get_session_registry),
):
    registry.destroy(context.session_id)
    return {"success": True}


# ==========================================================
# ✅ Enabled APIs
# ==========================================================
@router.get("/enabled-apis", response_model=EnabledApisRead)
def get_enabled_apis(context: SessionContext = Depends(get_current_context)):
    if context.credentials is None:
        raise CredentialsNotConfigured()
    return {"enabled_apis": context.credentials.enabled_apis}


@router.put("/enabled-apis", response_model=EnabledApisRead)
async def update_enabled_apis(
    data: EnabledApisUpdate,
    context: SessionContext = Depends(get_current_context),
    projects: ProjectService = Depends(get_project_service),
):
    """Core APIs stay on. The flags are copied to every project the caller owns."""
    if context.credentials is None:
        raise CredentialsNotConfigured()
    context.credentials = context.credentials.with_enabled_apis(data.enabled_apis)
    updated = await projects.propagate_enabled_apis(context, data.enabled_apis)
    return {"enabled_apis": context.credentials.enabled_apis, "updated_projects": updated}


# ==========================================================
# ✅ Re-copy a project's credential set into the session
# ==========================================================
@router.post("/inherit-project-config/{project_id}", response_model=InheritedConfigRead)
def inherit_project_config(
    project_id: str,
    context: SessionContext = Depends(get_current_context),
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
):
    credentials = workflow.inherit_project_config(context, project_id)
    return {
        "project_id": project_id,
        "has_inherited_config": context.has_inherited_config,
        "enabled_apis": credentials.enabled_apis,
    }


# ==========================================================
# ✅ Usage
# ==========================================================
@router.get("/usage", response_model=UsageRead)
def get_usage(
    context: SessionContext = Depends(get_current_context),
    mirror: MirrorStore = Depends(get_mirror),
):
    usage = mirror.get_user_usage(context.user_id)
    if usage is None:
        return UsageRead(user_id=context.user_id, month=current_month())
    return usage
