# core/dependencies.py
from typing import Optional

import httpx
from fastapi import Depends
from sqlmodel import Session

from core.database import get_session
from core.security import get_optional_context, get_session_registry
from services.drive_service import DriveDocumentStore
from services.email_service import EmailService, email_service
from services.invitation_service import InvitationWorkflow
from services.mirror_store import MirrorStore
from services.project_service import ProjectService
from services.session_service import SessionContext, SessionRegistry


# ========================================
# Outbound HTTP transports (None = real network)
# ========================================
def get_drive_transport() -> Optional[httpx.AsyncBaseTransport]:
    return None


def get_oauth_transport() -> Optional[httpx.AsyncBaseTransport]:
    return None


def get_ai_transport() -> Optional[httpx.AsyncBaseTransport]:
    return None


def get_email_service() -> EmailService:
    return email_service


# ========================================
# Stores and services
# ========================================
def get_mirror(session: Session = Depends(get_session)) -> MirrorStore:
    return MirrorStore(session)


def get_document_store(
    context: Optional[SessionContext] = Depends(get_optional_context),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_drive_transport),
) -> Optional[DriveDocumentStore]:
    """Drive store for sessions holding a valid access token, otherwise None."""
    if context is None or not context.has_valid_token():
        return None
    return DriveDocumentStore(context.tokens.access_token, transport=transport)


def get_project_service(
    mirror: MirrorStore = Depends(get_mirror),
    store: Optional[DriveDocumentStore] = Depends(get_document_store),
    ai_transport: Optional[httpx.AsyncBaseTransport] = Depends(get_ai_transport),
) -> ProjectService:
    return ProjectService(mirror, store, ai_transport=ai_transport)


def get_invitation_workflow(
    mirror: MirrorStore = Depends(get_mirror),
    projects: ProjectService = Depends(get_project_service),
    registry: SessionRegistry = Depends(get_session_registry),
    notifier: EmailService = Depends(get_email_service),
) -> InvitationWorkflow:
    return InvitationWorkflow(mirror, projects, registry, notifier)
