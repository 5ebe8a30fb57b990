# routes/invitation.py
import logging

from fastapi import APIRouter, Depends

from core.dependencies import get_invitation_workflow
from core.security import create_session_token
from schemas.invitation_schema import InvitationAcceptResult, InvitationDetails, InvitationRead
from services.invitation_service import InvitationWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Invitations"])


# -----------------------
# View invitation (public, shown before sign-in)
# -----------------------
@router.get("/{invitation_id}", response_model=InvitationDetails)
def get_invitation(
    invitation_id: str,
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
):
    invitation, project = workflow.get_invitation(invitation_id)
    return InvitationDetails(
        id=invitation.id,
        project_id=invitation.project_id,
        project_name=project.name if project else None,
        inviter_name=invitation.inviter_name,
        role=invitation.role,
        email=invitation.email,
        status=invitation.status,
    )


# -----------------------
# Accept invitation -> new session with the project's configuration
# -----------------------
@router.post("/{invitation_id}/accept", response_model=InvitationAcceptResult)
async def accept_invitation(
    invitation_id: str,
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
):
    context = await workflow.accept_invitation(invitation_id)
    invitation, _ = workflow.get_invitation(invitation_id)
    return InvitationAcceptResult(
        access_token=create_session_token(context),
        project_id=invitation.project_id,
        has_inherited_config=context.has_inherited_config,
    )


# -----------------------
# Reject invitation
# -----------------------
@router.post("/{invitation_id}/reject", response_model=InvitationRead)
async def reject_invitation(
    invitation_id: str,
    workflow: InvitationWorkflow = Depends(get_invitation_workflow),
):
    return await workflow.reject_invitation(invitation_id)
