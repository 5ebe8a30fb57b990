# core/errors.py
import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ============================================================
# ✅ Domain errors
# ============================================================
class ProjectFlowError(Exception):
    """
    Base class for errors that are reported to the caller as a structured
    result. `help_text` and `suggestions` carry remediation hints for users
    who have to sort out cross-account setup on their own.
    """

    status_code: int = 400
    error: str = "Request failed"
    error_type: str = "error"
    default_message: str = "The request could not be completed."
    default_help_text: Optional[str] = None
    default_suggestions: List[str] = []

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        help_text: Optional[str] = None,
        suggestions: Optional[List[str]] = None,
    ):
        self.message = message or self.default_message
        self.help_text = help_text if help_text is not None else self.default_help_text
        self.suggestions = list(suggestions if suggestions is not None else self.default_suggestions)
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {
            "ok": False,
            "error": self.error,
            "message": self.message,
            "errorType": self.error_type,
        }
        if self.help_text:
            body["helpText"] = self.help_text
        if self.suggestions:
            body["suggestions"] = self.suggestions
        return body


# -----------------------
# Access
# -----------------------
class AuthenticationRequired(ProjectFlowError):
    status_code = 401
    error = "Authentication required"
    error_type = "authentication_required"
    default_message = "Please sign in to continue."


class AccessDenied(ProjectFlowError):
    status_code = 403
    error = "Access denied"
    error_type = "access_denied"
    default_message = "You do not have access to this project."


# -----------------------
# Not found
# -----------------------
class ProjectNotFound(ProjectFlowError):
    status_code = 404
    error = "Project not found"
    error_type = "project_not_found"
    default_message = "Project not found."


class TaskNotFound(ProjectFlowError):
    status_code = 404
    error = "Task not found"
    error_type = "task_not_found"
    default_message = "Task not found."


class SuggestionNotFound(ProjectFlowError):
    status_code = 404
    error = "Suggestion not found"
    error_type = "suggestion_not_found"
    default_message = "AI suggestion not found."


class InvitationNotFound(ProjectFlowError):
    status_code = 404
    error = "Invitation not found"
    error_type = "invitation_not_found"
    default_message = "Invitation not found."


# -----------------------
# Concurrency
# -----------------------
class Conflict(ProjectFlowError):
    status_code = 409
    error = "Conflict"
    error_type = "conflict"
    default_message = "The project was changed by someone else while you were editing it."
    default_help_text = "Reload the project and apply your change again."


# -----------------------
# Invitation workflow
# -----------------------
class AlreadyProcessed(ProjectFlowError):
    status_code = 400
    error = "Invitation already processed"
    error_type = "already_processed"
    default_message = "This invitation has already been processed."


class NoInvitationFound(ProjectFlowError):
    status_code = 403
    error = "Access Denied"
    error_type = "no_invitation"
    default_message = "No project invitations found for this email."
    default_help_text = (
        "Ask your project owner to send you an invitation first. They can invite "
        "you by entering your email address in their project settings."
    )
    default_suggestions = [
        "Double-check your email address for typos",
        "Contact your project owner to confirm they sent an invitation",
        "Check if you might have been invited with a different email address",
    ]


class OwnerSetupIncomplete(ProjectFlowError):
    status_code = 403
    error = "Invitation Pending"
    error_type = "owner_setup_required"
    default_message = (
        "You have a pending invitation, but the project owner hasn't finished "
        "setting up their Google API configuration yet."
    )
    default_help_text = (
        "Please ask your project owner to complete their Google API setup first. "
        "Once they do, you'll automatically gain access."
    )
    default_suggestions = [
        "Contact your project owner about completing their setup",
        "Try again later after they've configured their Google APIs",
    ]


class DuplicateInvitation(ProjectFlowError):
    status_code = 409
    error = "Invitation already exists"
    error_type = "duplicate_invitation"
    default_message = "This email already has a pending invitation or membership for the project."


class InvalidInvitationRole(ProjectFlowError):
    status_code = 400
    error = "Invalid role"
    error_type = "invalid_role"
    default_message = "Members can only be invited as admin or member."


class OwnerMembershipRequired(ProjectFlowError):
    status_code = 400
    error = "Owner cannot be removed"
    error_type = "owner_membership_required"
    default_message = "The project owner's membership cannot be removed while the project exists."


# -----------------------
# Credentials / setup
# -----------------------
class GmailRequiredForOwner(ProjectFlowError):
    status_code = 400
    error = "Gmail Required for Project Owners"
    error_type = "gmail_required_for_owner"
    default_message = "Project owners must use a Gmail address to set up Google API credentials."
    default_help_text = (
        "This ensures proper integration with Google Workspace services. "
        "Team members can use any email provider."
    )


class CredentialsNotConfigured(ProjectFlowError):
    status_code = 400
    error = "Credentials not configured"
    error_type = "credentials_not_configured"
    default_message = "Google API credentials are not configured for this session or project."
    default_help_text = "Ask your project owner to finish setup, or configure your own credentials."


# -----------------------
# External collaborators
# -----------------------
class RemoteStoreError(ProjectFlowError):
    status_code = 502
    error = "Storage error"
    error_type = "remote_store_error"
    default_message = "The project storage service could not complete the request."
    default_help_text = "Check that your Google Drive access is still authorised and try again."


class OAuthExchangeError(ProjectFlowError):
    status_code = 400
    error = "Authentication failed"
    error_type = "oauth_failed"
    default_message = "Failed to exchange the authorization code for tokens."


class AIAnalysisUnavailable(ProjectFlowError):
    status_code = 503
    error = "AI analysis unavailable"
    error_type = "ai_unavailable"
    default_message = "AI analysis is currently unavailable."
    default_help_text = "Check your Google AI (Gemini) API key and try again later."


# ============================================================
# ✅ Exception handler registration
# ============================================================
async def project_flow_error_handler(request: Request, exc: ProjectFlowError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProjectFlowError, project_flow_error_handler)
