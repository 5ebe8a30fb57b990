import os
import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

logger = logging.getLogger(__name__)


class EmailService:
    """
    Transactional email for ProjectFlow, sent through SendGrid.
    Sending is best-effort: failures are logged and reported as False,
    never raised to the workflow that asked for the email.
    """

    def __init__(self, api_key: Optional[str] = None, sender_email: Optional[str] = None):
        self.sendgrid_api_key = api_key or os.getenv("SENDGRID_API_KEY")
        self.sender_email = sender_email or os.getenv("MAIL_FROM")

        self.enabled = bool(self.sendgrid_api_key and self.sender_email)
        if not self.enabled:
            logger.warning("📧 Email service not configured. Missing SENDGRID_API_KEY or MAIL_FROM.")
        else:
            logger.info("📧 Email service configured and ready. Sender: %s", self.sender_email)

    # ============================================================
    # ✅ Invitation email bodies
    # ============================================================
    @staticmethod
    def build_invitation_bodies(
        project_name: str,
        project_id: Optional[str],
        inviter_name: str,
        role: str,
        invite_link: str,
    ) -> tuple[str, str, str]:
        """Returns (subject, html, text)."""
        subject = f'You\'re invited to join "{project_name}" on ProjectFlow'

        project_id_html = (
            f'<p><strong>Project ID:</strong> <code style="background: #e5e7eb; padding: 2px 6px;">{project_id}</code></p>'
            if project_id
            else ""
        )
        alternative_html = (
            f"""
            <div style="background: #fef3c7; padding: 15px; border-radius: 6px; margin: 20px 0; border-left: 4px solid #f59e0b;">
                <p style="margin: 0;"><strong>Alternative Access:</strong></p>
                <p style="margin: 5px 0 0 0;">If the invitation link does not work, open ProjectFlow,
                choose "Member Login" and sign in with this email address.
                Your project ID is <strong>{project_id}</strong>.</p>
            </div>
            """
            if project_id
            else ""
        )

        html_content = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; color: #333;">
            <h2 style="color: #2563eb;">You're invited to collaborate!</h2>
            <p><strong>{inviter_name}</strong> has invited you to join the project
            <strong>"{project_name}"</strong> as <strong>{role.title()}</strong>.</p>

            <div style="background: #f8fafc; padding: 20px; border-radius: 8px; margin: 20px 0;">
                <h3 style="margin-top: 0;">Project: {project_name}</h3>
                <p><strong>Role:</strong> {role.title()}</p>
                <p><strong>Invited by:</strong> {inviter_name}</p>
                {project_id_html}
            </div>

            <p style="text-align: center; margin: 30px 0;">
                <a href="{invite_link}" style="
                    background-color: #2563eb;
                    color: white;
                    padding: 12px 24px;
                    text-decoration: none;
                    border-radius: 6px;
                    font-weight: bold;
                    display: inline-block;
                ">Accept Invitation</a>
            </p>

            <p>If the button doesn't work, copy and paste this link into your browser:</p>
            <p style="word-break: break-all; color: #555;">{invite_link}</p>
            {alternative_html}
            <hr style="border:none; border-top:1px solid #eee; margin: 24px 0;">
            <p style="color: #6b7280; font-size: 14px;">Project data is stored in the project owner's Google Drive.</p>
        </div>
        """

        text_lines = [
            f'You\'re invited to join "{project_name}" on ProjectFlow',
            "",
            f'{inviter_name} has invited you to join the project "{project_name}" as {role.title()}.',
        ]
        if project_id:
            text_lines.append(f"Project ID: {project_id}")
        text_lines += ["", f"Accept your invitation here: {invite_link}"]
        if project_id:
            text_lines += [
                "",
                "Alternative Access:",
                'Open ProjectFlow, choose "Member Login" and sign in with this email address.',
            ]
        return subject, html_content, "\n".join(text_lines)

    # ============================================================
    # ✅ Send Invitation Email (synchronous, run in the threadpool)
    # ============================================================
    def send_invitation_email(
        self,
        to_email: str,
        project_name: str,
        inviter_name: str,
        role: str,
        invite_link: str,
        project_id: Optional[str] = None,
    ) -> bool:
        if not self.enabled:
            # Development fallback (no SendGrid setup)
            logger.info("📨 [Mock Email] To: %s", to_email)
            logger.info("Link: %s", invite_link)
            logger.info("Role: %s | Project: %s", role, project_name)
            return True

        subject, html_content, text_content = self.build_invitation_bodies(
            project_name, project_id, inviter_name, role, invite_link
        )

        try:
            message = Mail(
                from_email=self.sender_email,
                to_emails=to_email,
                subject=subject,
                html_content=html_content,
                plain_text_content=text_content,
            )
            sg = SendGridAPIClient(self.sendgrid_api_key)
            response = sg.send(message)
            logger.info("✅ Invitation email sent to %s. Status: %s", to_email, response.status_code)
            return True
        except Exception as e:
            logger.exception("❌ Failed to send invitation email to %s: %s", to_email, e)
            return False


# ============================================================
# ✅ Global instance for app-wide import
# ============================================================
email_service = EmailService()
