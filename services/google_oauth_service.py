# services/google_oauth_service.py
import logging
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

import httpx

from core.config import settings
from core.errors import OAuthExchangeError
from models.models import utc_now
from schemas.project_data_schema import CredentialSet
from services.session_service import TokenBundle

logger = logging.getLogger(__name__)

CONSENT_SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/contacts.readonly",
    "https://www.googleapis.com/auth/tasks",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]


class GoogleOAuthService:
    """Authorization-code flow against Google's OAuth endpoints for one credential set."""

    def __init__(self, credentials: CredentialSet, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.credentials = credentials
        self.transport = transport

    def get_auth_url(self, redirect_uri: str, state: Optional[str] = None) -> str:
        params = {
            "client_id": self.credentials.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(CONSENT_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "false",
        }
        if state:
            params["state"] = state
        return str(httpx.URL(settings.GOOGLE_OAUTH_AUTH_URL, params=params))

    async def _post_or_get(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=settings.REMOTE_TIMEOUT_SECONDS, transport=self.transport) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.warning("Google OAuth endpoint returned %s", e.response.status_code)
            raise OAuthExchangeError() from e
        except (httpx.TransportError, ValueError) as e:
            logger.warning("Google OAuth request failed: %s", e)
            raise OAuthExchangeError() from e

    # ============================================================
    # ✅ Code exchange
    # ============================================================
    async def exchange_code(self, code: str, redirect_uri: str) -> Tuple[TokenBundle, Optional[str]]:
        """Returns the token bundle and the ID token (if Google sent one)."""
        body = await self._post_or_get(
            "POST",
            settings.GOOGLE_OAUTH_TOKEN_URL,
            data={
                "code": code,
                "client_id": self.credentials.client_id,
                "client_secret": self.credentials.client_secret,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        if not body.get("access_token"):
            raise OAuthExchangeError("Google did not return an access token.")

        expires_in = body.get("expires_in")
        tokens = TokenBundle(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            scope=body.get("scope", ""),
            expires_at=utc_now() + timedelta(seconds=int(expires_in)) if expires_in else None,
        )
        logger.info(
            "OAuth tokens received (refresh token: %s, scopes: %s)",
            bool(tokens.refresh_token),
            len(tokens.scope.split()),
        )
        return tokens, body.get("id_token")

    # ============================================================
    # ✅ ID token verification
    # ============================================================
    async def verify_id_token(self, id_token: str) -> Dict[str, Optional[str]]:
        claims = await self._post_or_get("GET", settings.GOOGLE_TOKENINFO_URL, params={"id_token": id_token})
        if claims.get("aud") != self.credentials.client_id:
            raise OAuthExchangeError("The ID token was issued for a different client.")
        if not claims.get("email"):
            raise OAuthExchangeError("The ID token carries no email address.")
        return {
            "email": claims["email"],
            "first_name": claims.get("given_name"),
            "last_name": claims.get("family_name"),
            "profile_image_url": claims.get("picture"),
        }
