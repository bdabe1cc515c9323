"""
Google OAuth client for the Sheets integration.

Handles the offline-access authorization code flow with Google:
- Consent URL generation (state stored in the OAuthStateStore)
- Authorization code exchange
- Access token refresh
- Best-effort token revocation

Provider failures are classified here, once, into ExternalErrorKind values.
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import httpx
import structlog
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client

from shared.config import settings
from shared.errors import (
    AuthError,
    ExternalErrorKind,
    ExternalServiceError,
    LiveyError,
    TransientExternalError,
)
from shared.time_utils import utcnow

from .oauth_state import STATE_TTL_SECONDS, OAuthStateStore

logger = structlog.get_logger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"

# Sheets for writing rows, drive.file to reach only the files this app creates
SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
]

DEFAULT_TOKEN_LIFETIME_SECONDS = 3600
REVOKED_ERRORS = {"invalid_grant"}


class MissingRefreshTokenError(AuthError):
    code = "no_refresh_token"


@dataclass
class TokenSet:
    access_token: str
    expires_at: datetime
    refresh_token: str | None = None


class GoogleAuthClient:
    """Service for Google OAuth2 offline access on behalf of a seller."""

    def __init__(
        self,
        state_store: OAuthStateStore,
        client_id: str = "",
        client_secret: str = "",
        redirect_uri: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.state_store = state_store
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, state_store: OAuthStateStore) -> "GoogleAuthClient":
        return cls(
            state_store,
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=settings.GOOGLE_REDIRECT_URI,
            timeout=settings.EXTERNAL_HTTP_TIMEOUT_SECONDS,
        )

    def _oauth_session(self) -> AsyncOAuth2Client:
        if not all([self.client_id, self.client_secret, self.redirect_uri]):
            raise LiveyError(
                "Missing Google OAuth configuration. "
                "Set GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, and GOOGLE_REDIRECT_URI",
                code="oauth_not_configured",
            )
        return AsyncOAuth2Client(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=" ".join(SCOPES),
            redirect_uri=self.redirect_uri,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def get_auth_url(self, seller_id: str) -> str:
        """
        Generate the Google consent URL for a seller.

        access_type=offline asks for a refresh token; prompt=consent forces the
        consent screen so Google issues one even when the seller re-connects.
        """
        session = self._oauth_session()
        state = secrets.token_urlsafe(32)
        await self.state_store.put(state, seller_id, STATE_TTL_SECONDS)

        async with session:
            url, _ = session.create_authorization_url(
                GOOGLE_AUTH_URL,
                state=state,
                access_type="offline",
                prompt="consent",
            )

        logger.info("oauth_url_generated", seller_id=seller_id)
        return url

    async def validate_state(self, state: str) -> str | None:
        """Consume a state token. Returns the seller id, or None if unknown or expired."""
        return await self.state_store.take_once(state)

    async def exchange_code_for_tokens(self, code: str) -> TokenSet:
        """
        Exchange an authorization code for access and refresh tokens.

        Raises:
            MissingRefreshTokenError: Google did not return a refresh token
            ExternalServiceError: the exchange failed
        """
        async with self._oauth_session() as session:
            token = await self._call_token_endpoint(
                session.fetch_token(GOOGLE_TOKEN_URL, code=code),
                "Failed to exchange code for tokens",
            )

        tokens = self._token_set(token)
        logger.info("oauth_token_exchange_success", has_refresh_token=bool(tokens.refresh_token))
        if not tokens.refresh_token:
            raise MissingRefreshTokenError("Google did not return a refresh token")
        return tokens

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        """
        Mint a new access token.

        Raises:
            PermanentExternalError: kind REVOKED when Google rejects the grant
            TransientExternalError: any other failure
        """
        async with self._oauth_session() as session:
            token = await self._call_token_endpoint(
                session.refresh_token(GOOGLE_TOKEN_URL, refresh_token=refresh_token),
                "Failed to refresh access token",
            )

        tokens = self._token_set(token)
        # Google keeps the old refresh token valid unless it sends a new one
        if tokens.refresh_token == refresh_token:
            tokens.refresh_token = None
        logger.info("access_token_refreshed", expires_at=tokens.expires_at.isoformat())
        return tokens

    async def revoke_token(self, token: str) -> bool:
        """Best effort, for the disconnect flow. Never raises."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(GOOGLE_REVOKE_URL, data={"token": token})
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("token_revocation_failed", error=str(e))
            return False
        logger.info("token_revoked")
        return True

    async def _call_token_endpoint(self, request, failure_message: str) -> dict:
        try:
            return await request
        except OAuthError as e:
            raise self._classify_oauth_error(e, failure_message) from e
        except httpx.TimeoutException as e:
            logger.error("oauth_token_request_timeout", error=str(e))
            raise TransientExternalError(ExternalErrorKind.TRANSIENT, f"{failure_message}: timeout") from e
        except httpx.HTTPError as e:
            logger.error("oauth_token_request_failed", error=str(e))
            raise TransientExternalError(ExternalErrorKind.TRANSIENT, f"{failure_message}: {e}") from e
        except ValueError as e:
            # Non-JSON body from the token endpoint
            logger.error("oauth_token_response_malformed", error=str(e))
            raise TransientExternalError(ExternalErrorKind.TRANSIENT, f"{failure_message}: malformed response") from e

    @staticmethod
    def _classify_oauth_error(error: OAuthError, failure_message: str) -> ExternalServiceError:
        description = error.description or ""
        if error.error in REVOKED_ERRORS or "revoked" in description.lower():
            logger.warning("refresh_token_revoked", error=error.error, description=description)
            return ExternalServiceError.classify(ExternalErrorKind.REVOKED, "REFRESH_TOKEN_REVOKED")

        logger.error("oauth_token_request_rejected", error=error.error, description=description)
        return ExternalServiceError.classify(
            ExternalErrorKind.TRANSIENT, f"{failure_message}: {error.error} {description}".strip()
        )

    @staticmethod
    def _token_set(token: dict) -> TokenSet:
        if not token.get("access_token"):
            raise TransientExternalError(ExternalErrorKind.TRANSIENT, "Token response without access_token")

        if token.get("expires_at"):
            expires_at = datetime.fromtimestamp(int(token["expires_at"]), tz=timezone.utc)
        else:
            lifetime = int(token.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS)
            expires_at = utcnow() + timedelta(seconds=lifetime)

        return TokenSet(
            access_token=token["access_token"],
            expires_at=expires_at,
            refresh_token=token.get("refresh_token"),
        )
