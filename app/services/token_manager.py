"""
Token Lifecycle Manager - hands out valid provider access tokens.

get_valid_token() returns the stored token while it is comfortably inside its
lifetime, refreshes it inside the safety margin, and deletes credentials that
can no longer be renewed so the user is sent back through authorization.

Failures are reported as TokenLifecycleError with a closed set of codes:
- NOT_CONNECTED: no credential (user must connect)
- TOKEN_EXPIRED: expired without a refresh token (credential deleted)
- TOKEN_REVOKED: upstream rejected the refresh token (credential deleted)
- REFRESH_FAILED: transient refresh failure (credential untouched, retry later)

connect() creates the credential from an authorization code; its failures
are reported as AuthorizationError.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from app.db.session import run_blocking
from app.models.common import as_utc, utcnow
from app.models.credential import OAuthCredential
from app.services.credential_store import CredentialStore
from app.services.oauth_client import OAuthClient, OAuthRequestError, TokenErrorBody

logger = logging.getLogger(__name__)


class TokenErrorCode(str, Enum):
    NOT_CONNECTED = "NOT_CONNECTED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    REFRESH_FAILED = "REFRESH_FAILED"

    @property
    def requires_reconnect(self) -> bool:
        """Whether the user has to authorize the provider again."""
        return self is not TokenErrorCode.REFRESH_FAILED


class TokenLifecycleError(Exception):
    """Raised when no valid access token can be produced."""

    def __init__(self, message: str, code: TokenErrorCode):
        super().__init__(message)
        self.code = code


class AuthorizationError(Exception):
    """Raised when an authorization code cannot be turned into a credential."""

    def __init__(self, message: str, reason: str = "token_error"):
        super().__init__(message)
        self.reason = reason


class TokenLifecycleManager:
    """
    Produces valid access tokens for (user, provider) pairs.

    Concurrent callers for the same pair share a single in-flight refresh.
    """

    def __init__(
        self,
        store: Optional[CredentialStore] = None,
        oauth_client: Optional[OAuthClient] = None,
        expiry_margin: Optional[timedelta] = None,
        default_lifetime: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the manager.

        Args:
            store: Credential persistence (defaults to the global database)
            oauth_client: Upstream token endpoint client
            expiry_margin: Lead time before expiry at which tokens are refreshed
            default_lifetime: Token lifetime assumed when a refresh omits expires_in
            clock: Returns the current UTC time
        """
        settings = get_settings()
        self.store = store or CredentialStore()
        self.oauth_client = oauth_client or OAuthClient()
        if expiry_margin is None:
            expiry_margin = timedelta(seconds=settings.token_expiry_margin_seconds)
        if default_lifetime is None:
            default_lifetime = timedelta(seconds=settings.default_token_lifetime_seconds)
        self.expiry_margin = expiry_margin
        self.default_lifetime = default_lifetime
        self._clock = clock
        self._inflight: dict[tuple[str, str], asyncio.Task] = {}

    def is_expired(self, credential: OAuthCredential, now: Optional[datetime] = None) -> bool:
        """
        Whether the credential's token is expired or inside the safety margin.

        Credentials without expires_at are treated as valid.
        """
        if credential.expires_at is None:
            return False
        now = as_utc(now or self._clock())
        return now > as_utc(credential.expires_at) - self.expiry_margin

    async def get_valid_token(self, user_id: str, provider: str) -> str:
        """
        Get a currently valid access token, refreshing it if needed.

        Args:
            user_id: Owner of the credential
            provider: Provider tag

        Returns:
            Access token

        Raises:
            TokenLifecycleError: With one of the TokenErrorCode values
        """
        credential = await run_blocking(self.store.find_credential, user_id, provider)
        if credential is None:
            raise TokenLifecycleError(
                f"No {provider} account connected. Connect your account to share videos.",
                TokenErrorCode.NOT_CONNECTED,
            )

        if not self.is_expired(credential):
            logger.debug(f"{provider} token valid for user {user_id} (expires {credential.expires_at})")
            return credential.access_token

        logger.info(f"{provider} token expired or expiring for user {user_id}, refreshing")

        if not credential.refresh_token:
            await self._delete_quietly(user_id, provider)
            raise TokenLifecycleError(
                f"{provider} token expired and cannot be renewed. Please reconnect your account.",
                TokenErrorCode.TOKEN_EXPIRED,
            )

        return await self._refresh_coalesced(user_id, provider, credential.refresh_token)

    async def get_credential(self, user_id: str, provider: str) -> Optional[OAuthCredential]:
        return await run_blocking(self.store.find_credential, user_id, provider)

    async def is_connected(self, user_id: str, provider: str) -> bool:
        """Whether a credential exists (expiry is not checked)."""
        return await run_blocking(self.store.has_credential, user_id, provider)

    async def disconnect(self, user_id: str, provider: str) -> bool:
        """Delete the user's credential for the provider."""
        return await run_blocking(self.store.delete_credential, user_id, provider)

    def authorization_url(self, user_id: str, provider: str) -> str:
        """
        URL that starts the provider's authorization flow for a user.

        Raises:
            AuthorizationError: If the provider is unknown or not configured
        """
        provider_config = get_settings().get_provider_config(provider)
        if provider_config is None:
            raise AuthorizationError(f"Unknown provider {provider}", reason="config_error")
        try:
            return self.oauth_client.authorization_url(provider_config, user_id)
        except OAuthRequestError as e:
            raise AuthorizationError(str(e), reason="config_error") from e

    async def connect(self, user_id: str, provider: str, code: str) -> OAuthCredential:
        """
        Exchange an authorization code and store the resulting credential.

        Reconnecting replaces the stored tokens of an existing credential.

        Raises:
            AuthorizationError: If the exchange is rejected or fails, or the
                credential cannot be saved
        """
        provider_config = get_settings().get_provider_config(provider)
        if provider_config is None:
            raise AuthorizationError(f"Unknown provider {provider}", reason="config_error")

        try:
            result = await self.oauth_client.exchange_code(provider_config, code)
        except OAuthRequestError as e:
            logger.error(f"{provider} code exchange failed for user {user_id}: {e}")
            raise AuthorizationError(f"Authorization failed: {e}") from e

        if isinstance(result, TokenErrorBody):
            raise AuthorizationError(
                f"Authorization rejected: {result.describe()}",
                reason=result.describe(),
            )

        expires_at = self._clock() + timedelta(seconds=result.expires_in) if result.expires_in else None

        try:
            credential = await run_blocking(
                self.store.upsert_credential,
                user_id,
                provider,
                access_token=result.access_token,
                refresh_token=result.refresh_token,
                open_id=result.open_id,
                expires_at=expires_at,
            )
        except SQLAlchemyError as e:
            logger.exception(f"Failed to store {provider} credential for user {user_id}")
            raise AuthorizationError("Account authorized but could not be saved", reason="server_error") from e

        logger.info(f"{provider} account connected for user {user_id}")
        return credential

    async def _refresh_coalesced(self, user_id: str, provider: str, refresh_token: str) -> str:
        key = (user_id, provider)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._refresh(user_id, provider, refresh_token))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._refresh_finished(key, t))
        else:
            logger.debug(f"Joining in-flight {provider} refresh for user {user_id}")

        # A cancelled caller must not cancel the refresh other callers are awaiting
        return await asyncio.shield(task)

    def _refresh_finished(self, key: tuple[str, str], task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the exception retrieved even if every awaiting caller went away
            task.exception()

    async def _refresh(self, user_id: str, provider: str, refresh_token: str) -> str:
        provider_config = get_settings().get_provider_config(provider)
        if provider_config is None:
            raise TokenLifecycleError(
                f"No OAuth client configured for provider {provider}",
                TokenErrorCode.REFRESH_FAILED,
            )

        try:
            result = await self.oauth_client.refresh(provider_config, refresh_token)
        except OAuthRequestError as e:
            logger.error(f"{provider} token refresh failed for user {user_id}: {e}")
            raise TokenLifecycleError(f"Token refresh failed: {e}", TokenErrorCode.REFRESH_FAILED) from e

        if isinstance(result, TokenErrorBody):
            if result.is_revocation:
                await self._delete_quietly(user_id, provider)
                raise TokenLifecycleError(
                    f"Your {provider} access has expired. Please reconnect your account.",
                    TokenErrorCode.TOKEN_REVOKED,
                )
            raise TokenLifecycleError(
                f"Token refresh failed: {result.describe()}",
                TokenErrorCode.REFRESH_FAILED,
            )

        lifetime = timedelta(seconds=result.expires_in) if result.expires_in else self.default_lifetime
        expires_at = self._clock() + lifetime

        fields = {
            "access_token": result.access_token,
            # Upstream does not always rotate the refresh token
            "refresh_token": result.refresh_token or refresh_token,
            "expires_at": expires_at,
        }
        if result.open_id:
            fields["open_id"] = result.open_id

        try:
            await run_blocking(self.store.upsert_credential, user_id, provider, **fields)
        except SQLAlchemyError as e:
            logger.exception(f"Failed to persist refreshed {provider} token for user {user_id}")
            raise TokenLifecycleError(
                "Token refreshed but could not be saved",
                TokenErrorCode.REFRESH_FAILED,
            ) from e

        logger.info(f"{provider} token refreshed for user {user_id}, expires {expires_at.isoformat()}")
        return result.access_token

    async def _delete_quietly(self, user_id: str, provider: str) -> None:
        """Delete a dead credential; a failure here must not mask the token error."""
        try:
            await run_blocking(self.store.delete_credential, user_id, provider)
        except Exception:
            logger.exception(f"Failed to delete {provider} credential for user {user_id}")


# Global singleton instance
_token_manager: Optional[TokenLifecycleManager] = None


def get_token_manager() -> TokenLifecycleManager:
    """Get or create the global token manager instance."""
    global _token_manager
    if _token_manager is None:
        _token_manager = TokenLifecycleManager()
    return _token_manager
