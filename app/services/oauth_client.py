"""
OAuth Client - HTTP client for the upstream authorization and token endpoints.

Token endpoint responses come in two shapes, modelled as separate types:
- TokenGrant: {access_token, refresh_token?, expires_in?, open_id?}
- TokenErrorBody: {error, error_description?}

Anything else (transport failure, non-JSON body, neither shape) raises
OAuthRequestError.

The authorization redirect carries a signed state value of the form
``nonce|user_id|signature`` so the callback knows which user to attach the
credential to and can reject forged callbacks.
"""

import hashlib
import hmac
import logging
import secrets
from typing import Any, Optional, Union
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ValidationError

from app.config import (
    REVOKED_DESCRIPTION_MARKERS,
    REVOKED_ERROR_CODES,
    OAuthProviderConfig,
    get_settings,
)

logger = logging.getLogger(__name__)


class TokenGrant(BaseModel):
    """Successful token response."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None  # Seconds
    open_id: Optional[str] = None


class TokenErrorBody(BaseModel):
    """Error response from the token endpoint."""

    error: str
    error_description: Optional[str] = None

    @property
    def is_revocation(self) -> bool:
        """Whether the refresh token itself is invalid, expired or revoked."""
        if self.error in REVOKED_ERROR_CODES:
            return True
        description = (self.error_description or "").lower()
        return any(marker in description for marker in REVOKED_DESCRIPTION_MARKERS)

    def describe(self) -> str:
        return self.error_description or self.error


TokenResponse = Union[TokenGrant, TokenErrorBody]


class OAuthRequestError(Exception):
    """Raised when a token request fails without a usable upstream answer."""


class InvalidStateError(Exception):
    """The state returned to the authorization callback was not issued by us."""


def parse_token_response(data: Any) -> TokenResponse:
    """
    Classify a decoded token endpoint body.

    Args:
        data: Decoded JSON body

    Returns:
        TokenGrant or TokenErrorBody

    Raises:
        OAuthRequestError: If the body matches neither shape
    """
    if not isinstance(data, dict):
        raise OAuthRequestError(f"Unexpected token response type: {type(data).__name__}")

    try:
        if data.get("error"):
            return TokenErrorBody(
                error=str(data["error"]),
                error_description=data.get("error_description"),
            )
        if data.get("access_token"):
            return TokenGrant.model_validate(data)
    except ValidationError as e:
        raise OAuthRequestError(f"Malformed token response: {e}") from e

    raise OAuthRequestError("Token response has neither access_token nor error")


def _state_signature(provider: OAuthProviderConfig, payload: str) -> str:
    key = (provider.client_secret or "").encode()
    return hmac.new(key, payload.encode(), hashlib.sha256).hexdigest()


def sign_state(provider: OAuthProviderConfig, user_id: str) -> str:
    """Build the state value sent with the authorization redirect."""
    payload = f"{secrets.token_hex(16)}|{user_id}"
    return f"{payload}|{_state_signature(provider, payload)}"


def read_state(provider: OAuthProviderConfig, state: str) -> str:
    """
    Verify a state value and return the user id it was issued for.

    Raises:
        InvalidStateError: If the value is malformed or its signature does not match
    """
    payload, _, signature = state.rpartition("|")
    nonce, _, user_id = payload.partition("|")
    if not (nonce and user_id and signature):
        raise InvalidStateError("Malformed state")
    if not hmac.compare_digest(signature, _state_signature(provider, payload)):
        raise InvalidStateError("State signature mismatch")
    return user_id


class OAuthClient:
    """
    Calls a provider's token endpoint.

    A shared httpx.AsyncClient can be injected (tests pass one built on
    httpx.MockTransport); otherwise a client is opened per request.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: Optional[float] = None,
    ):
        settings = get_settings()
        self._http_client = http_client
        self.timeout = timeout_seconds or settings.oauth_http_timeout_seconds

    def authorization_url(self, provider: OAuthProviderConfig, user_id: str) -> str:
        """
        Build the provider URL the user's browser is redirected to.

        Raises:
            OAuthRequestError: If the provider lacks the client key or redirect URI
        """
        if not provider.can_authorize:
            raise OAuthRequestError(f"OAuth authorization for {provider.name} is not configured")

        query = urlencode(
            {
                "client_key": provider.client_key,
                "scope": provider.scopes,
                "response_type": "code",
                "redirect_uri": provider.redirect_uri,
                "state": sign_state(provider, user_id),
            }
        )
        return f"{provider.authorize_url}?{query}"

    async def refresh(self, provider: OAuthProviderConfig, refresh_token: str) -> TokenResponse:
        """
        Exchange a refresh token for a new access token.

        Args:
            provider: Client configuration of the provider
            refresh_token: Stored refresh token

        Returns:
            TokenGrant on success, TokenErrorBody when upstream rejects the request

        Raises:
            OAuthRequestError: On missing configuration, transport errors or
                an unreadable response
        """
        return await self._request_token(
            provider,
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
        )

    async def exchange_code(self, provider: OAuthProviderConfig, code: str) -> TokenResponse:
        """Exchange an authorization code for the first token pair."""
        if not provider.redirect_uri:
            raise OAuthRequestError(f"Redirect URI for {provider.name} is not configured")
        return await self._request_token(
            provider,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": provider.redirect_uri,
            },
        )

    async def _request_token(self, provider: OAuthProviderConfig, grant: dict) -> TokenResponse:
        if not provider.is_configured:
            raise OAuthRequestError(f"OAuth client for {provider.name} is not configured")

        form = {
            "client_key": provider.client_key,
            "client_secret": provider.client_secret,
            **grant,
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        try:
            if self._http_client is not None:
                response = await self._http_client.post(provider.token_url, data=form, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(provider.token_url, data=form, headers=headers)
        except httpx.TimeoutException as e:
            raise OAuthRequestError(f"Token request to {provider.name} timed out") from e
        except httpx.RequestError as e:
            raise OAuthRequestError(f"Token request to {provider.name} failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise OAuthRequestError(
                f"Token endpoint returned non-JSON body (HTTP {response.status_code}): "
                f"{response.text[:200]}"
            ) from e

        result = parse_token_response(data)
        if isinstance(result, TokenErrorBody):
            logger.warning(
                f"{provider.name} {grant['grant_type']} rejected (HTTP {response.status_code}): "
                f"{result.error} - {result.error_description}"
            )
        return result
