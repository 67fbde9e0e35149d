"""
Social Accounts Router - connecting, checking and disconnecting providers.

GET    /social/{provider}/connect   redirect to the provider's consent page
GET    /social/{provider}/callback  authorization code landing; stores the credential
GET    /social/{provider}           connection status (refreshes the token if due)
DELETE /social/{provider}           remove the credential

Token failures map to two remediation paths:
- 403 <provider>_reconnect_required (NOT_CONNECTED, TOKEN_EXPIRED, TOKEN_REVOKED)
- 502 <provider>_refresh_failed (REFRESH_FAILED, safe to retry)
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import JSONResponse, RedirectResponse

from app.auth import get_current_user_id
from app.config import get_settings
from app.dependencies import get_manager
from app.models.common import as_utc
from app.schemas.responses import SocialAccountStatus, TokenErrorResponse
from app.services.oauth_client import InvalidStateError, read_state
from app.services.token_manager import AuthorizationError, TokenLifecycleError, TokenLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/social", tags=["Social Accounts"])


def _require_known_provider(provider: str) -> None:
    if get_settings().get_provider_config(provider) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown provider: {provider}",
        )


def token_error_response(provider: str, error: TokenLifecycleError) -> JSONResponse:
    """Translate a token lifecycle failure into an HTTP response."""
    if error.code.requires_reconnect:
        status_code = status.HTTP_403_FORBIDDEN
        error_key = f"{provider}_reconnect_required"
    else:
        status_code = status.HTTP_502_BAD_GATEWAY
        error_key = f"{provider}_refresh_failed"

    body = TokenErrorResponse(error=error_key, code=error.code.value, message=str(error))
    return JSONResponse(status_code=status_code, content=body.model_dump())


def frontend_redirect(provider: str, error: Optional[str] = None) -> RedirectResponse:
    """Send the browser back to the frontend with the outcome in the query string."""
    if error is None:
        query = {f"{provider}_connected": "1"}
    else:
        query = {f"{provider}_error": error}
    url = f"{get_settings().frontend_url.rstrip('/')}/?{urlencode(query)}"
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/{provider}/connect")
async def connect_social_account(
    provider: str,
    user_id: str = Depends(get_current_user_id),
    manager: TokenLifecycleManager = Depends(get_manager),
) -> RedirectResponse:
    """Start the OAuth authorization flow for the current user."""
    _require_known_provider(provider)

    try:
        url = manager.authorization_url(user_id, provider)
    except AuthorizationError as e:
        logger.error(f"Cannot start {provider} authorization: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{provider} authorization is not configured",
        )

    logger.info(f"Redirecting user {user_id} to {provider} authorization")
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/{provider}/callback")
async def social_account_callback(
    provider: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    manager: TokenLifecycleManager = Depends(get_manager),
) -> RedirectResponse:
    """
    Landing point of the provider's authorization redirect.

    Exchanges the code for tokens and stores them for the user named in the
    signed state. Every outcome redirects the browser to the frontend.
    """
    provider_config = get_settings().get_provider_config(provider)
    if provider_config is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown provider: {provider}")

    if error:
        logger.error(f"{provider} authorization denied: {error} - {error_description}")
        return frontend_redirect(provider, error_description or error)

    if not code or not state:
        logger.error(f"{provider} callback without code or state")
        return frontend_redirect(provider, "missing_params")

    try:
        user_id = read_state(provider_config, state)
    except InvalidStateError as e:
        logger.warning(f"Rejected {provider} callback: {e}")
        return frontend_redirect(provider, "invalid_state")

    try:
        await manager.connect(user_id, provider, code)
    except AuthorizationError as e:
        logger.error(f"{provider} connection failed for user {user_id}: {e}")
        return frontend_redirect(provider, e.reason)

    return frontend_redirect(provider)


@router.get(
    "/{provider}",
    response_model=SocialAccountStatus,
    responses={
        403: {"model": TokenErrorResponse, "description": "Account must be reconnected"},
        502: {"model": TokenErrorResponse, "description": "Token refresh failed, retry later"},
    },
)
async def get_social_account(
    provider: str,
    user_id: str = Depends(get_current_user_id),
    manager: TokenLifecycleManager = Depends(get_manager),
):
    """
    Check that the user's account on a provider has a usable token.

    Refreshes the token when it is about to expire.
    """
    _require_known_provider(provider)

    try:
        await manager.get_valid_token(user_id, provider)
    except TokenLifecycleError as e:
        logger.info(f"{provider} token unavailable for user {user_id}: {e.code.value}")
        return token_error_response(provider, e)

    credential = await manager.get_credential(user_id, provider)
    if credential is None:
        # Disconnected between the token check and this read
        return SocialAccountStatus(provider=provider, connected=False)

    return SocialAccountStatus(
        provider=provider,
        connected=True,
        open_id=credential.open_id,
        expires_at=as_utc(credential.expires_at) if credential.expires_at else None,
        connected_at=as_utc(credential.created_at),
        updated_at=as_utc(credential.updated_at),
    )


@router.delete("/{provider}", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_social_account(
    provider: str,
    user_id: str = Depends(get_current_user_id),
    manager: TokenLifecycleManager = Depends(get_manager),
) -> Response:
    """Remove the user's stored credential for a provider."""
    _require_known_provider(provider)

    if await manager.disconnect(user_id, provider):
        logger.info(f"User {user_id} disconnected {provider}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
