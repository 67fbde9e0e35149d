"""
Services for Clipstream.

Includes:
- Token lifecycle (credential store, OAuth client, token manager)
- Progress fan-out (job store, broker, per-connection stream)
"""

from app.services.credential_store import CredentialStore
from app.services.job_store import JobStore
from app.services.oauth_client import OAuthClient
from app.services.progress_broker import ProgressBroker, Subscription
from app.services.token_manager import (
    AuthorizationError,
    TokenErrorCode,
    TokenLifecycleError,
    TokenLifecycleManager,
)

__all__ = [
    # Token lifecycle
    "CredentialStore",
    "OAuthClient",
    "TokenLifecycleManager",
    "TokenLifecycleError",
    "TokenErrorCode",
    "AuthorizationError",
    # Progress
    "JobStore",
    "ProgressBroker",
    "Subscription",
]
