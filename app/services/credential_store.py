"""
Credential Store - persistence for OAuth credentials.

One row per (user_id, provider). Each operation runs in its own short-lived
session so the store can be shared across concurrent requests.
"""

import logging
from typing import Any, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from app.db.session import get_engine
from app.models.common import as_utc, utcnow
from app.models.credential import OAuthCredential

logger = logging.getLogger(__name__)

_MUTABLE_FIELDS = {"access_token", "refresh_token", "expires_at", "open_id"}


class CredentialStore:
    """SQLModel-backed storage for OAuthCredential rows."""

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine or get_engine()

    def _select(self, session: Session, user_id: str, provider: str) -> Optional[OAuthCredential]:
        statement = select(OAuthCredential).where(
            OAuthCredential.user_id == user_id,
            OAuthCredential.provider == provider,
        )
        return session.exec(statement).first()

    def find_credential(self, user_id: str, provider: str) -> Optional[OAuthCredential]:
        """Return the credential for (user_id, provider), or None."""
        with Session(self._engine) as session:
            return self._select(session, user_id, provider)

    def has_credential(self, user_id: str, provider: str) -> bool:
        return self.find_credential(user_id, provider) is not None

    def upsert_credential(self, user_id: str, provider: str, **fields: Any) -> OAuthCredential:
        """
        Create or update the credential for (user_id, provider).

        Args:
            user_id: Owner of the credential
            provider: Provider tag
            **fields: Any of access_token, refresh_token, expires_at (naive
                values are taken as UTC), open_id

        Returns:
            The stored credential
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown credential fields: {sorted(unknown)}")
        if fields.get("expires_at") is not None:
            fields["expires_at"] = as_utc(fields["expires_at"])

        with Session(self._engine) as session:
            credential = self._select(session, user_id, provider)
            if credential is None:
                if not fields.get("access_token"):
                    raise ValueError("access_token is required to create a credential")
                credential = OAuthCredential(user_id=user_id, provider=provider, **fields)
            else:
                for name, value in fields.items():
                    setattr(credential, name, value)
                credential.updated_at = utcnow()

            session.add(credential)
            session.commit()
            session.refresh(credential)
            return credential

    def delete_credential(self, user_id: str, provider: str) -> bool:
        """
        Delete the credential for (user_id, provider).

        Returns:
            True if a row was deleted, False if none existed
        """
        with Session(self._engine) as session:
            credential = self._select(session, user_id, provider)
            if credential is None:
                return False
            session.delete(credential)
            session.commit()

        logger.info(f"Deleted {provider} credential for user {user_id}")
        return True
