"""Auth collaborator: current owner id and current Drive access token

Sessions are owned by an external auth provider. The pipeline only ever asks
for the current user id and the current provider access token, and asks again
before every network call because the token may be refreshed or revoked
between calls.
"""
import logging
from abc import ABC, abstractmethod
from datetime import timezone
from typing import Optional

from fastapi import Header, HTTPException
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.credentials import Credentials
from sqlalchemy.orm import Session

from dailyreel.core.config import settings
from dailyreel.db.helpers import delete_oauth_token, get_decrypted_oauth_token, save_oauth_token

security_logger = logging.getLogger("security")


class AuthProvider(ABC):
    """Interface the pipeline uses to reach the external auth provider"""

    @abstractmethod
    def current_user_id(self) -> str:
        pass

    @abstractmethod
    def current_access_token(self) -> Optional[str]:
        """Return a usable access token, or None when Drive is not connected"""
        pass

    @abstractmethod
    def sign_out(self) -> None:
        pass


class StoredCredentialsAuthProvider(AuthProvider):
    """Reads the owner's stored Google credentials and refreshes them when expired"""

    def __init__(self, user_id: str, db: Session):
        self.user_id = user_id
        self.db = db

    def current_user_id(self) -> str:
        return self.user_id

    def current_access_token(self) -> Optional[str]:
        token_data = get_decrypted_oauth_token(self.user_id, db=self.db)
        if not token_data or not token_data.get("access_token"):
            return None

        creds = self._to_credentials(token_data)
        if not creds.expired:
            return creds.token

        if not creds.refresh_token:
            security_logger.warning(f"Drive token expired for user {self.user_id} and no refresh token is stored")
            return None

        try:
            security_logger.debug(f"Refreshing expired Drive token for user {self.user_id}")
            creds.refresh(GoogleRequest())
        except RefreshError as e:
            security_logger.warning(f"Drive token refresh failed for user {self.user_id}: {e}")
            return None

        if not creds.token:
            return None

        save_oauth_token(
            user_id=self.user_id,
            access_token=creds.token,
            refresh_token=creds.refresh_token,
            expires_at=creds.expiry.replace(tzinfo=timezone.utc) if creds.expiry else None,
            extra_data=token_data["extra_data"],
            db=self.db
        )
        return creds.token

    def sign_out(self) -> None:
        delete_oauth_token(self.user_id, db=self.db)
        security_logger.info(f"Drive credentials removed for user {self.user_id}")

    def _to_credentials(self, token_data) -> Credentials:
        creds = Credentials(
            token=token_data["access_token"],
            refresh_token=token_data["refresh_token"],
            token_uri=settings.GOOGLE_TOKEN_URI,
            client_id=settings.GOOGLE_CLIENT_ID or None,
            client_secret=settings.GOOGLE_CLIENT_SECRET or None,
            scopes=token_data["extra_data"].get("scopes") or None,
        )
        expires_at = token_data.get("expires_at")
        if expires_at is not None:
            # google-auth compares expiry as a naive UTC datetime
            if expires_at.tzinfo is not None:
                expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
            creds.expiry = expires_at
        return creds


def require_auth(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """Dependency: owner id forwarded by the auth gateway"""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(401, "Not authenticated. Please log in.")
    return x_user_id.strip()
