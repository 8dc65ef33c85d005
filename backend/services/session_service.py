"""Session lifecycle: login, logout, refresh-token rotation and password change.

An account is either anonymous (no stored refresh token) or authenticated
(exactly one stored refresh token). Login and refresh replace the stored
token; logout and password change clear it. A refresh token is honored only
while it is the one stored on the account.
"""
import logging
from typing import Optional

from core.errors import (
    ApiError,
    InvalidCredentials,
    NotFound,
    TokenReuseOrExpiry,
    Unauthorized,
    UpstreamFailure,
)
from core.security import TokenService, get_password_hash_async
from db.credential_store import CredentialStore
from schemas.user_schema import AccountInDB, SessionTokens

logger = logging.getLogger(__name__)


class SessionManager:
    def __init__(self, store: CredentialStore, tokens: TokenService):
        self._store = store
        self._tokens = tokens

    def _issue_pair(self, account: AccountInDB) -> tuple:
        access_token = self._tokens.issue_access_token(
            account.id, username=account.username, email=account.email, full_name=account.full_name
        )
        refresh_token = self._tokens.issue_refresh_token(account.id)
        return access_token, refresh_token

    async def login(self, identifier: str, password: str) -> SessionTokens:
        """Verify credentials and start a new session, replacing any prior one."""
        try:
            account = await self._store.find_by_username_or_email(identifier.strip().lower())
            if account is None:
                raise NotFound("User does not exist")
            if not await self._store.verify_password(account.id, password):
                raise InvalidCredentials("Invalid user credentials")
            access_token, refresh_token = self._issue_pair(account)
            if not await self._store.update_refresh_token(account.id, refresh_token):
                raise NotFound("User does not exist")
            logger.info(f"Login succeeded for account {account.id}")
            return SessionTokens(access_token=access_token, refresh_token=refresh_token, user=account.to_public())
        except ApiError:
            raise
        except Exception as e:
            logger.error(f"Error logging in: {e}")
            raise UpstreamFailure("Internal server error", status_code=500) from e

    async def logout(self, account_id: str) -> None:
        """Clear the stored refresh token; the caller is already authenticated."""
        try:
            await self._store.update_refresh_token(account_id, None)
            logger.info(f"Logout for account {account_id}")
        except ApiError:
            raise
        except Exception as e:
            logger.error(f"Error logging out account {account_id}: {e}")
            raise UpstreamFailure("Internal server error", status_code=500) from e

    async def refresh(self, presented_token: Optional[str]) -> SessionTokens:
        """Exchange the current refresh token for a new access/refresh pair."""
        if not presented_token:
            raise Unauthorized("Unauthorized request")
        claims = self._tokens.verify_refresh_token(presented_token)
        try:
            account = await self._store.find_by_id(claims["sub"])
            if account is None:
                raise NotFound("Invalid refresh token")
            if account.refresh_token != presented_token:
                logger.warning(f"Stale refresh token presented for account {account.id}")
                raise TokenReuseOrExpiry("Refresh token is expired or used")
            access_token, refresh_token = self._issue_pair(account)
            # Compare-and-set: a concurrent refresh with the same token loses here
            if not await self._store.rotate_refresh_token(account.id, presented_token, refresh_token):
                logger.warning(f"Refresh token rotated concurrently for account {account.id}")
                raise TokenReuseOrExpiry("Refresh token is expired or used")
            return SessionTokens(access_token=access_token, refresh_token=refresh_token)
        except ApiError:
            raise
        except Exception as e:
            logger.error(f"Error refreshing session: {e}")
            raise UpstreamFailure("Internal server error", status_code=500) from e

    async def change_password(self, account_id: str, old_password: str, new_password: str) -> None:
        """Replace the password hash and end the current session."""
        try:
            if not await self._store.verify_password(account_id, old_password):
                raise InvalidCredentials("Invalid old password")
            new_hash = await get_password_hash_async(new_password)
            if not await self._store.update_password_hash(account_id, new_hash):
                raise NotFound("User does not exist")
            await self._store.update_refresh_token(account_id, None)
            logger.info(f"Password changed for account {account_id}")
        except ApiError:
            raise
        except Exception as e:
            logger.error(f"Error changing password for account {account_id}: {e}")
            raise UpstreamFailure("Internal server error", status_code=500) from e
