from functools import lru_cache
from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from core.config import Settings, get_settings
from core.errors import InvalidToken, Unauthorized
from core.security import TokenService
from db.credential_store import CredentialStore, build_credential_store
from schemas.user_schema import AccountInDB
from services.media_service import MediaUploader
from services.session_service import SessionManager
from utils.responses import ACCESS_TOKEN_COOKIE
import logging

logger = logging.getLogger(__name__)

# auto_error=False: the token may also arrive in the accessToken cookie
bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_token_service() -> TokenService:
    return TokenService(get_settings())


@lru_cache
def get_credential_store() -> CredentialStore:
    return build_credential_store(get_settings())


@lru_cache
def get_media_uploader() -> MediaUploader:
    return MediaUploader(get_settings())


def get_session_manager(store: CredentialStore = Depends(get_credential_store),
                        tokens: TokenService = Depends(get_token_service)) -> SessionManager:
    return SessionManager(store, tokens)


def extract_access_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if token:
        return token
    if credentials is not None and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return None


async def get_current_account(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
    store: CredentialStore = Depends(get_credential_store),
) -> AccountInDB:
    token = extract_access_token(request, credentials)
    if not token:
        raise Unauthorized("Unauthorized request", headers={"WWW-Authenticate": "Bearer"})
    payload = tokens.verify_access_token(token)
    account = await store.find_by_id(payload["sub"])
    if account is None:
        logger.warning(f"Access token for unknown account {payload['sub']}")
        raise InvalidToken("Invalid access token", headers={"WWW-Authenticate": "Bearer"})
    return account


def settings_dependency() -> Settings:
    return get_settings()
