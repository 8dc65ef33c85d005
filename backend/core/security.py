from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
import uuid
from jose import JWTError, jwt
from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool
from core.config import Settings
from core.errors import InvalidToken

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.warning(f"Password hash could not be verified: {e}")
        return False

def get_password_hash(password: str) -> str:
    """Generate password hash"""
    return pwd_context.hash(password)

async def verify_password_async(plain_password: str, hashed_password: str) -> bool:
    # bcrypt is CPU bound; keep it off the event loop
    return await run_in_threadpool(verify_password, plain_password, hashed_password)

async def get_password_hash_async(password: str) -> str:
    return await run_in_threadpool(get_password_hash, password)


class TokenService:
    """Issues and verifies signed access and refresh tokens.

    Access and refresh tokens are signed with separate secrets so either one
    can be rotated without invalidating the other kind. Every token carries a
    random ``jti`` so two tokens minted in the same second never collide.
    """

    def __init__(self, settings: Settings):
        self._algorithm = settings.ALGORITHM
        self._access_secret = settings.ACCESS_TOKEN_SECRET
        self._refresh_secret = settings.REFRESH_TOKEN_SECRET
        self._access_ttl = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self._refresh_ttl = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    def _encode(self, claims: dict, secret: str, ttl: timedelta, token_type: str) -> str:
        now = datetime.now(timezone.utc)
        to_encode = claims.copy()
        to_encode.update({
            "type": token_type,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + ttl,
        })
        return jwt.encode(to_encode, secret, algorithm=self._algorithm)

    def _decode(self, token: str, secret: str, token_type: str) -> dict:
        if not token or not isinstance(token, str):
            raise InvalidToken("Invalid token")
        try:
            payload = jwt.decode(token, secret, algorithms=[self._algorithm])
        except JWTError as e:
            logger.warning(f"JWT decode failed ({token_type}): {e}")
            raise InvalidToken(f"Invalid {token_type} token") from e
        if payload.get("type") != token_type or not payload.get("sub"):
            raise InvalidToken(f"Invalid {token_type} token")
        return payload

    def issue_access_token(self, account_id: str, username: Optional[str] = None,
                           email: Optional[str] = None, full_name: Optional[str] = None) -> str:
        """Create a short-lived access token for the account."""
        claims = {"sub": str(account_id)}
        if username is not None:
            claims["username"] = username
        if email is not None:
            claims["email"] = email
        if full_name is not None:
            claims["fullName"] = full_name
        return self._encode(claims, self._access_secret, self._access_ttl, ACCESS_TOKEN_TYPE)

    def issue_refresh_token(self, account_id: str) -> str:
        """Create a long-lived refresh token for the account."""
        return self._encode({"sub": str(account_id)}, self._refresh_secret, self._refresh_ttl, REFRESH_TOKEN_TYPE)

    def verify_access_token(self, token: str) -> dict:
        return self._decode(token, self._access_secret, ACCESS_TOKEN_TYPE)

    def verify_refresh_token(self, token: str) -> dict:
        """Return the refresh token claims or raise InvalidToken."""
        return self._decode(token, self._refresh_secret, REFRESH_TOKEN_TYPE)
