from typing import Any, List, Optional
from fastapi import HTTPException, status


class ApiError(HTTPException):
    """HTTP error carrying a client-facing message.

    Services raise these and let them propagate; the exception handlers in
    ``main`` serialize them into the ``{success: false, message}`` envelope.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None,
                 status_code: Optional[int] = None, headers: Optional[dict] = None):
        code = status_code or type(self).status_code
        self.message = message or self.default_message
        self.errors = errors or []
        super().__init__(status_code=code, detail=self.message, headers=headers)


class ValidationError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "All fields are required"


class Conflict(ApiError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "User with this email or username already exists"


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "User does not exist"


class InvalidCredentials(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid user credentials"


class InvalidToken(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid or expired token"


class Unauthorized(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized request"


class TokenReuseOrExpiry(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Refresh token is expired or used"


class UpstreamFailure(ApiError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Upstream service failed"
