from typing import Any, List, Optional
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"


def summarize_validation_errors(errors) -> List[dict]:
    """Reduce pydantic error dicts to ``{field, msg}`` pairs safe to serialize."""
    summary = []
    for err in errors or []:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "form")]
        msg = str(err.get("msg", "Invalid value"))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        summary.append({"field": ".".join(loc), "msg": msg})
    return summary


def api_response(data: Any = None, message: str = "Success", status_code: int = 200) -> JSONResponse:
    """Success envelope: ``{statusCode, data, message, success}``."""
    content = {
        "statusCode": status_code,
        "data": jsonable_encoder(data, by_alias=True),
        "message": message,
        "success": status_code < 400,
    }
    return JSONResponse(content=content, status_code=status_code, headers=NO_STORE_HEADERS)


def error_response(message: str, status_code: int = 500, errors: Optional[List[Any]] = None,
                   headers: Optional[dict] = None) -> JSONResponse:
    """Error envelope: ``{statusCode, success: false, message, errors}``."""
    content = {
        "statusCode": status_code,
        "success": False,
        "message": message,
        "errors": jsonable_encoder(errors or []),
    }
    return JSONResponse(content=content, status_code=status_code, headers={**NO_STORE_HEADERS, **(headers or {})})


def set_auth_cookies(response: JSONResponse, access_token: str, refresh_token: str, settings) -> JSONResponse:
    for name, value, max_age in (
        (ACCESS_TOKEN_COOKIE, access_token, settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60),
        (REFRESH_TOKEN_COOKIE, refresh_token, settings.REFRESH_TOKEN_EXPIRE_DAYS * 86400),
    ):
        response.set_cookie(
            name,
            value,
            max_age=max_age,
            httponly=True,
            secure=settings.COOKIE_SECURE,
            samesite=settings.COOKIE_SAMESITE,
        )
    return response


def clear_auth_cookies(response: JSONResponse, settings) -> JSONResponse:
    for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(name, httponly=True, secure=settings.COOKIE_SECURE, samesite=settings.COOKIE_SAMESITE)
    return response
