import logging
import logging.handlers
import contextvars
from pathlib import Path
from typing import Optional

from core.config import Settings, get_settings
from core.errors import InvalidToken
from core.security import TokenService
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


def map_log_level(level_name: str) -> int:
    level = logging.getLevelName((level_name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


account_id_var = contextvars.ContextVar("account_id", default="-")
api_var = contextvars.ContextVar("api", default="-")


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # Inject per-request context variables
        record.account_id = account_id_var.get()
        record.api = api_var.get()
        return True


def _build_rotating_file_handler(filename: str, level: int, formatter: logging.Formatter,
                                 log_dir: Path, ttl_days: int) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(log_dir / filename),
        when="midnight",
        interval=1,
        backupCount=max(int(ttl_days), 0),
        encoding="utf-8",
        utc=True,
    )
    handler.suffix = "%Y-%m-%d"
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    return handler


def _build_handlers(level: int, log_dir: Path, ttl_days: int) -> dict:
    formatter = logging.Formatter(
        fmt="%(levelname)s - %(asctime)s - %(account_id)s - %(api)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(ContextFilter())

    return {
        "app": _build_rotating_file_handler("app.log", level, formatter, log_dir, ttl_days),
        "access": _build_rotating_file_handler("access.log", level, formatter, log_dir, ttl_days),
        "error": _build_rotating_file_handler("error.log", logging.WARNING, formatter, log_dir, ttl_days),
        "console": console_handler,
    }


def _reset_handlers(target_logger: logging.Logger, handlers: list, level: int) -> None:
    for h in list(target_logger.handlers):
        target_logger.removeHandler(h)
        h.close()
    for h in handlers:
        target_logger.addHandler(h)
    target_logger.setLevel(level)


def configure_logging(app_logger_name: Optional[str] = None, settings: Optional[Settings] = None) -> logging.Logger:
    """Configure logging with daily rotation and TTL-based retention.

    - Rotates at midnight; keeps last LOG_TTL_DAYS files
    - Applies handlers to root, app, and Uvicorn loggers
    """
    settings = settings or get_settings()
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = map_log_level(settings.LOG_LEVEL)
    handlers = _build_handlers(level, log_dir, settings.LOG_TTL_DAYS)
    app_handlers = [handlers["app"], handlers["error"], handlers["console"]]

    _reset_handlers(logging.getLogger(), app_handlers, level)

    app_logger = logging.getLogger(app_logger_name or "account_service")
    app_logger.propagate = False
    _reset_handlers(app_logger, app_handlers, level)

    for name in ("uvicorn", "uvicorn.error", "fastapi"):
        lgr = logging.getLogger(name)
        lgr.propagate = False
        _reset_handlers(lgr, app_handlers, level)
    access_logger = logging.getLogger("uvicorn.access")
    access_logger.propagate = False
    _reset_handlers(access_logger, [handlers["access"], handlers["console"]], level)

    return app_logger


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags log records with the calling account id and ``METHOD /path``."""

    def __init__(self, app, token_service: Optional[TokenService] = None):
        super().__init__(app)
        self._tokens = token_service or TokenService(get_settings())

    def _account_id(self, request: Request) -> str:
        token = request.cookies.get("accessToken")
        auth_header = request.headers.get("authorization")
        if not token and auth_header and auth_header.startswith("Bearer "):
            token = auth_header.split(" ", 1)[1]
        if not token:
            return "-"
        try:
            return self._tokens.verify_access_token(token).get("sub") or "-"
        except InvalidToken:
            return "-"

    async def dispatch(self, request: Request, call_next):
        account_token = account_id_var.set(self._account_id(request))
        api_token = api_var.set(f"{request.method} {request.url.path}")
        try:
            return await call_next(request)
        finally:
            account_id_var.reset(account_token)
            api_var.reset(api_token)
