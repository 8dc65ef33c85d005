from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from api.v1 import auth, users
from core.config import get_settings
from core.errors import ApiError
from utils.logging_config import configure_logging, RequestContextMiddleware
from utils.responses import error_response, summarize_validation_errors

settings = get_settings()

# Configure logging with date-based files and TTL retention
logger = configure_logging("account_service", settings)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG
)

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc, ApiError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(f"{exc.status_code} at {request.url.path}: {exc.message}")
        return error_response(exc.message, exc.status_code, exc.errors, headers=exc.headers)
    return error_response(str(exc.detail), exc.status_code, headers=getattr(exc, "headers", None))

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = summarize_validation_errors(exc.errors())
    message = errors[0]["msg"] if errors else "Invalid request"
    logger.warning(f"Validation failed at {request.url.path}: {message}")
    return error_response(message, 400, errors)

# Global exception handler to ensure 500s for unexpected errors
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error at {request.url.path}: {exc}")
    return error_response("Internal server error", 500)

app.add_middleware(GZipMiddleware, minimum_size=500)

# Add logging context middleware to capture account id and API path
app.add_middleware(RequestContextMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(users.router, prefix=f"{settings.API_V1_STR}/users", tags=["Users"])
app.include_router(auth.router, prefix=f"{settings.API_V1_STR}/users", tags=["Authentication"])

@app.on_event("startup")
async def startup_db_client():
    """Prepare the configured store (Mongo indexes or SQL tables)."""
    if settings.USE_MONGO:
        from db.mongodb import init_mongo_indexes
        if await init_mongo_indexes():
            logger.info("Mongo indexes ensured")
    else:
        from db.base import initialize_database
        await initialize_database()
        logger.info("SQL database initialized")
    logger.info("Application startup complete")

@app.on_event("shutdown")
async def shutdown_db_client():
    if settings.USE_MONGO:
        from db.mongodb import close_mongo_client
        close_mongo_client()
    else:
        from db.session import dispose_engine
        await dispose_engine()
    logger.info("Application shutdown complete")

@app.get("/")
async def root():
    return {"message": settings.APP_NAME, "version": settings.VERSION}

@app.get("/health")
async def health_check():
    if settings.USE_MONGO:
        from db.mongodb import get_mongo_db
        try:
            db = get_mongo_db()
            if db is not None:
                await db.command({"ping": 1})
                return {"status": "healthy", "database": "mongo_connected"}
        except Exception as e:
            logger.warning(f"Health Mongo check failed: {e}")
        return {"status": "degraded", "database": "mongo_unavailable"}
    from sqlalchemy import text
    from db.session import get_session_factory
    try:
        async with get_session_factory()() as db:
            await db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "sql_connected"}
    except Exception as e:
        logger.warning(f"Health SQL check failed: {e}")
        return {"status": "degraded", "database": "sql_unavailable"}
