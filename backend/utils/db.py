from sqlalchemy.exc import IntegrityError, DBAPIError
from core.errors import Conflict, UpstreamFailure


async def safe_commit(session, conflict_message: str = "User with this email or username already exists",
                      server_error_message: str = "Internal server error"):
    """Commit, mapping unique-constraint violations to Conflict."""
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise Conflict(conflict_message) from e
    except DBAPIError as e:
        await session.rollback()
        raise UpstreamFailure(server_error_message, status_code=500) from e
