from db.session import Base, get_engine
from db.models.user import Account  # noqa: F401  registers the table on Base.metadata
import logging

logger = logging.getLogger(__name__)

async def initialize_database(engine=None):
    """Create the accounts table if it does not exist."""
    engine = engine or get_engine()
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Error creating database tables: {e}")
        raise
