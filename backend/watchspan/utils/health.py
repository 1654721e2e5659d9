import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger("watchspan.health")


async def check_database_connection(engine: AsyncEngine, *, include_metadata: bool = False) -> None:
    """Run a trivial query; SQLAlchemyError propagates to the caller."""
    async with engine.connect() as connection:
        await connection.execute(text("SELECT 1"))
        if include_metadata:
            logger.info(
                "Database reachable dialect=%s driver=%s",
                engine.dialect.name,
                engine.dialect.driver,
            )
