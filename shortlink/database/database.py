from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from shortlink.config import DATABASE_URL
from shortlink.logger import get_logger

logger = get_logger("database")

try:
    logger.info(f"Connecting to database at {DATABASE_URL.split('@')[-1]}")
    if DATABASE_URL.startswith("sqlite"):
        # aiosqlite connections are bound to the loop that opened them
        engine = create_async_engine(DATABASE_URL, poolclass=NullPool)
    else:
        engine = create_async_engine(DATABASE_URL, pool_pre_ping=True)
    async_session_maker = async_sessionmaker(engine, expire_on_commit=False)
    logger.info("Database engine created successfully")
except Exception as e:
    logger.error(f"Failed to create database engine: {e}")
    raise


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    try:
        async with async_session_maker() as session:
            logger.debug("Created new database session")
            yield session
    except Exception as e:
        logger.error(f"Error in database session: {e}")
        raise
