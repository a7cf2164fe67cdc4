# catalog_api/database.py
from typing import AsyncGenerator, Optional, Type

import structlog
from fastapi import HTTPException, status
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from .config import get_settings

logger = structlog.get_logger(__name__)

settings = get_settings()

# Create engine
engine = create_async_engine(settings.database_url, echo=settings.sql_echo, future=True)

if engine.dialect.name == "sqlite":
    # SQLite ignores FOREIGN KEY clauses unless asked per connection
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

# Create session factory
async_session_maker = sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

# Base declarative
Base = declarative_base()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """One unit of work per request. Nothing is written unless the handler commits."""
    async with async_session_maker() as session:
        yield session


async def commit_or_conflict(
    session: AsyncSession,
    model: Optional[Type] = None,
    ident: Optional[int] = None,
) -> None:
    """Commit the unit of work, mapping a stale versioned write to 404/409.

    When ``model``/``ident`` name the row being written and it no longer
    exists the caller gets 404; any other stale write is a 409.
    """
    try:
        await session.commit()
    except StaleDataError:
        await session.rollback()
        logger.warning(
            "stale_write_detected",
            model=getattr(model, "__name__", None),
            ident=ident,
        )
        if model is not None and ident is not None:
            res = await session.execute(select(model.id).where(model.id == ident))
            if res.scalar_one_or_none() is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{model.__name__} not found")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The resource was modified by another request, please retry",
        )
