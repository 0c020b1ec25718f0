"""
Database session manager for the ladder.

Owns the async engine and hands out sessions. Plain `sqlite:///` URLs are
upgraded to the aiosqlite driver, and SQLite connections get a busy timeout
plus foreign key enforcement so challenge rows can never point at a missing
player.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ladder.config import Config
from ladder.database.models import Base
from ladder.utils.logger import setup_logger

logger = setup_logger(__name__)


def to_async_url(database_url: str) -> str:
    """Map a sync SQLite URL onto the aiosqlite driver; other URLs pass through"""
    if database_url.startswith('sqlite:///'):
        return 'sqlite+aiosqlite:///' + database_url[len('sqlite:///'):]
    return database_url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.database_url = to_async_url(database_url or Config.DATABASE_URL)
        self.engine: Optional[AsyncEngine] = None
        self.async_session: Optional[async_sessionmaker] = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith('sqlite')

    async def initialize(self):
        """Create the engine and session factory, then create any missing tables"""
        connect_args = {}
        if self.is_sqlite:
            # Concurrent writers wait for the lock instead of failing at once
            connect_args['timeout'] = Config.DATABASE_TIMEOUT_SECONDS

        self.engine = create_async_engine(self.database_url, echo=Config.DEBUG, connect_args=connect_args)
        if self.is_sqlite:
            event.listen(self.engine.sync_engine, 'connect', _enable_sqlite_foreign_keys)

        self.async_session = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info(f"Ladder database ready ({self.engine.url.render_as_string(hide_password=True)})")

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Session for reads; nothing is committed"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Session whose work commits as one unit.

        Leaving the block normally commits; any exception rolls everything
        back and is re-raised. Ladder operations run their validation and
        writes here so a failed check never leaves partial changes behind.

        Usage:
            async with db.transaction() as session:
                await store.resolve(session, challenge, winner_id, now)
                await directory.set_last_game(session, winner_id, now)
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self):
        if self.engine:
            await self.engine.dispose()
            logger.info("Ladder database connection closed")
