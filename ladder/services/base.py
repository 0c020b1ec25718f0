"""
Base service class for the ladder bot.

Provides transactional scopes that translate storage failures into the
ladder's error taxonomy, and bounded retry for concurrent-update conflicts.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ladder.utils.exceptions import LadderError, ConflictError, DependencyError

logger = logging.getLogger(__name__)

class BaseService:
    """Base class for services that run ladder work inside database transactions."""

    def __init__(self, db):
        """
        Initialize base service with the database.

        Args:
            db: Database instance providing transaction() and get_session()
        """
        self.db = db

    async def run_atomic(self, operation: str, work: Callable[[AsyncSession], Awaitable[Any]]) -> Any:
        """
        Run `work(session)` in one transaction and commit it.

        Domain errors propagate unchanged (the transaction is rolled back).
        Stale versions, constraint violations and SQLite lock contention
        become ConflictError; any other SQLAlchemy failure becomes
        DependencyError.
        """
        try:
            async with self.db.transaction() as session:
                return await work(session)
        except LadderError:
            raise
        except (StaleDataError, IntegrityError) as e:
            raise ConflictError(operation, str(e)) from e
        except OperationalError as e:
            if 'locked' in str(e).lower():
                raise ConflictError(operation, str(e)) from e
            raise DependencyError(operation, str(e)) from e
        except SQLAlchemyError as e:
            raise DependencyError(operation, str(e)) from e

    async def run_readonly(self, operation: str, work: Callable[[AsyncSession], Awaitable[Any]]) -> Any:
        """Run `work(session)` in a plain session, mapping storage failures to DependencyError"""
        try:
            async with self.db.get_session() as session:
                return await work(session)
        except LadderError:
            raise
        except SQLAlchemyError as e:
            raise DependencyError(operation, str(e)) from e

    async def run_shielded(self, operation: str, coro: Awaitable[Any]) -> Any:
        """
        Await `coro` so that cancelling the caller does not cancel the work.

        If the caller is cancelled first, the work keeps running detached and
        any failure it later hits is logged, since nobody awaits it anymore.
        """
        task = asyncio.ensure_future(coro)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.done():
                task.add_done_callback(lambda t: self._log_detached_failure(operation, t))
            raise

    @staticmethod
    def _log_detached_failure(operation: str, task: asyncio.Future) -> None:
        if task.cancelled():
            logger.warning(f"{operation} was cancelled after its caller stopped waiting")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"{operation} failed after its caller was cancelled: {error}", exc_info=error)

    async def execute_with_retry(self, func: Callable, max_retries: int = 3) -> Any:
        """Execute a function, retrying only on ConflictError with exponential backoff."""
        attempts = max(1, max_retries)
        for attempt in range(attempts):
            try:
                return await func()
            except ConflictError as e:
                if attempt == attempts - 1:
                    raise
                logger.warning(f"Retry attempt {attempt + 1} for {func.__name__}: {e}")
                await asyncio.sleep(0.1 * (2 ** attempt))  # Exponential backoff
