"""
Base class for the database-backed arena services.

Subclasses get a commit-or-rollback session scope and a retry helper for
transient SQLite errors (``database is locked`` while another writer holds
the file).
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Tuple, Type

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

RETRY_BASE_DELAY = 0.1


class BaseService:

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session committed when the block exits cleanly, rolled back otherwise"""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def execute_with_retry(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        max_retries: int = 3,
        retry_on: Tuple[Type[BaseException], ...] = (OperationalError,),
    ) -> Any:
        """
        Await ``func(*args)``, retrying transient failures with exponential backoff.

        Only exceptions in ``retry_on`` are retried; the last one is re-raised
        once ``max_retries`` attempts have failed.
        """
        for attempt in range(1, max_retries + 1):
            try:
                return await func(*args)
            except retry_on as e:
                if attempt == max_retries:
                    raise
                delay = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                logger.warning(f"{func.__name__} failed (attempt {attempt}/{max_retries}), "
                               f"retrying in {delay:.1f}s: {e}")
                await asyncio.sleep(delay)
