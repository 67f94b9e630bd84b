import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from asyncpg.exceptions import ForeignKeyViolationError, UniqueViolationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from errors import AppError, ErrorCode


UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


def _sqlstate(exc: IntegrityError) -> Optional[str]:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code:
        return code
    cause = getattr(orig, "__cause__", None)
    if isinstance(cause, UniqueViolationError):
        return UNIQUE_VIOLATION
    if isinstance(cause, ForeignKeyViolationError):
        return FOREIGN_KEY_VIOLATION
    return None


def is_unique_violation(exc: IntegrityError) -> bool:
    if _sqlstate(exc) == UNIQUE_VIOLATION:
        return True
    # sqlite
    return "UNIQUE constraint failed" in str(exc.orig)


def is_foreign_key_violation(exc: IntegrityError) -> bool:
    if _sqlstate(exc) == FOREIGN_KEY_VIOLATION:
        return True
    return "FOREIGN KEY constraint failed" in str(exc.orig)


class BaseRepository:
    """Runs each operation as one transaction on a fresh session.

    Domain errors raised inside a transaction roll it back and propagate
    unchanged; any other SQLAlchemy error is wrapped as an internal error.
    """

    def __init__(self, session_maker: async_sessionmaker, logger: Optional[logging.Logger] = None):
        self.session_maker = session_maker
        self.logger = logger or logging.getLogger(__name__)

    @asynccontextmanager
    async def transaction(self, action: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    yield session
        except AppError:
            raise
        except SQLAlchemyError as exc:
            self.logger.error("repository: failed to %s: %s", action, exc)
            raise AppError(ErrorCode.INTERNAL_SERVER_ERROR, f"repository: failed to {action}") from exc
