"""Timeout and failure translation for statements sent to the database.

Every statement goes through ``execute`` so that a slow or unreachable
database surfaces as a retryable ``UnavailableError`` instead of hanging the
request or looking like an empty result.
"""

from __future__ import annotations

import asyncio
from typing import Any

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.common.exceptions import UnavailableError
from buildledger.common.logging import get_logger
from buildledger.config import settings

logger = get_logger("db.guard")


async def execute(db: AsyncSession, statement: Any, timeout: float | None = None):
    limit = timeout if timeout is not None else settings.DB_STATEMENT_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(db.execute(statement), timeout=limit)
    except asyncio.TimeoutError as exc:
        logger.warning("Statement exceeded %.1fs timeout", limit)
        raise UnavailableError() from exc
    except OperationalError as exc:
        logger.warning("Database operational error: %s", exc.orig)
        raise UnavailableError() from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            logger.warning("Database connection invalidated: %s", exc.orig)
            raise UnavailableError() from exc
        raise


async def flush(db: AsyncSession, timeout: float | None = None) -> None:
    limit = timeout if timeout is not None else settings.DB_STATEMENT_TIMEOUT_SECONDS
    try:
        await asyncio.wait_for(db.flush(), timeout=limit)
    except asyncio.TimeoutError as exc:
        logger.warning("Flush exceeded %.1fs timeout", limit)
        raise UnavailableError() from exc
    except OperationalError as exc:
        logger.warning("Database operational error on flush: %s", exc.orig)
        raise UnavailableError() from exc
