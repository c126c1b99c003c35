"""Transaction coordination for multi-row writes."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.exceptions import ConflictError, InvalidInputError

logger = structlog.get_logger()


@asynccontextmanager
async def atomic(
    session: AsyncSession,
    conflict_message: str = "The change conflicts with existing data.",
) -> AsyncIterator[AsyncSession]:
    """Run a block of writes as a single all-or-nothing unit.

    Everything written through ``session`` inside the block is committed together
    when the block exits normally. Any exception rolls back every row written in the
    block. Store integrity violations are re-raised as ``ConflictError`` and values
    the store cannot hold as ``InvalidInputError``, so callers never see driver
    exceptions.
    """
    try:
        yield session
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        logger.warning("transaction_conflict", error=exc.__class__.__name__)
        raise ConflictError(conflict_message) from exc
    except DataError as exc:
        await session.rollback()
        logger.warning("transaction_rejected", error=exc.__class__.__name__)
        raise InvalidInputError("A value is out of range for the store.") from exc
    except Exception:
        await session.rollback()
        raise
