import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from config import ENV
from services.errors import ConcurrencyConflictError

T = TypeVar("T")


async def run_in_transaction(
    session: AsyncSession,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    max_attempts: int | None = None,
) -> T:
    """
    Runs ``work`` as one optimistic transaction and commits it.

    Versioned rows are written with ``WHERE version = :seen``; if another
    session committed first the flush raises StaleDataError, everything is
    rolled back and ``work`` runs again against fresh rows. Any other error
    rolls back and propagates untouched.
    """
    attempts = max_attempts or ENV().TRANSACTION_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            result = await work(session)
            await session.commit()
            return result
        except StaleDataError as e:
            await session.rollback()
            logging.warning(f"Transaction conflict on attempt {attempt}/{attempts}: {e}")
        except Exception:
            await session.rollback()
            raise
    raise ConcurrencyConflictError(f"Transaction gave up after {attempts} conflicting attempts")
