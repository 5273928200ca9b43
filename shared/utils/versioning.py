"""
shared/utils/versioning.py
Optimistic concurrency for rows mapped with a `version_id_col`.

SQLAlchemy adds `WHERE version = <version loaded>` to every UPDATE of such
a row and raises StaleDataError when no row matched, i.e. another request
wrote the row after this one read it.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from shared.exceptions import ConflictError

logger = logging.getLogger(__name__)


async def flush_or_conflict(db: AsyncSession, what: str) -> None:
    """Flush pending writes; a lost version race becomes a 409."""
    try:
        await db.flush()
    except StaleDataError:
        await db.rollback()
        logger.warning(f"Stale write refused: {what}")
        raise ConflictError(f"{what} was modified by another request. Please reload and retry.")


def check_expected_version(current: int, expected: int | None, what: str) -> None:
    """Refuse a write based on a version the caller no longer holds."""
    if expected is not None and expected != current:
        raise ConflictError(
            f"{what} has changed since you loaded it (version {expected}, now {current})"
        )
