"""
shared/utils/pagination.py
Offset pagination for list endpoints.
"""

from typing import Any, Sequence

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession


async def paginate(
    db: AsyncSession,
    query: Select,
    page: int,
    page_size: int,
) -> tuple[Sequence[Any], int]:
    """Run `query` for one page. Returns (rows, total matching rows)."""
    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(query.offset((page - 1) * page_size).limit(page_size))
    return result.all(), total or 0


def page_payload(items: list, total: int, page: int, page_size: int) -> dict:
    return {
        "items": items,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": -(-total // page_size),  # ceiling division
    }
