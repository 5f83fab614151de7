"""
Pagination helper shared by list endpoints.
"""
from math import ceil
from typing import Any, Callable

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.schemas.common import PaginatedResponse


async def paginate(
    db: AsyncSession,
    query,
    page: int,
    per_page: int,
    converter: Callable[[Any], Any],
) -> PaginatedResponse:
    """Count ``query``, fetch one page of it and convert each row."""
    count_query = select(func.count()).select_from(query.subquery())
    total_items = (await db.execute(count_query)).scalar() or 0

    result = await db.execute(query.offset((page - 1) * per_page).limit(per_page))
    rows = result.scalars().all()

    return PaginatedResponse(
        page=page,
        perPage=per_page,
        totalItems=total_items,
        totalPages=ceil(total_items / per_page) if total_items > 0 else 1,
        items=[converter(row) for row in rows]
    )
