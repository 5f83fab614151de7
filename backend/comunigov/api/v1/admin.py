"""
Admin endpoints.

Endpoints:
- GET /api/v1/admin/database-stats - Row count per table (master)
"""
from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from comunigov.core.deps import require_master_implementer
from comunigov.db.base import Base, get_db
from comunigov.models.user import User
from comunigov.schemas.dashboard import DatabaseStats

router = APIRouter()


@router.get("/database-stats", response_model=DatabaseStats)
async def database_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_master_implementer)
):
    tables = {}
    for table in Base.metadata.sorted_tables:
        result = await db.execute(select(func.count()).select_from(table))
        tables[table.name] = result.scalar() or 0
    return DatabaseStats(tables=tables, total_rows=sum(tables.values()))
