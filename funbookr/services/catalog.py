"""Catalog reads and counters."""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from funbookr.models.catalog import Activity

logger = logging.getLogger(__name__)


async def get_activity(db: AsyncSession, activity_id: int, *, with_schedules: bool = False) -> Activity | None:
    stmt = select(Activity).where(Activity.id == activity_id)
    if with_schedules:
        stmt = stmt.options(selectinload(Activity.schedules))
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def increment_view_count(db: AsyncSession, activity_id: int) -> None:
    """Single atomic UPDATE so concurrent views are never lost."""
    await db.execute(
        update(Activity).where(Activity.id == activity_id).values(view_count=Activity.view_count + 1)
    )
