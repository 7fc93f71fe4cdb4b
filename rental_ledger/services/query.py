"""Listing helpers shared by the billing services"""

from datetime import date
from typing import Any, List, Optional, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rental_ledger.config import settings
from rental_ledger.core.exceptions import ValidationError


def validate_page(page: int, limit: int) -> None:
    """Reject page/limit outside [1, ..] and [1, MAX_PAGE_SIZE]"""
    if page < 1:
        raise ValidationError("page must be greater than or equal to 1")
    if limit < 1 or limit > settings.MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {settings.MAX_PAGE_SIZE}")


def date_range_conditions(column, date_from: Optional[date], date_to: Optional[date]) -> List[Any]:
    """
    Inclusive date bounds on ``column`` as a predicate list.

    Raises:
        ValidationError: If ``date_from`` is after ``date_to``
    """
    if date_from and date_to and date_from > date_to:
        raise ValidationError("The start date must not be after the end date")

    conditions = []
    if date_from:
        conditions.append(column >= date_from)
    if date_to:
        conditions.append(column <= date_to)
    return conditions


async def fetch_page(
    db: AsyncSession,
    stmt: Select,
    page: int,
    limit: int,
) -> Tuple[list, int]:
    """
    Run ``stmt`` for one page and count the full result set.

    Returns:
        (rows, total)
    """
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = await db.scalar(count_stmt)

    result = await db.execute(stmt.offset((page - 1) * limit).limit(limit))
    return list(result.all()), total or 0
