"""
Page/limit pagination shared by every list endpoint.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from fastapi import Query
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from ticketdesk_shared.schemas.common import Pagination

settings = get_settings()


@dataclass
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
) -> PageParams:
    return PageParams(page=page, limit=limit)


async def paginate(
    session: AsyncSession, stmt: Any, params: PageParams, *, scalars: bool = True
) -> tuple[list[Any], Pagination]:
    """Run ``stmt`` for one page and count the full result set.

    With ``scalars=False`` each row is returned as a tuple.
    """
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = (await session.execute(count_stmt)).scalar_one()

    result = await session.execute(stmt.offset(params.offset).limit(params.limit))
    rows = list(result.scalars().all()) if scalars else [tuple(r) for r in result.all()]
    return rows, Pagination(
        page=params.page,
        limit=params.limit,
        total=total,
        pages=math.ceil(total / params.limit) if total else 0,
    )
