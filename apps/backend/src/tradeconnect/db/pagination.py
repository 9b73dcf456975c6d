"""Offset pagination shared by list endpoints."""

from __future__ import annotations

import math
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class PaginationParams(BaseModel):
    """Pagination parameters for API endpoints."""

    page: int = Field(default=1, ge=1, description="Page number (1-based)")
    limit: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Number of items per page",
    )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginationMeta(BaseModel):
    """Pagination block returned alongside list payloads."""

    page: int
    limit: int
    total: int
    pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, params: PaginationParams, total: int) -> PaginationMeta:
        pages = math.ceil(total / params.limit) if total else 0
        return cls(
            page=params.page,
            limit=params.limit,
            total=total,
            pages=pages,
            has_next=params.page < pages,
            has_prev=params.page > 1,
        )


class Page(BaseModel, Generic[T]):
    """Paginated response model."""

    items: list[T]
    pagination: PaginationMeta


async def count_rows(session: AsyncSession, stmt: Select[Any]) -> int:
    """Count the rows a select would return, ignoring ordering and limits."""
    subquery = stmt.order_by(None).limit(None).offset(None).subquery()
    total = await session.scalar(select(func.count()).select_from(subquery))
    return int(total or 0)


async def paginate_query(
    session: AsyncSession,
    stmt: Select[Any],
    params: PaginationParams,
) -> tuple[list[Any], PaginationMeta]:
    """Run ``stmt`` for one page and return the items with pagination metadata."""
    total = await count_rows(session, stmt)
    result = await session.scalars(stmt.offset(params.offset).limit(params.limit))
    return list(result.all()), PaginationMeta.build(params, total)
