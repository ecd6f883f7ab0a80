"""Pagination result models."""

import math
from typing import Any, Optional

from pydantic import BaseModel, Field


class PageInfo(BaseModel):
    """Offset pagination metadata."""

    total: int = Field(..., description="Rows matching the filter")
    page: int = Field(..., description="Current page (1-based)")
    per_page: int = Field(..., description="Rows per page")
    total_pages: int = Field(..., description="ceil(total / per_page)")
    has_next: bool = Field(..., description="Whether a later page exists")
    has_prev: bool = Field(..., description="Whether an earlier page exists")

    @classmethod
    def compute(cls, total: int, page: int, per_page: int) -> "PageInfo":
        total_pages = math.ceil(total / per_page) if per_page else 0
        return cls(
            total=total,
            page=page,
            per_page=per_page,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class Page(BaseModel):
    """One page of rows with offset pagination metadata."""

    data: list[dict[str, Any]] = Field(default_factory=list)
    pagination: PageInfo


class CursorPage(BaseModel):
    """One page of rows fetched with cursor pagination."""

    data: list[dict[str, Any]] = Field(default_factory=list)
    next_cursor: Optional[Any] = Field(
        None, description="Cursor value of the last returned row when more exist"
    )
    has_more: bool = Field(default=False)


class FindOrCreateResult(BaseModel):
    """Outcome of ``find_or_create``."""

    record: Optional[dict[str, Any]] = None
    created: bool = False
