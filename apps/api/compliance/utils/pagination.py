"""Pagination utilities for list endpoints."""

from dataclasses import dataclass
from typing import Any

from fastapi import Query


# Pagination limits
DEFAULT_PAGE = 1
DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


@dataclass
class PaginationParams:
    """Pagination parameters from query string."""
    page: int = DEFAULT_PAGE
    per_page: int = DEFAULT_PER_PAGE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    def page_count(self, total: int) -> int:
        return (total + self.per_page - 1) // self.per_page if self.per_page > 0 else 0


def get_pagination(
    page: int = Query(DEFAULT_PAGE, ge=1, description="Page number (1-indexed)"),
    per_page: int = Query(DEFAULT_PER_PAGE, ge=1, le=MAX_PER_PAGE, description=f"Items per page (max {MAX_PER_PAGE})"),
) -> PaginationParams:
    """
    Pagination dependency.

    Usage:
        @router.get("/items")
        async def list_items(pagination: PaginationParams = Depends(get_pagination)):
            ...
    """
    return PaginationParams(page=page, per_page=per_page)


async def paginate_find(
    collection,
    query: dict[str, Any],
    pagination: PaginationParams,
    sort: list[tuple[str, int]],
) -> tuple[list[dict], int]:
    """
    Run a paginated ``find`` on a collection.

    Returns:
        (documents, total_count)
    """
    total = await collection.count_documents(query)
    cursor = collection.find(query).sort(sort).skip(pagination.offset).limit(pagination.per_page)
    return await cursor.to_list(length=None), total
