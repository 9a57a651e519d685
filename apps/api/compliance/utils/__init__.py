"""Utility modules."""

from compliance.utils.pagination import (
    PaginationParams,
    get_pagination,
    paginate_find,
)

__all__ = [
    "PaginationParams",
    "get_pagination",
    "paginate_find",
]
