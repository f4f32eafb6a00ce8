"""Utility modules."""

from swivel.utils.normalization import (
    ensure_utc,
    normalize_abn,
    normalize_email,
    normalize_optional,
    utcnow,
)
from swivel.utils.pagination import (
    PaginationParams,
    get_pagination,
    paginate_query,
)

__all__ = [
    # Normalization
    "ensure_utc",
    "normalize_abn",
    "normalize_email",
    "normalize_optional",
    "utcnow",
    # Pagination
    "PaginationParams",
    "get_pagination",
    "paginate_query",
]
