"""Offset pagination shared by the list endpoints."""

import math
from typing import Optional

from food_ordering.core.config import Settings
from food_ordering.exceptions import ValidationFailed
from food_ordering.schemas import PaginationInfo


def resolve_page(page: int, limit: Optional[int], settings: Settings) -> tuple[int, int]:
    """
    Validate a 1-indexed page request.

    Returns:
        (offset, limit) to hand to the repository
    """
    limit = settings.default_page_size if limit is None else limit
    if page < 1:
        raise ValidationFailed("Page must be a positive integer")
    if not 1 <= limit <= settings.max_page_size:
        raise ValidationFailed(f"Limit must be between 1 and {settings.max_page_size}")
    return (page - 1) * limit, limit


def clean_term(value: Optional[str], what: str) -> Optional[str]:
    """Strip a free-text filter; blank after stripping is an error."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValidationFailed(f"{what} cannot be empty")
    return value


def paginate(page: int, limit: int, total: int) -> PaginationInfo:
    total_pages = math.ceil(total / limit)
    return PaginationInfo(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )
