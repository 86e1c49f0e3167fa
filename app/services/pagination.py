import math
from dataclasses import dataclass

from app.services.errors import ValidationError


@dataclass(slots=True, frozen=True)
class Pagination:
    current_page: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool
    total_items: int


def validate_window(page: int, limit: int) -> None:
    if page < 1:
        raise ValidationError("page must be at least 1")
    if limit < 1:
        raise ValidationError("limit must be at least 1")


def build_pagination(page: int, limit: int, total_items: int) -> Pagination:
    total_pages = math.ceil(total_items / limit)
    return Pagination(
        current_page=page,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
        total_items=total_items,
    )
