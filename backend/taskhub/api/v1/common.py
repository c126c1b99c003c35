"""Shared response envelope for list endpoints."""

from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from taskhub.services.pagination import PaginatedResult

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """Paginated list envelope, serialized with camelCase metadata keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    data: list[T]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool

    @classmethod
    def build(cls, result: PaginatedResult, item: Callable[[Any], T]) -> "Page[T]":
        return cls(
            data=[item(entry) for entry in result.data],
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
            has_next_page=result.has_next_page,
            has_previous_page=result.has_previous_page,
        )
