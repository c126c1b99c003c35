"""Pagination and sorting for list queries.

Every list operation normalizes its page parameters the same way, orders by a
whitelisted sort field with ``id`` as the tiebreaker, and returns a
``PaginatedResult`` carrying the page plus the metadata a client needs to walk
the rest of the result set.
"""

import enum
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from sqlalchemy import ColumnElement, Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.exceptions import InvalidInputError

T = TypeVar("T")
U = TypeVar("U")

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
# Largest offset a 64-bit store integer can hold
MAX_OFFSET = 2**63 - 1


@dataclass(frozen=True)
class PageParams:
    """Normalized page number and page size."""

    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @classmethod
    def normalize(cls, page: int | None = None, limit: int | None = None) -> "PageParams":
        """Clamp raw parameters: page to >= 1, limit to 1..100 (10 when absent).

        Raises:
            InvalidInputError: when the page lies beyond any offset the store can address.
        """
        if page is None or page < 1:
            page = DEFAULT_PAGE
        if limit is None:
            limit = DEFAULT_LIMIT
        limit = max(1, min(limit, MAX_LIMIT))
        if (page - 1) * limit > MAX_OFFSET:
            raise InvalidInputError(f"Page {page} is out of range.")
        return cls(page=page, limit=limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class SortDirection(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortSpec:
    """A validated sort field and direction."""

    field: str = "created_at"
    direction: SortDirection = SortDirection.DESC

    @classmethod
    def parse(
        cls,
        sort_by: str | None,
        sort_order: str | None,
        allowed: Mapping[str, Any],
    ) -> "SortSpec":
        """Validate a client-supplied sort against the entity's whitelist.

        Raises:
            InvalidInputError: for a field outside ``allowed`` or an unknown direction.
        """
        sort_field = sort_by or "created_at"
        if sort_field not in allowed:
            raise InvalidInputError(
                f"Cannot sort by '{sort_field}'. Allowed: {', '.join(sorted(allowed))}."
            )
        try:
            direction = SortDirection((sort_order or SortDirection.DESC.value).lower())
        except ValueError:
            raise InvalidInputError("Sort order must be 'asc' or 'desc'.") from None
        return cls(field=sort_field, direction=direction)

    def order_by(
        self,
        allowed: Mapping[str, Any],
        tiebreaker: Any,
    ) -> list[ColumnElement]:
        """ORDER BY clauses for this sort; ties fall back to ``tiebreaker``."""
        column = allowed[self.field]
        if self.direction == SortDirection.ASC:
            return [column.asc().nulls_last(), tiebreaker.asc()]
        return [column.desc().nulls_last(), tiebreaker.desc()]


@dataclass
class PaginatedResult(Generic[T]):
    """One page of results plus navigation metadata."""

    data: list[T]
    total: int
    page: int
    limit: int
    total_pages: int = field(init=False)
    has_next_page: bool = field(init=False)
    has_previous_page: bool = field(init=False)

    def __post_init__(self) -> None:
        self.total_pages = math.ceil(self.total / self.limit) if self.total else 0
        self.has_next_page = self.page < self.total_pages
        self.has_previous_page = self.page > 1

    def map(self, fn: Callable[[T], U]) -> "PaginatedResult[U]":
        """Same page metadata with every item transformed."""
        return PaginatedResult(
            data=[fn(item) for item in self.data],
            total=self.total,
            page=self.page,
            limit=self.limit,
        )


async def paginate(
    db: AsyncSession,
    statement: Select,
    params: PageParams,
    order_by: Sequence[ColumnElement],
    scalars: bool = True,
    options: Sequence[Any] = (),
) -> PaginatedResult:
    """Run ``statement`` for one page and count the full result set.

    With ``scalars=False`` the page holds full rows, for statements that select
    an entity together with aggregate columns. ``options`` are ORM loader options
    applied to the page query only.
    """
    count_statement = select(func.count()).select_from(statement.order_by(None).subquery())
    total = (await db.execute(count_statement)).scalar_one()

    page_statement = statement.order_by(*order_by).offset(params.offset).limit(params.limit)
    if options:
        page_statement = page_statement.options(*options).execution_options(
            populate_existing=True
        )
    result = await db.execute(page_statement)
    data = list(result.scalars().all()) if scalars else list(result.all())

    return PaginatedResult(data=data, total=total, page=params.page, limit=params.limit)
