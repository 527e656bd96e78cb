"""
Filter and sort specifications for the list endpoints.

Each query is validated on construction; the gateway translates it into a
SELECT. Sort fields accept ``asc`` or ``desc`` only.
"""

from dataclasses import dataclass
from typing import Literal, Optional

from bookstore.utils.pagination import Page

SortDirection = Literal['asc', 'desc']
SORT_DIRECTIONS = ('asc', 'desc')


def _check_direction(name: str, value: Optional[str]) -> None:
    if value is not None and value not in SORT_DIRECTIONS:
        raise ValueError(f"{name} must be one of {SORT_DIRECTIONS}, got {value!r}")


def _clean_search(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class GenreQuery:
    page: Page = Page()
    search: Optional[str] = None
    order_by_name: Optional[SortDirection] = None

    def __post_init__(self):
        _check_direction('order_by_name', self.order_by_name)
        object.__setattr__(self, 'search', _clean_search(self.search))


@dataclass(frozen=True)
class BookQuery:
    page: Page = Page()
    search: Optional[str] = None
    genre_id: Optional[str] = None
    order_by_title: Optional[SortDirection] = None
    order_by_publish_date: Optional[SortDirection] = None

    def __post_init__(self):
        _check_direction('order_by_title', self.order_by_title)
        _check_direction('order_by_publish_date', self.order_by_publish_date)
        object.__setattr__(self, 'search', _clean_search(self.search))


@dataclass(frozen=True)
class TransactionQuery:
    page: Page = Page()
    search: Optional[str] = None
    order_by_id: Optional[SortDirection] = None
    order_by_amount: Optional[SortDirection] = None

    def __post_init__(self):
        _check_direction('order_by_id', self.order_by_id)
        _check_direction('order_by_amount', self.order_by_amount)
        search = _clean_search(self.search)
        # order ids are stored lower-case
        object.__setattr__(self, 'search', search.lower() if search else None)
