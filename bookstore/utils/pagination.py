"""Page/limit handling shared by every list endpoint."""

import math
from dataclasses import dataclass
from typing import Any, Optional

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
# keeps skip inside a signed 64-bit OFFSET
MAX_PAGE = (2**63 - 1) // MAX_LIMIT


def _to_int(raw: Any, default: int) -> int:
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Page:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @classmethod
    def from_query(cls, page: Any = None, limit: Any = None) -> 'Page':
        """Clamp ``page`` to [1, MAX_PAGE] and ``limit`` to [1, MAX_LIMIT]; junk input falls back to defaults."""
        p = min(MAX_PAGE, max(1, _to_int(page, DEFAULT_PAGE)))
        lim = min(MAX_LIMIT, max(1, _to_int(limit, DEFAULT_LIMIT)))
        return cls(page=p, limit=lim)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total > 0 else 0


def page_meta(page: Page, total: int) -> dict:
    pages = total_pages(total, page.limit)
    return {
        'page': page.page,
        'limit': page.limit,
        'prev_page': page.page - 1 if page.page > 1 else None,
        'next_page': page.page + 1 if page.page < pages else None,
    }


def pagination_params(page: Optional[str] = None, limit: Optional[str] = None) -> Page:
    return Page.from_query(page, limit)
