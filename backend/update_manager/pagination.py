"""Page/limit query parameters and paginated responses."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Query

from .config import settings


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
) -> PageParams:
    """Limit defaults to the configured page size and is capped, not rejected, above the max."""
    size = limit or settings.PAGINATION_DEFAULT_LIMIT
    return PageParams(page=page, limit=min(size, settings.PAGINATION_MAX_LIMIT))


def page_of(items: list, *, total: int, params: PageParams) -> dict:
    return {
        "items": items,
        "page": params.page,
        "limit": params.limit,
        "total": total,
        "total_pages": math.ceil(total / params.limit) if total else 0,
    }


def paginate(query, params: PageParams, *, to_out: Callable = lambda row: row) -> dict:
    total = query.order_by(None).count()
    rows = query.offset(params.offset).limit(params.limit).all()
    return page_of([to_out(row) for row in rows], total=total, params=params)
