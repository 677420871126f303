"""Pagination value objects."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")

DEFAULT_PAGE_LIMIT = 24
MAX_PAGE_LIMIT = 200


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    limit: int = DEFAULT_PAGE_LIMIT

    @classmethod
    def of(cls, page: int | None, limit: int | None, max_limit: int = MAX_PAGE_LIMIT) -> PageRequest:
        """Clamp page to >= 1 and limit to 1..max_limit."""
        p = max(1, int(page or 1))
        lim = min(max_limit, max(1, int(limit or DEFAULT_PAGE_LIMIT)))
        return cls(page=p, limit=lim)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = DEFAULT_PAGE_LIMIT

    @property
    def pages(self) -> int:
        return max(1, math.ceil(self.total / self.limit)) if self.limit else 1
