"""Pagination of query results."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

PAGINATOR_PER_PAGE_DEFAULT = 20
PAGINATOR_PAGE_KEY = "page"
PAGINATOR_PER_PAGE_KEY = "per_page"

_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


@dataclass
class Paginator:
    """The pagination state of a set of records."""

    page: int = 0
    per_page: int = 0
    offset: int = 0
    total_entries_size: int = 0
    current_entries_size: int = 0
    total_pages: int = 0

    def paginate(self) -> str:
        """Return the paginator as a JSON document."""
        return json.dumps(
            {
                "page": self.page,
                "per_page": self.per_page,
                "offset": self.offset,
                "total_entries_size": self.total_entries_size,
                "current_entries_size": self.current_entries_size,
                "total_pages": self.total_pages,
            },
            separators=(",", ":"),
        )

    def __str__(self) -> str:
        return self.paginate()


def new_paginator(page: int, per_page: int) -> Paginator:
    """Build a paginator, falling back to page 1 and 20 per page."""
    if page < 1:
        page = 1
    if per_page < 1:
        per_page = 20
    return Paginator(page=page, per_page=per_page, offset=(page - 1) * per_page)


def _param(params: Any, key: str) -> str:
    value = params.get(key)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    if value is None:
        return ""
    return str(value)


def _atoi(text: str) -> int | None:
    if not _INT_RE.fullmatch(text):
        return None
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        return None
    return value


def new_paginator_from_params(params: Any) -> Paginator:
    """Build a paginator from a mapping holding "page" and "per_page" values."""
    page = _param(params, "page") or "1"
    per_page = _param(params, "per_page") or str(PAGINATOR_PER_PAGE_DEFAULT)

    p = _atoi(page)
    if p is None:
        p = 1
    pp = _atoi(per_page)
    if pp is None:
        pp = PAGINATOR_PER_PAGE_DEFAULT
    return new_paginator(p, pp)