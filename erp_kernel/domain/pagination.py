"""
Pagination parameter normalization and list metadata.

Pure functions shared by every list endpoint.  Raw query values are parsed
the way browsers' ``parseInt`` does: optional sign, leading digits, the rest
ignored.  Anything without leading digits falls back to the default.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
# Keeps OFFSET inside a 32-bit integer for any allowed page size.
MAX_PAGE = 1_000_000

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class PageParams:
    page: int
    page_size: int
    skip: int

    def to_dict(self) -> dict[str, int]:
        return {"page": self.page, "pageSize": self.page_size, "skip": self.skip}


@dataclass(frozen=True)
class PageMeta:
    page: int
    page_size: int
    total_count: int
    total_pages: int

    def to_dict(self) -> dict[str, int]:
        return {
            "page": self.page,
            "pageSize": self.page_size,
            "totalCount": self.total_count,
            "totalPages": self.total_pages,
        }


def parse_int(value: Any) -> int | None:
    """Leading-integer parse; None when there are no leading digits."""
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return int(value)
    match = _LEADING_INT.match(str(value))
    if match is None:
        return None
    return int(match.group(1))


def get_pagination_params(
    params: Mapping[str, Any],
    *,
    default_page_size: int = DEFAULT_PAGE_SIZE,
    max_page_size: int = MAX_PAGE_SIZE,
) -> PageParams:
    """Normalize ``page``/``pageSize`` query values.

    ``page`` is clamped to [1, MAX_PAGE]; ``pageSize`` to [1, max_page_size].
    """
    raw_page = parse_int(params.get("page"))
    raw_size = parse_int(params.get("pageSize"))

    page = min(MAX_PAGE, max(1, raw_page if raw_page is not None else DEFAULT_PAGE))
    page_size = min(
        max_page_size,
        max(1, raw_size if raw_size is not None else default_page_size),
    )
    return PageParams(page=page, page_size=page_size, skip=(page - 1) * page_size)


def build_meta(page: int, page_size: int, total_count: int) -> PageMeta:
    """List metadata; ``total_pages`` is 0 when there are no rows."""
    return PageMeta(
        page=page,
        page_size=page_size,
        total_count=total_count,
        total_pages=math.ceil(total_count / page_size),
    )
