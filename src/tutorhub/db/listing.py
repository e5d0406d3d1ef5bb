"""Run a listing's page and count queries and shape the result."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable

import structlog

from tutorhub.db.database import Transaction
from tutorhub.db.query_builder import (
    Filter,
    ListingSpec,
    PageRequest,
    Predicate,
    SortRequest,
    build_list_queries,
)

logger = structlog.get_logger(__name__)


@dataclass
class Page:
    """One page of rows plus the totals for the whole filtered set."""

    items: list[dict[str, Any]]
    total_count: int
    page: int
    limit: int
    summary: dict[str, Any] = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.limit)

    def pagination(self) -> dict[str, int]:
        """Pagination envelope for responses."""
        return {
            "currentPage": self.page,
            "totalPages": self.total_pages,
            "totalCount": self.total_count,
            "limit": self.limit,
        }


def fetch_page(
    tx: Transaction,
    spec: ListingSpec,
    filters: Iterable[Filter] = (),
    sort: SortRequest | None = None,
    page: PageRequest | None = None,
    scope: Iterable[Predicate] = (),
) -> Page:
    """Execute a listing against the store.

    Args:
        tx: Open transaction
        spec: Listing declaration
        filters: Caller filters
        sort: Raw sort request
        page: Validated page request
        scope: Service-supplied trusted predicates

    Returns:
        Page with decoded rows, total count and summary columns
    """
    page = page or PageRequest()
    data_query, count_query = build_list_queries(
        spec, filters=filters, sort=sort, page=page, scope=scope
    )

    items = tx.fetch_all(data_query.text, data_query.params, spec.json_columns)
    totals = tx.fetch_one(count_query.text, count_query.params) or {"total_count": 0}
    total_count = int(totals.pop("total_count") or 0)

    logger.debug(
        "listing.fetched",
        listing=spec.name,
        page=page.page,
        returned=len(items),
        total=total_count,
    )

    return Page(
        items=items,
        total_count=total_count,
        page=page.page,
        limit=page.effective_limit(spec.default_limit),
        summary=totals,
    )
