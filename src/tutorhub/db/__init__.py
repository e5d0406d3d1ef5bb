"""Database module for SQLite persistence.

Provides:
- Database lifecycle, transactions and post-commit hooks
- Schema initialization
- The filter/sort/paginate query builder shared by every list endpoint
"""

from tutorhub.db.database import Database, PostCommitHook, Transaction, new_id, row_to_dict
from tutorhub.db.listing import Page, fetch_page
from tutorhub.db.query_builder import (
    BuiltQuery,
    Filter,
    ListingSpec,
    PageRequest,
    Predicate,
    SortRequest,
    build_list_queries,
    filter_field,
    search_field,
    template_field,
)

__all__ = [
    "BuiltQuery",
    "Database",
    "Filter",
    "ListingSpec",
    "Page",
    "PageRequest",
    "PostCommitHook",
    "Predicate",
    "SortRequest",
    "Transaction",
    "build_list_queries",
    "fetch_page",
    "new_id",
    "filter_field",
    "row_to_dict",
    "search_field",
    "template_field",
]
