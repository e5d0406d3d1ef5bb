"""Filter/sort/paginate query builder.

Every list endpoint declares a `ListingSpec` (trusted SQL fragments plus
the filter and sort allow-lists) and hands the builder the caller's raw
filters, sort request and page request. The builder returns two immutable
`(text, params)` pairs: the page query and the matching count query.

Rules enforced here:
- filter fields outside the allow-list are rejected, never used as SQL;
- absent filter values (None) are skipped, False and 0 still apply;
- each bound value gets its own placeholder, numbered strictly upward;
- sort fields outside the allow-list fall back to the declared default,
  and sort identifiers only ever come from the allow-list;
- the count query is rendered from the same predicate list, so its
  parameters equal the page query's parameters minus LIMIT/OFFSET.

Example:
    data_query, count_query = build_list_queries(
        TUTOR_LISTING,
        filters=[Filter("minRating", "gte", 4), Filter("status", "eq", None)],
        sort=SortRequest("hourly_rate", "asc"),
        page=PageRequest(page=2, limit=10),
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

from tutorhub.core.errors import ValidationError

# Placeholder styles: "?{n}" for SQLite numbered parameters, "${n}" for
# PostgreSQL-style drivers.
SQLITE_PLACEHOLDER = "?{n}"
POSTGRES_PLACEHOLDER = "${n}"

_OPERATOR_SQL = {
    "eq": "=",
    "ne": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "contains": "LIKE",
}

LIKE_ESCAPE = "\\"

# Largest OFFSET SQLite can bind (signed 64-bit INTEGER).
MAX_OFFSET = 2**63 - 1


@dataclass(frozen=True)
class BuiltQuery:
    """Immutable query text plus its positional parameters."""

    text: str
    params: tuple[Any, ...]


@dataclass(frozen=True)
class FilterField:
    """Allow-list entry: the trusted column(s) a public filter name maps to.

    With several columns the predicate is an OR across them (search), and
    the value is bound once per column.
    """

    columns: tuple[str, ...]
    operators: frozenset[str] = frozenset({"eq"})
    coerce: Callable[[Any], Any] | None = None
    template: str | None = None

    def __post_init__(self) -> None:
        unknown = set(self.operators) - set(_OPERATOR_SQL)
        if unknown:
            raise ValueError(f"Unsupported filter operators: {sorted(unknown)}")
        if self.template is not None:
            if self.template.count("{}") != 1 or self.operators != frozenset({"eq"}):
                raise ValueError("Template filters take exactly one value and only 'eq'")
        elif not self.columns:
            raise ValueError("FilterField needs at least one column")


def filter_field(
    *columns: str,
    operators: Iterable[str] = ("eq",),
    coerce: Callable[[Any], Any] | None = None,
) -> FilterField:
    """Shorthand for declaring a FilterField."""
    return FilterField(columns=tuple(columns), operators=frozenset(operators), coerce=coerce)


def search_field(*columns: str) -> FilterField:
    """Case-insensitive substring match across one or more text columns."""
    return FilterField(columns=tuple(columns), operators=frozenset({"contains"}))


def template_field(template: str, coerce: Callable[[Any], Any] | None = None) -> FilterField:
    """Equality filter expressed as a trusted SQL template with one `{}` slot.

    For conditions that are not a plain column comparison, e.g. an EXISTS
    over a join table.
    """
    return FilterField(columns=(), template=template, coerce=coerce)


@dataclass(frozen=True)
class Filter:
    """A caller-supplied (field, operator, value) triple."""

    field: str
    operator: str
    value: Any


@dataclass(frozen=True)
class Predicate:
    """A trusted WHERE fragment; each `{}` marks one bound value."""

    sql: str
    values: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        if self.sql.count("{}") != len(self.values):
            raise ValueError(
                f"Predicate has {self.sql.count('{}')} markers but {len(self.values)} values"
            )


@dataclass(frozen=True)
class SortRequest:
    """Raw sort field and direction as supplied by the caller."""

    field: str | None = None
    direction: str | None = None


@dataclass(frozen=True)
class PageRequest:
    """Validated page number and optional page size.

    A limit of None means "use the listing's default".
    """

    page: int = 1
    limit: int | None = None

    @classmethod
    def parse(cls, page: Any = None, limit: Any = None, max_limit: int | None = None) -> PageRequest:
        """Parse raw page/limit values.

        Args:
            page: Raw page number (None means 1)
            limit: Raw page size (None means the listing default)
            max_limit: Largest accepted page size, if any

        Raises:
            ValidationError: If either value is present but not a positive
                integer, or limit exceeds max_limit
        """
        parsed_page = 1 if page is None else _positive_int(page, "page")
        parsed_limit = None if limit is None else _positive_int(limit, "limit")
        if parsed_limit is not None and max_limit is not None and parsed_limit > max_limit:
            raise ValidationError(f"limit must not exceed {max_limit}")
        return cls(page=parsed_page, limit=parsed_limit)

    def effective_limit(self, default_limit: int) -> int:
        return self.limit if self.limit is not None else default_limit


def _positive_int(raw: Any, name: str) -> int:
    if isinstance(raw, bool):
        raise ValidationError(f"{name} must be a positive integer")
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        if not (text.isascii() and text.isdigit()):
            raise ValidationError(f"{name} must be a positive integer")
        value = int(text)
    if value < 1:
        raise ValidationError(f"{name} must be a positive integer")
    return value


@dataclass(frozen=True)
class ListingSpec:
    """Declaration of one list endpoint's query shape.

    All SQL here is trusted and written by the developer. `select` is the
    column list (without SELECT), `source` the FROM/JOIN clause, `where`
    constant predicates without parameters. `summary` adds projections to
    the count query (e.g. totals over the filtered set).
    """

    name: str
    select: str
    source: str
    filters: Mapping[str, FilterField]
    sort_fields: Mapping[str, str]
    default_sort: str
    default_direction: str = "DESC"
    tie_breaker: str | None = None
    where: tuple[str, ...] = ()
    count_expr: str = "COUNT(*)"
    summary: tuple[str, ...] = ()
    default_limit: int = 20
    json_columns: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.default_sort not in self.sort_fields:
            raise ValueError(
                f"Listing '{self.name}': default sort '{self.default_sort}' is not sortable"
            )
        if self.default_direction not in ("ASC", "DESC"):
            raise ValueError(f"Listing '{self.name}': bad default direction")


class _Binder:
    """Assigns strictly increasing placeholders to bound values."""

    def __init__(self, placeholder: str):
        self.placeholder = placeholder
        self.params: list[Any] = []

    def bind(self, value: Any) -> str:
        self.params.append(value)
        return self.placeholder.format(n=len(self.params))

    def render(self, predicate: Predicate) -> str:
        pieces = predicate.sql.split("{}")
        out = [pieces[0]]
        for value, piece in zip(predicate.values, pieces[1:]):
            out.append(self.bind(value))
            out.append(piece)
        return "".join(out)


def _escape_like(value: str) -> str:
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def _filter_predicate(spec: ListingSpec, flt: Filter) -> Predicate | None:
    """Translate one caller filter into a trusted predicate.

    Returns None for absent values.
    """
    allowed = spec.filters.get(flt.field)
    if allowed is None:
        raise ValidationError(f"Unknown filter field '{flt.field}'")
    if flt.operator not in allowed.operators:
        raise ValidationError(
            f"Operator '{flt.operator}' is not allowed for filter '{flt.field}'"
        )
    if flt.value is None:
        return None

    value = allowed.coerce(flt.value) if allowed.coerce else flt.value
    if value is None:
        return None

    if allowed.template is not None:
        return Predicate(allowed.template, (value,))

    sql_op = _OPERATOR_SQL[flt.operator]
    if flt.operator == "contains":
        value = f"%{_escape_like(str(value))}%"
        clauses = [f"{col} LIKE {{}} ESCAPE '{LIKE_ESCAPE}'" for col in allowed.columns]
    else:
        clauses = [f"{col} {sql_op} {{}}" for col in allowed.columns]

    if len(clauses) == 1:
        return Predicate(clauses[0], (value,))
    return Predicate("(" + " OR ".join(clauses) + ")", (value,) * len(clauses))


def resolve_sort(spec: ListingSpec, sort: SortRequest | None) -> tuple[str, str]:
    """Map a raw sort request onto (trusted column, direction)."""
    sort = sort or SortRequest()
    name = sort.field if sort.field in spec.sort_fields else spec.default_sort
    raw_direction = (sort.direction or "").strip().upper()
    direction = raw_direction if raw_direction in ("ASC", "DESC") else spec.default_direction
    return spec.sort_fields[name], direction


def _where_clause(binder: _Binder, spec: ListingSpec, predicates: Sequence[Predicate]) -> str:
    parts = list(spec.where) + [binder.render(p) for p in predicates]
    if not parts:
        return ""
    return " WHERE " + " AND ".join(parts)


def build_list_queries(
    spec: ListingSpec,
    filters: Iterable[Filter] = (),
    sort: SortRequest | None = None,
    page: PageRequest | None = None,
    scope: Iterable[Predicate] = (),
    placeholder: str = SQLITE_PLACEHOLDER,
) -> tuple[BuiltQuery, BuiltQuery]:
    """Build the page query and its count query.

    Args:
        spec: The listing declaration
        filters: Caller filters, in order
        sort: Raw sort request (may be None)
        page: Validated page request (defaults to page 1, listing limit)
        scope: Trusted predicates supplied by the service (e.g. ownership)
        placeholder: Placeholder style with an `{n}` slot

    Returns:
        (data_query, count_query)

    Raises:
        ValidationError: On a filter field or operator outside the allow-list,
            or a page whose offset does not fit a 64-bit integer
    """
    page = page or PageRequest()
    limit = page.effective_limit(spec.default_limit)
    offset = (page.page - 1) * limit
    if offset > MAX_OFFSET:
        raise ValidationError("page is out of range")

    predicates = list(scope)
    for flt in filters:
        predicate = _filter_predicate(spec, flt)
        if predicate is not None:
            predicates.append(predicate)

    column, direction = resolve_sort(spec, sort)
    order = f" ORDER BY {column} {direction}"
    if spec.tie_breaker:
        order += f", {spec.tie_breaker}"

    data_binder = _Binder(placeholder)
    data_where = _where_clause(data_binder, spec, predicates)
    limit_ph = data_binder.bind(limit)
    offset_ph = data_binder.bind(offset)
    data_query = BuiltQuery(
        text=(
            f"SELECT {spec.select} {spec.source}{data_where}{order}"
            f" LIMIT {limit_ph} OFFSET {offset_ph}"
        ),
        params=tuple(data_binder.params),
    )

    count_binder = _Binder(placeholder)
    count_where = _where_clause(count_binder, spec, predicates)
    summary = "".join(f", {s}" for s in spec.summary)
    count_query = BuiltQuery(
        text=f"SELECT {spec.count_expr} AS total_count{summary} {spec.source}{count_where}",
        params=tuple(count_binder.params),
    )

    return data_query, count_query
