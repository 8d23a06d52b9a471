# File: crudforge/filters.py
"""
crudforge - Filter Query Compiler
==================================
Turns an open-ended filter map (query-string style) into a parameterised
SQL fragment for a fixed base query.

Wire format::

    {"status_eq": "active", "age_between": [18, 30], "name_like": "ann",
     "deleted_at_null": True, "sort": "name:DESC", "limit": 10, "page": 2}

Keys are ``<column>_<operator>`` or a bare ``<column>`` (implicit ``eq``);
``page``, ``limit``, ``sort``, ``order`` and ``offset`` (optionally
``_``-prefixed) are control keys.

Pipeline:
    1. ``parse_filter_key`` splits every key into field + operator.
    2. The field is authorised with ``security.validate_identifier``
       against the filterable-column whitelist; a rejection aborts the
       whole compilation with ``InvalidIdentifier``.
    3. Values become typed ``Condition`` variants; values only ever reach
       the output through the bound parameter list.
    4. Conditions render against a ``SqlDialect`` (quoting, placeholder
       style, case-insensitive LIKE).

Malformed values (a one-element ``between``, an empty ``in`` list, an
unparsable ``limit``) are dropped by default.  ``strict=True`` raises
``MalformedFilterValue`` instead.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from crudforge.errors import InvalidValue, MalformedFilterValue
from crudforge.models import (
    ColumnMetadata,
    CompiledQuery,
    DataType,
    Dialect,
    TableMetadata,
)
from crudforge.security import FILTER_OPERATORS, validate_identifier, validate_uuid

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.filters")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_FILTER_KEY_RE: re.Pattern[str] = re.compile(r"^(.+)_([a-z]+)$")
_WHERE_RE: re.Pattern[str] = re.compile(r"\bWHERE\b", re.IGNORECASE)
_INTEGER_RE: re.Pattern[str] = re.compile(r"^[+-]?\d+$")

# Accepted spelling -> canonical control name
CONTROL_KEYS: Dict[str, str] = {
    "page": "page",
    "limit": "limit",
    "sort": "sort",
    "order": "order",
    "offset": "offset",
    "_page": "page",
    "_limit": "limit",
    "_sort": "sort",
    "_order": "order",
    "_offset": "offset",
}

_COMPARISON_SQL: Dict[str, str] = {
    "eq": "=",
    "ne": "<>",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}

_TRUE_STRINGS: frozenset = frozenset({"true", "t", "1", "yes", "y", "on"})
_FALSE_STRINGS: frozenset = frozenset({"false", "f", "0", "no", "n", "off"})

# (field, operator, raw value) -> coerced value; raises MalformedFilterValue
ValueCoercer = Callable[[str, str, Any], Any]


# ---------------------------------------------------------------------------
# Dialects
# ---------------------------------------------------------------------------


class SqlDialect:
    """Identifier quoting, placeholder style and case-insensitive LIKE."""

    name: str = "postgresql"
    quote_char: str = '"'

    def quote(self, identifier: str) -> str:
        q: str = self.quote_char
        return f"{q}{identifier.replace(q, q + q)}{q}"

    def qualified(self, schema: str, table: str) -> str:
        return f"{self.quote(schema)}.{self.quote(table)}"

    def placeholder(self, index: int) -> str:
        return f"${index}"

    def ilike(self, column_sql: str, placeholder: str) -> str:
        return f"{column_sql} ILIKE {placeholder}"

    def __repr__(self) -> str:
        return f"<SqlDialect {self.name}>"


class MySQLDialect(SqlDialect):
    name = "mysql"
    quote_char = "`"

    def placeholder(self, index: int) -> str:
        return "?"

    def ilike(self, column_sql: str, placeholder: str) -> str:
        return f"LOWER({column_sql}) LIKE LOWER({placeholder})"


class SQLiteDialect(SqlDialect):
    name = "sqlite"

    def placeholder(self, index: int) -> str:
        return "?"

    def ilike(self, column_sql: str, placeholder: str) -> str:
        # LIKE is already case-insensitive for ASCII in SQLite
        return f"{column_sql} LIKE {placeholder}"


_DIALECTS: Dict[str, SqlDialect] = {
    Dialect.POSTGRESQL.value: SqlDialect(),
    Dialect.MYSQL.value: MySQLDialect(),
    Dialect.SQLITE.value: SQLiteDialect(),
}


def get_dialect(dialect: Union[str, Dialect, SqlDialect, None] = None) -> SqlDialect:
    """Resolve a dialect name (``postgresql`` by default) to its renderer."""
    if isinstance(dialect, SqlDialect):
        return dialect
    key: str = Dialect.POSTGRESQL.value if dialect is None else str(Dialect(dialect).value)
    return _DIALECTS[key]


class ParameterList:
    """Ordered bound values; ``add`` returns the placeholder for the new value."""

    __slots__ = ("_dialect", "values")

    def __init__(self, dialect: SqlDialect) -> None:
        self._dialect: SqlDialect = dialect
        self.values: List[Any] = []

    def add(self, value: Any) -> str:
        self.values.append(value)
        return self._dialect.placeholder(len(self.values))


# ---------------------------------------------------------------------------
# Condition variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Comparison:
    """``eq`` / ``ne`` / ``gt`` / ``gte`` / ``lt`` / ``lte``."""

    field: str
    operator: str
    value: Any

    def render(self, dialect: SqlDialect, params: ParameterList) -> str:
        sql_op: str = _COMPARISON_SQL[self.operator]
        return f"{dialect.quote(self.field)} {sql_op} {params.add(self.value)}"


@dataclass(frozen=True, slots=True)
class Like:
    """Case-insensitive substring match; ``pattern`` already carries ``%``."""

    field: str
    pattern: str

    def render(self, dialect: SqlDialect, params: ParameterList) -> str:
        return dialect.ilike(dialect.quote(self.field), params.add(self.pattern))


@dataclass(frozen=True, slots=True)
class InList:
    """``in`` / ``nin``; never constructed with an empty ``values``."""

    field: str
    values: Tuple[Any, ...]
    negated: bool = False

    def render(self, dialect: SqlDialect, params: ParameterList) -> str:
        placeholders: str = ", ".join(params.add(v) for v in self.values)
        keyword: str = "NOT IN" if self.negated else "IN"
        return f"{dialect.quote(self.field)} {keyword} ({placeholders})"


@dataclass(frozen=True, slots=True)
class Between:
    field: str
    low: Any
    high: Any

    def render(self, dialect: SqlDialect, params: ParameterList) -> str:
        low_ph: str = params.add(self.low)
        high_ph: str = params.add(self.high)
        return f"{dialect.quote(self.field)} BETWEEN {low_ph} AND {high_ph}"


@dataclass(frozen=True, slots=True)
class NullCheck:
    """``null`` / ``nnull``; binds no parameter."""

    field: str
    negated: bool = False

    def render(self, dialect: SqlDialect, params: ParameterList) -> str:
        keyword: str = "IS NOT NULL" if self.negated else "IS NULL"
        return f"{dialect.quote(self.field)} {keyword}"


Condition = Union[Comparison, Like, InList, Between, NullCheck]


@dataclass(frozen=True, slots=True)
class FilterKey:
    field: str
    operator: str


@dataclass(frozen=True, slots=True)
class SortSpec:
    field: str
    direction: str = "ASC"


@dataclass(frozen=True, slots=True)
class Pagination:
    limit: Optional[int] = None
    offset: Optional[int] = None


@dataclass(slots=True)
class ParsedFilters:
    """Output of the single parse step, ready to render."""

    conditions: List[Condition] = field(default_factory=list)
    sort: Optional[SortSpec] = None
    pagination: Pagination = field(default_factory=Pagination)
    dropped: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def parse_filter_key(key: str) -> FilterKey:
    """
    Split ``<field>_<operator>`` into its parts.

    The trailing lowercase token after the last underscore is the operator
    when it is one of the 12 known operators; otherwise the whole key is an
    equality filter on a field of that name.

    Examples:
        >>> parse_filter_key("created_at_gte")
        FilterKey(field='created_at', operator='gte')
        >>> parse_filter_key("created_at")
        FilterKey(field='created_at', operator='eq')
    """
    match = _FILTER_KEY_RE.match(key)
    if match and match.group(2) in FILTER_OPERATORS:
        return FilterKey(match.group(1), match.group(2))
    return FilterKey(key, "eq")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def parse_list_value(value: Any) -> List[Any]:
    """
    Coerce an ``in``/``nin``/``between`` value to a list.

    Lists/tuples/sets are kept, strings are comma-split and trimmed, other
    scalars are wrapped.  ``None`` and empty-string items are discarded.
    """
    if isinstance(value, (list, tuple, set, frozenset)):
        items: List[Any] = list(value)
    elif isinstance(value, str):
        items = [part.strip() for part in value.split(",")]
    else:
        items = [value]
    return [item for item in items if not _is_blank(item)]


def parse_int(value: Any) -> Optional[int]:
    """Integer coercion for control values; ``None`` when unparsable."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(value, str) and _INTEGER_RE.match(value.strip()):
        return int(value.strip())
    return None


class _Policy:
    """Drop-or-raise decision for malformed input."""

    __slots__ = ("strict", "dropped")

    def __init__(self, strict: bool) -> None:
        self.strict: bool = strict
        self.dropped: List[str] = []

    def malformed(self, key: str, message: str, value: Any = None) -> None:
        if self.strict:
            raise MalformedFilterValue(
                f"Malformed filter value for '{key}': {message}",
                details={"key": key, "value": repr(value)},
            )
        logger.debug("Dropping filter '%s': %s (value=%r)", key, message, value)
        self.dropped.append(key)


def _build_condition(
    key: str,
    field_name: str,
    operator: str,
    value: Any,
    policy: _Policy,
    coerce: Optional[ValueCoercer],
) -> Optional[Condition]:
    def convert(raw: Any) -> Any:
        if coerce is None:
            return raw
        return coerce(field_name, operator, raw)

    try:
        if operator in _COMPARISON_SQL:
            if isinstance(value, (list, tuple, set, dict)):
                policy.malformed(key, "expected a scalar value", value)
                return None
            return Comparison(field_name, operator, convert(value))

        if operator == "like":
            if isinstance(value, (list, tuple, set, dict)):
                policy.malformed(key, "expected a text value", value)
                return None
            return Like(field_name, f"%{value}%")

        if operator in ("in", "nin"):
            items: List[Any] = parse_list_value(value)
            if not items:
                policy.malformed(key, "empty list", value)
                return None
            return InList(
                field_name,
                tuple(convert(item) for item in items),
                negated=operator == "nin",
            )

        if operator == "between":
            bounds: List[Any] = parse_list_value(value)
            if len(bounds) < 2 or (policy.strict and len(bounds) != 2):
                policy.malformed(key, "between needs exactly two values", value)
                return None
            return Between(field_name, convert(bounds[0]), convert(bounds[1]))

        if operator in ("null", "nnull"):
            return NullCheck(field_name, negated=operator == "nnull")

    except MalformedFilterValue as exc:
        if policy.strict:
            raise
        policy.malformed(key, exc.message, value)
        return None

    # parse_filter_key only yields known operators
    raise AssertionError(f"unhandled filter operator {operator!r}")


def _parse_sort(
    controls: Dict[str, Any],
    sortable: Optional[Sequence[str]],
) -> Optional[SortSpec]:
    raw_sort: Any = controls.get("sort")
    if _is_blank(raw_sort):
        return None

    sort_text: str = str(raw_sort)
    field_part, sep, direction_part = sort_text.partition(":")
    direction_source: Any = direction_part if sep else controls.get("order")

    sort_field: str = validate_identifier(field_part, sortable, "sort field")
    direction: str = (
        "DESC"
        if isinstance(direction_source, str) and direction_source.strip().lower() == "desc"
        else "ASC"
    )
    return SortSpec(sort_field, direction)


def _parse_pagination(controls: Dict[str, Any], policy: _Policy) -> Pagination:
    parsed: Dict[str, Optional[int]] = {}
    for name, minimum in (("limit", 1), ("page", 1), ("offset", 0)):
        raw: Any = controls.get(name)
        if _is_blank(raw):
            parsed[name] = None
            continue
        number: Optional[int] = parse_int(raw)
        if number is None:
            policy.malformed(name, "not an integer", raw)
        elif number < minimum:
            policy.malformed(name, f"must be >= {minimum}", raw)
            number = None
        parsed[name] = number

    limit: Optional[int] = parsed["limit"]
    page: Optional[int] = parsed["page"]
    offset: Optional[int] = parsed["offset"]

    if limit is not None and offset is None and page is not None:
        offset = (page - 1) * limit
    return Pagination(limit=limit, offset=offset)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_filters(
    filters: Mapping[str, Any],
    whitelist: Optional[Iterable[str]],
    *,
    strict: bool = False,
    sortable: Optional[Iterable[str]] = None,
    coerce: Optional[ValueCoercer] = None,
) -> ParsedFilters:
    """
    Parse a filter map into typed conditions, sort and pagination.

    Raises:
        InvalidIdentifier: A filter or sort field is not whitelisted.
        MalformedFilterValue: Only when *strict* is set.
    """
    allowed: Optional[List[str]] = list(whitelist) if whitelist is not None else None
    sort_allowed: Optional[List[str]] = list(sortable) if sortable is not None else allowed
    policy = _Policy(strict)

    conditions: List[Condition] = []
    controls: Dict[str, Any] = {}

    for key, value in filters.items():
        if _is_blank(value):
            continue
        control: Optional[str] = CONTROL_KEYS.get(key)
        if control is not None:
            controls[control] = value
            continue

        parsed_key: FilterKey = parse_filter_key(key)
        field_name: str = validate_identifier(parsed_key.field, allowed, "filter field")
        condition: Optional[Condition] = _build_condition(
            key, field_name, parsed_key.operator, value, policy, coerce
        )
        if condition is not None:
            conditions.append(condition)

    sort: Optional[SortSpec] = _parse_sort(controls, sort_allowed)
    pagination: Pagination = _parse_pagination(controls, policy)

    return ParsedFilters(
        conditions=conditions,
        sort=sort,
        pagination=pagination,
        dropped=policy.dropped,
    )


def render_query(
    base_query: str,
    parsed: ParsedFilters,
    dialect: Union[str, Dialect, SqlDialect, None] = None,
) -> CompiledQuery:
    """Append WHERE/ORDER BY/LIMIT/OFFSET clauses for *parsed* to *base_query*."""
    renderer: SqlDialect = get_dialect(dialect)
    params = ParameterList(renderer)
    text: str = base_query.rstrip()

    if parsed.conditions:
        clauses: List[str] = [c.render(renderer, params) for c in parsed.conditions]
        joiner: str = " AND " if _WHERE_RE.search(text) else " WHERE "
        text += joiner + " AND ".join(clauses)

    if parsed.sort is not None:
        text += f" ORDER BY {renderer.quote(parsed.sort.field)} {parsed.sort.direction}"

    if parsed.pagination.limit is not None:
        text += f" LIMIT {int(parsed.pagination.limit)}"
    if parsed.pagination.offset is not None:
        text += f" OFFSET {int(parsed.pagination.offset)}"

    return CompiledQuery(text=text, values=params.values)


def compile_filter_query(
    base_query: str,
    filters: Mapping[str, Any],
    whitelist: Optional[Iterable[str]],
    *,
    dialect: Union[str, Dialect, SqlDialect, None] = None,
    strict: bool = False,
    sortable: Optional[Iterable[str]] = None,
    coerce: Optional[ValueCoercer] = None,
) -> CompiledQuery:
    """
    Compile *filters* into a parameterised fragment appended to *base_query*.

    Args:
        base_query: SQL text the clauses are appended to.
        filters: Flat filter map (see module docstring).
        whitelist: Filterable column names; keys naming anything else raise.
        dialect: ``postgresql`` (default, ``$n`` placeholders), ``mysql`` or
            ``sqlite`` (``?`` placeholders).
        strict: Raise ``MalformedFilterValue`` instead of dropping.
        sortable: Columns allowed in ``sort``; defaults to *whitelist*.
        coerce: Optional per-value conversion hook.

    Returns:
        ``CompiledQuery`` whose ``values`` line up with the placeholders.

    Example:
        >>> q = compile_filter_query(
        ...     "SELECT * FROM t",
        ...     {"status_eq": "active", "limit": 10},
        ...     ["status"],
        ... )
        >>> q.text
        'SELECT * FROM t WHERE "status" = $1 LIMIT 10'
    """
    parsed: ParsedFilters = parse_filters(
        filters, whitelist, strict=strict, sortable=sortable, coerce=coerce
    )
    compiled: CompiledQuery = render_query(base_query, parsed, dialect)
    logger.debug(
        "Compiled %d condition(s), %d value(s), %d dropped: %s",
        len(parsed.conditions),
        len(compiled.values),
        len(parsed.dropped),
        compiled.text,
    )
    return compiled


# ---------------------------------------------------------------------------
# Metadata-aware compiler
# ---------------------------------------------------------------------------


class FilterCompiler:
    """
    Compiler bound to one table's metadata.

    On top of ``compile_filter_query`` it converts every bound value to the
    column's type and enforces ``enum_values`` and ``min_value``/``max_value``;
    violations follow the same drop-or-raise policy.

    Usage::

        compiler = FilterCompiler(table, dialect="postgresql")
        query = compiler.compile(f"SELECT * FROM {compiler.from_clause}", request_args)
    """

    def __init__(
        self,
        table: TableMetadata,
        *,
        dialect: Union[str, Dialect, SqlDialect, None] = None,
        strict: bool = False,
    ) -> None:
        self._table: TableMetadata = table
        self._dialect: SqlDialect = get_dialect(dialect)
        self._strict: bool = strict

    @property
    def dialect(self) -> SqlDialect:
        return self._dialect

    @property
    def from_clause(self) -> str:
        schema: str = validate_identifier(self._table.schema_name, None, "schema")
        table: str = validate_identifier(self._table.table_name, None, "table")
        return self._dialect.qualified(schema, table)

    def parse(self, filters: Mapping[str, Any]) -> ParsedFilters:
        return parse_filters(
            filters,
            self._table.filterable_columns,
            strict=self._strict,
            sortable=self._table.sortable_columns,
            coerce=self._coerce,
        )

    def compile(self, base_query: str, filters: Mapping[str, Any]) -> CompiledQuery:
        return render_query(base_query, self.parse(filters), self._dialect)

    # -- Value coercion -----------------------------------------------------

    def _coerce(self, field_name: str, operator: str, value: Any) -> Any:
        column: Optional[ColumnMetadata] = self._table.column(field_name)
        if column is None:
            return value
        return _coerce_checked(column, value)


def column_coercer(rules: Mapping[str, Mapping[str, Any]]) -> ValueCoercer:
    """
    Coercion hook for ``compile_filter_query`` built from per-column rules.

    *rules* maps a column name to ``ColumnMetadata`` fields (``data_type``,
    ``enum_values``, ``min_value``, ``max_value``).  Generated ``queries``
    modules embed such a table so their filters get the same conversion and
    bounds checks as ``FilterCompiler``.  Columns without a rule pass through.
    """
    columns: Dict[str, ColumnMetadata] = {
        name.lower(): ColumnMetadata(name=name, **dict(rule)) for name, rule in rules.items()
    }

    def coerce(field_name: str, operator: str, value: Any) -> Any:
        column: Optional[ColumnMetadata] = columns.get(field_name.lower())
        if column is None:
            return value
        return _coerce_checked(column, value)

    return coerce


def _coerce_checked(column: ColumnMetadata, value: Any) -> Any:
    converted: Any = coerce_column_value(column, value)
    _check_bounds(column, converted)
    return converted


def coerce_column_value(column: ColumnMetadata, value: Any) -> Any:
    """
    Convert a raw filter value to the column's Python type.

    Raises:
        MalformedFilterValue: The value cannot represent the column type.
    """
    data_type: str = column.data_type

    def fail(expected: str) -> MalformedFilterValue:
        return MalformedFilterValue(
            f"'{column.name}' expects {expected}, got {value!r}",
            details={"column": column.name, "value": repr(value)},
        )

    if data_type == DataType.INTEGER:
        number: Optional[int] = parse_int(value)
        if number is None:
            raise fail("an integer")
        return number

    if data_type == DataType.DECIMAL:
        if isinstance(value, bool):
            raise fail("a number")
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise fail("a number") from None
        if not result.is_finite():
            raise fail("a finite number")
        return result

    if data_type == DataType.BOOLEAN:
        if isinstance(value, bool):
            return value
        lowered: str = str(value).strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise fail("a boolean")

    if data_type == DataType.UUID:
        try:
            return validate_uuid(value, column.name)
        except InvalidValue:
            raise fail("a UUID") from None

    if data_type == DataType.ENUM:
        if column.enum_values and str(value) not in column.enum_values:
            raise fail(f"one of {column.enum_values}")
        return str(value)

    return value


def _check_bounds(column: ColumnMetadata, value: Any) -> None:
    if column.data_type not in (DataType.INTEGER, DataType.DECIMAL):
        return
    numeric = Decimal(str(value))
    if column.min_value is not None and numeric < Decimal(str(column.min_value)):
        raise MalformedFilterValue(
            f"'{column.name}' must be >= {column.min_value}, got {value!r}",
            details={"column": column.name, "value": repr(value)},
        )
    if column.max_value is not None and numeric > Decimal(str(column.max_value)):
        raise MalformedFilterValue(
            f"'{column.name}' must be <= {column.max_value}, got {value!r}",
            details={"column": column.name, "value": repr(value)},
        )


__all__: List[str] = [
    "CONTROL_KEYS",
    "SqlDialect",
    "MySQLDialect",
    "SQLiteDialect",
    "get_dialect",
    "ParameterList",
    "Comparison",
    "Like",
    "InList",
    "Between",
    "NullCheck",
    "Condition",
    "FilterKey",
    "SortSpec",
    "Pagination",
    "ParsedFilters",
    "parse_filter_key",
    "parse_list_value",
    "parse_int",
    "parse_filters",
    "render_query",
    "compile_filter_query",
    "FilterCompiler",
    "column_coercer",
    "coerce_column_value",
]

logger.debug("crudforge.filters loaded.")
