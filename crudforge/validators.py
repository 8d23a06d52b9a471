# File: crudforge/validators.py
"""
crudforge - Metadata Validators
================================
Pure-function semantic validation layered on top of the Pydantic models
in ``crudforge.models``.

Pydantic covers per-field structure (types, duplicates, primary key
existence).  This module adds the checks that decide whether a table can
be generated safely: every identifier that will be baked into SQL text is
run through ``crudforge.security``, and flag combinations the templates
cannot honour are reported.

Usage by downstream modules:
    from crudforge.validators import validate_table_metadata
    result = validate_table_metadata(table)
    if not result:
        raise MetadataValidationError(...)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from crudforge.models import DataType, TableMetadata
from crudforge.security import IdentifierCheck, check_identifier

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.validators")

# ---------------------------------------------------------------------------
# Validation result container
# ---------------------------------------------------------------------------


class ValidationIssue:
    """Lightweight issue descriptor (no Pydantic overhead)."""

    __slots__ = ("level", "code", "message", "context")

    def __init__(
        self,
        level: str,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.level: str = level  # "error" | "warning" | "info"
        self.code: str = code
        self.message: str = message
        self.context: Dict[str, Any] = context or {}

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    @property
    def is_warning(self) -> bool:
        return self.level == "warning"

    def __repr__(self) -> str:
        return f"[{self.level.upper()}] {self.code}: {self.message}"

    def __str__(self) -> str:
        return self.__repr__()


class ValidationResult:
    """Accumulates ``ValidationIssue`` instances produced by the checks."""

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: List[ValidationIssue] = []

    # -- Mutation -----------------------------------------------------------

    def add_error(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(ValidationIssue("error", code, message, context))

    def add_warning(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(ValidationIssue("warning", code, message, context))

    def add_info(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(ValidationIssue("info", code, message, context))

    def merge(self, other: "ValidationResult") -> None:
        self._items.extend(other._items)

    # -- Query --------------------------------------------------------------

    @property
    def errors(self) -> List[ValidationIssue]:
        return [e for e in self._items if e.is_error]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [e for e in self._items if e.is_warning]

    @property
    def notices(self) -> List[ValidationIssue]:
        return [e for e in self._items if e.level == "info"]

    @property
    def has_errors(self) -> bool:
        return any(e.is_error for e in self._items)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    def codes(self) -> List[str]:
        return [item.code for item in self._items]

    def summary(self) -> str:
        return (
            f"Validation: {len(self.errors)} error(s), "
            f"{len(self.warnings)} warning(s), "
            f"{len(self.notices)} notice(s)."
        )

    def __repr__(self) -> str:
        return f"<ValidationResult {self.summary()}>"

    def __bool__(self) -> bool:
        """Truthy when there are NO errors (i.e. valid)."""
        return self.is_valid

    def __len__(self) -> int:
        return len(self._items)

    def format_report(self) -> str:
        """Human-readable multi-line report listing every issue."""
        lines: List[str] = [self.summary(), ""]
        for item in self._items:
            lines.append(f"  [{item.level}] [{item.code}] {item.message}")
            for k, v in item.context.items():
                lines.append(f"       {k}: {v}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------


def validate_table_identity(table: TableMetadata) -> ValidationResult:
    """Schema and table names end up quoted in every generated statement."""
    result = ValidationResult()
    for label, value in (("schema", table.schema_name), ("table", table.table_name)):
        check: IdentifierCheck = check_identifier(value, None, f"{label} name")
        if not check.ok:
            result.add_error(
                "IDENT_TABLE",
                check.reason or f"Invalid {label} name",
                {label: value},
            )
    return result


def validate_column_names(table: TableMetadata) -> ValidationResult:
    result = ValidationResult()
    for index, col in enumerate(table.columns):
        check = check_identifier(col.name, None, f"column[{index}]")
        if not check.ok:
            result.add_error(
                "IDENT_COLUMN",
                check.reason or "Invalid column name",
                {"table": table.table_name, "column": col.name},
            )
        elif col.name != col.name.lower():
            result.add_info(
                "IDENT_MIXED_CASE",
                f"Column '{col.name}' is mixed-case; it will always be quoted.",
                {"column": col.name},
            )
    return result


def validate_primary_key(table: TableMetadata) -> ValidationResult:
    result = ValidationResult()
    flagged: List[str] = [c.name for c in table.columns if c.is_primary_key]

    if table.primary_key is None:
        result.add_warning(
            "PK_MISSING",
            f"Table '{table.table_name}' has no primary key; by-id queries "
            "and repository methods are not generated.",
        )
        return result

    if len(flagged) > 1:
        result.add_warning(
            "PK_COMPOSITE",
            f"Composite primary key {flagged} is not supported; "
            f"'{table.primary_key}' is used for by-id queries.",
            {"columns": flagged},
        )
    if flagged and table.primary_key not in flagged:
        result.add_info(
            "PK_FLAG_MISMATCH",
            f"primary_key '{table.primary_key}' is not flagged is_primary_key.",
        )
    return result


def validate_filterability(table: TableMetadata) -> ValidationResult:
    result = ValidationResult()
    if not table.filterable_columns:
        result.add_warning(
            "FILTER_NONE",
            f"Table '{table.table_name}' has no filterable columns; every "
            "filter key will be rejected.",
        )
    for col in table.columns:
        if col.is_filterable and col.data_type == DataType.JSON:
            result.add_warning(
                "FILTER_JSON",
                f"Column '{col.name}' is JSON and filterable; only eq/null "
                "operators are meaningful.",
                {"column": col.name},
            )
    return result


def validate_column_constraints(table: TableMetadata) -> ValidationResult:
    result = ValidationResult()
    for col in table.columns:
        if col.max_length is not None and col.data_type != DataType.STRING:
            result.add_warning(
                "CONSTRAINT_MAX_LENGTH",
                f"max_length on non-string column '{col.name}' is ignored.",
            )
        has_bounds: bool = col.min_value is not None or col.max_value is not None
        if has_bounds and col.data_type not in (DataType.INTEGER, DataType.DECIMAL):
            result.add_warning(
                "CONSTRAINT_BOUNDS",
                f"min/max values on non-numeric column '{col.name}' are ignored.",
            )
        if col.enum_values and col.data_type != DataType.ENUM:
            result.add_warning(
                "CONSTRAINT_ENUM",
                f"enum_values on non-enum column '{col.name}' are ignored.",
            )
    for name in table.unique_columns:
        col = table.column(name)
        if col is not None and not col.is_unique and not col.is_primary_key:
            result.add_info(
                "UNIQUE_FLAG_MISMATCH",
                f"'{name}' is listed in unique_columns but not flagged is_unique.",
            )
    return result


def validate_lifecycle_columns(table: TableMetadata) -> ValidationResult:
    """Timestamp and soft-delete flags require the columns the templates touch."""
    result = ValidationResult()
    if table.has_timestamps:
        for required in ("created_at", "updated_at"):
            if table.column(required) is None:
                result.add_error(
                    "LIFECYCLE_TIMESTAMPS",
                    f"has_timestamps is set but column '{required}' is missing.",
                )
    if table.has_soft_delete and table.column("deleted_at") is None:
        result.add_error(
            "LIFECYCLE_SOFT_DELETE",
            "has_soft_delete is set but column 'deleted_at' is missing.",
        )
    return result


# ---------------------------------------------------------------------------
# Aggregate entry point
# ---------------------------------------------------------------------------

_CHECKS: List[Callable[[TableMetadata], ValidationResult]] = [
    validate_table_identity,
    validate_column_names,
    validate_primary_key,
    validate_filterability,
    validate_column_constraints,
    validate_lifecycle_columns,
]


def validate_table_metadata(table: TableMetadata) -> ValidationResult:
    """Run every check against *table* and merge the results."""
    result = ValidationResult()
    for check in _CHECKS:
        result.merge(check(table))

    logger.debug("%s: %s", table.key, result.summary())
    return result


__all__: List[str] = [
    "ValidationIssue",
    "ValidationResult",
    "validate_table_identity",
    "validate_column_names",
    "validate_primary_key",
    "validate_filterability",
    "validate_column_constraints",
    "validate_lifecycle_columns",
    "validate_table_metadata",
]

logger.debug("crudforge.validators loaded.")
