# File: crudforge/models.py
"""
crudforge - Core Data Models
=============================
Pydantic V2 models describing the generation target (a single table and
its columns), the persisted checksum record, and the options accepted by
the orchestrator.  These models are the single source of truth for the
pipeline: Metadata → Validation → Compilation/Templates → Merge → Write.

``TableMetadata`` is treated as immutable for the duration of one
generation run; its canonical JSON dump is what the drift tracker hashes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.models")

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DataType(str, Enum):
    """Abstract column type vocabulary shared by compiler and templates."""

    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    UUID = "uuid"
    JSON = "json"
    ENUM = "enum"

    @classmethod
    def from_sql_type(cls, type_name: str) -> "DataType":
        """
        Map a raw database type name onto the vocabulary.

        Length/precision suffixes are ignored (``varchar(255)`` → string).
        Unknown names fall back to ``STRING``.
        """
        raw: str = type_name.strip().lower()
        if raw in _DATA_TYPE_VALUES:
            return cls(raw)
        base: str = raw.split("(", 1)[0].strip()
        if base.endswith("[]"):
            return cls.JSON
        return _SQL_TYPE_ALIASES.get(base, cls.STRING)


_DATA_TYPE_VALUES: frozenset = frozenset(t.value for t in DataType)

_SQL_TYPE_ALIASES: Dict[str, DataType] = {
    # String-like
    "varchar": DataType.STRING,
    "character varying": DataType.STRING,
    "char": DataType.STRING,
    "character": DataType.STRING,
    "text": DataType.STRING,
    "citext": DataType.STRING,
    "str": DataType.STRING,
    "nvarchar": DataType.STRING,
    "tinytext": DataType.STRING,
    "mediumtext": DataType.STRING,
    "longtext": DataType.STRING,
    # Integer-like
    "int": DataType.INTEGER,
    "int2": DataType.INTEGER,
    "int4": DataType.INTEGER,
    "int8": DataType.INTEGER,
    "smallint": DataType.INTEGER,
    "bigint": DataType.INTEGER,
    "tinyint": DataType.INTEGER,
    "mediumint": DataType.INTEGER,
    "serial": DataType.INTEGER,
    "bigserial": DataType.INTEGER,
    "smallserial": DataType.INTEGER,
    # Decimal-like
    "numeric": DataType.DECIMAL,
    "real": DataType.DECIMAL,
    "float": DataType.DECIMAL,
    "float4": DataType.DECIMAL,
    "float8": DataType.DECIMAL,
    "double": DataType.DECIMAL,
    "double precision": DataType.DECIMAL,
    "money": DataType.DECIMAL,
    # Boolean
    "bool": DataType.BOOLEAN,
    # Date / time
    "date": DataType.DATETIME,
    "time": DataType.DATETIME,
    "timetz": DataType.DATETIME,
    "timestamp": DataType.DATETIME,
    "timestamptz": DataType.DATETIME,
    "timestamp without time zone": DataType.DATETIME,
    "timestamp with time zone": DataType.DATETIME,
    "time without time zone": DataType.DATETIME,
    "time with time zone": DataType.DATETIME,
    "interval": DataType.DATETIME,
    # Special
    "jsonb": DataType.JSON,
    "user-defined": DataType.ENUM,
}


class Dialect(str, Enum):
    """SQL dialects the filter compiler and templates can target."""

    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLITE = "sqlite"


class Architecture(str, Enum):
    """Output directory layouts for generated modules."""

    STANDALONE = "standalone"
    MONOREPO = "monorepo"
    MICROSERVICE = "microservice"


# ---------------------------------------------------------------------------
# Shared model configuration
# ---------------------------------------------------------------------------

_SHARED_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    validate_assignment=True,
    use_enum_values=True,
    frozen=False,
    extra="forbid",
)


# ---------------------------------------------------------------------------
# Column & table metadata
# ---------------------------------------------------------------------------


class ColumnMetadata(BaseModel):
    """
    Complete description of one column of the generation target.

    ``is_filterable`` columns are the only columns the filter compiler
    accepts in a filter key; every other column is rejected even when the
    name is syntactically valid.
    """

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1, description="Column name.")
    data_type: DataType = Field(
        default=DataType.STRING, description="Abstract column type."
    )
    is_nullable: bool = Field(default=True, description="Allows NULL?")
    is_primary_key: bool = Field(default=False, description="Part of the primary key?")
    is_unique: bool = Field(default=False, description="Has a UNIQUE constraint?")
    is_filterable: bool = Field(
        default=True, description="May appear in a runtime filter key."
    )
    is_sortable: Optional[bool] = Field(
        default=None,
        description="May appear in ORDER BY; defaults to is_filterable.",
    )
    max_length: Optional[int] = Field(
        default=None, ge=1, description="Max length for string columns."
    )
    min_value: Optional[float] = Field(
        default=None, description="Inclusive lower bound for numeric columns."
    )
    max_value: Optional[float] = Field(
        default=None, description="Inclusive upper bound for numeric columns."
    )
    enum_values: Optional[List[str]] = Field(
        default=None, description="Allowed values for enum columns."
    )
    default: Optional[str] = Field(
        default=None, description="Raw SQL default expression (informational)."
    )

    @field_validator("data_type", mode="before")
    @classmethod
    def _coerce_sql_type(cls, v: Any) -> Any:
        if isinstance(v, str) and not isinstance(v, DataType):
            return DataType.from_sql_type(v)
        return v

    @field_validator("enum_values")
    @classmethod
    def _unique_enum_values(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is not None and len(v) != len(set(v)):
            dupes: List[str] = sorted({x for x in v if v.count(x) > 1})
            raise ValueError(f"Duplicate enum values detected: {dupes}")
        return v

    @model_validator(mode="after")
    def _validate_enum_has_values(self) -> "ColumnMetadata":
        if self.data_type == DataType.ENUM and not self.enum_values:
            raise ValueError(
                f"Column '{self.name}' is of type enum but 'enum_values' is empty."
            )
        return self

    @model_validator(mode="after")
    def _validate_bounds(self) -> "ColumnMetadata":
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            raise ValueError(
                f"Column '{self.name}': min_value ({self.min_value}) "
                f"exceeds max_value ({self.max_value})."
            )
        return self

    @property
    def sortable(self) -> bool:
        if self.is_sortable is None:
            return self.is_filterable
        return self.is_sortable

    @property
    def python_type_hint(self) -> str:
        """Python annotation used by the schema template."""
        if self.data_type == DataType.ENUM and self.enum_values:
            inner: str = ", ".join(repr(v) for v in self.enum_values)
            return f"Literal[{inner}]"
        return _PYTHON_TYPE_MAP.get(self.data_type, "str")

    def __repr__(self) -> str:
        pk_flag: str = " PK" if self.is_primary_key else ""
        null_flag: str = " NULL" if self.is_nullable else " NOT NULL"
        return f"<Column {self.name} {self.data_type}{pk_flag}{null_flag}>"


_PYTHON_TYPE_MAP: Dict[str, str] = {
    "string": "str",
    "integer": "int",
    "decimal": "Decimal",
    "boolean": "bool",
    "datetime": "datetime",
    "uuid": "UUID",
    "json": "Any",
    "enum": "str",
}


class TableMetadata(BaseModel):
    """
    Identity and shape of one generation target.

    Produced by introspection or supplied literally; re-fetched on every
    regeneration and never mutated during a run.
    """

    model_config = _SHARED_CONFIG

    schema_name: str = Field(
        default="public", min_length=1, alias="schema", description="Database schema."
    )
    table_name: str = Field(..., min_length=1, alias="table", description="Table name.")
    columns: List[ColumnMetadata] = Field(
        ..., min_length=1, description="Ordered column list."
    )
    primary_key: Optional[str] = Field(
        default=None, description="Primary key column name."
    )
    unique_columns: List[str] = Field(
        default_factory=list, description="Columns carrying UNIQUE constraints."
    )
    has_timestamps: bool = Field(
        default=False, description="Table has created_at / updated_at columns."
    )
    has_soft_delete: bool = Field(
        default=False, description="Rows are soft-deleted via deleted_at."
    )

    @model_validator(mode="after")
    def _validate_unique_column_names(self) -> "TableMetadata":
        seen: Dict[str, str] = {}
        for col in self.columns:
            lowered: str = col.name.lower()
            if lowered in seen:
                raise ValueError(
                    f"Duplicate column '{col.name}' in table '{self.table_name}'."
                )
            seen[lowered] = col.name
        return self

    @model_validator(mode="after")
    def _resolve_primary_key(self) -> "TableMetadata":
        names: List[str] = [c.name for c in self.columns]
        if self.primary_key is None:
            for col in self.columns:
                if col.is_primary_key:
                    # Bypass validate_assignment recursion.
                    object.__setattr__(self, "primary_key", col.name)
                    break
        elif self.primary_key not in names:
            raise ValueError(
                f"Primary key '{self.primary_key}' is not a column of "
                f"'{self.table_name}'."
            )
        return self

    @model_validator(mode="after")
    def _validate_unique_columns(self) -> "TableMetadata":
        names = {c.name for c in self.columns}
        missing: List[str] = [u for u in self.unique_columns if u not in names]
        if missing:
            raise ValueError(
                f"unique_columns reference unknown columns: {missing}."
            )
        return self

    # -- Helpers ------------------------------------------------------------

    @property
    def key(self) -> str:
        """Checksum-store key: ``"schema.table"``."""
        return f"{self.schema_name}.{self.table_name}"

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    @property
    def filterable_columns(self) -> List[str]:
        return [c.name for c in self.columns if c.is_filterable]

    @property
    def sortable_columns(self) -> List[str]:
        return [c.name for c in self.columns if c.sortable]

    @property
    def primary_key_column(self) -> Optional[ColumnMetadata]:
        if self.primary_key is None:
            return None
        return self.column(self.primary_key)

    def column(self, name: str) -> Optional[ColumnMetadata]:
        """Case-insensitive column lookup."""
        lowered: str = name.lower()
        for col in self.columns:
            if col.name.lower() == lowered:
                return col
        return None

    def __repr__(self) -> str:
        return f"<Table {self.key} ({len(self.columns)} columns)>"


# ---------------------------------------------------------------------------
# Compiled query
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CompiledQuery:
    """SQL text with positional placeholders plus the ordered bound values."""

    text: str
    values: List[Any] = field(default_factory=list)

    @property
    def placeholder_count(self) -> int:
        return len(self.values)


# ---------------------------------------------------------------------------
# Checksum store record
# ---------------------------------------------------------------------------


class MetadataRecord(BaseModel):
    """
    One entry of the checksum store, keyed by ``"schema.table"``.

    Persisted with camelCase keys (``generatedAt`` / ``updatedAt``).
    ``generated_at`` is fixed at first creation; ``updated_at`` is refreshed
    on every accepted regeneration.
    """

    model_config = _SHARED_CONFIG

    checksum: str = Field(..., min_length=1, description="SHA-256 of the metadata.")
    metadata: Dict[str, Any] = Field(
        ..., description="Canonical dump of the TableMetadata."
    )
    generated_at: datetime = Field(..., alias="generatedAt")
    updated_at: datetime = Field(..., alias="updatedAt")


# ---------------------------------------------------------------------------
# Generation options & outputs
# ---------------------------------------------------------------------------


class GenerateOptions(BaseModel):
    """Per-call inputs for ``CrudGenerator.generate_module``."""

    model_config = _SHARED_CONFIG

    schema_name: str = Field(default="public", alias="schema")
    table_name: str = Field(..., min_length=1, alias="table")
    metadata: Optional[TableMetadata] = Field(
        default=None, description="Literal metadata; skips introspection."
    )
    database_url: Optional[str] = Field(
        default=None, description="SQLAlchemy URL used for introspection."
    )
    module_name: Optional[str] = Field(
        default=None, description="Output module name (defaults from table)."
    )
    output_path: Optional[str] = Field(
        default=None, description="Project root; defaults to the config value."
    )
    architecture: Optional[Architecture] = None
    app_name: Optional[str] = None
    force: bool = Field(default=False, description="Accept metadata drift.")
    dry_run: bool = Field(default=False, description="Compute but never write.")
    archive_orphans: Optional[bool] = Field(
        default=None, description="Write orphaned blocks to a sidecar file."
    )


class GeneratedFile(BaseModel):
    """A candidate file produced by the templates (path relative to module dir)."""

    model_config = _SHARED_CONFIG

    path: str = Field(..., min_length=1, description="Relative file path.")
    content: str = Field(..., description="Full file content.")

    @property
    def line_count(self) -> int:
        return self.content.count("\n") + (0 if self.content.endswith("\n") else 1)


__all__: List[str] = [
    "DataType",
    "Dialect",
    "Architecture",
    "ColumnMetadata",
    "TableMetadata",
    "CompiledQuery",
    "MetadataRecord",
    "GenerateOptions",
    "GeneratedFile",
]

logger.debug("crudforge.models loaded, %d public symbols.", len(__all__))
