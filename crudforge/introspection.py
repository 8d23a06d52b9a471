# File: crudforge/introspection.py
"""
crudforge - Live Database Introspection
========================================
Reads one table's shape from a running database through SQLAlchemy's
runtime inspector and returns it as ``TableMetadata``.

Only the catalogue calls the generator needs are used:
``get_columns``, ``get_pk_constraint`` and ``get_unique_constraints``.
Every column comes back filterable; callers narrow that in a metadata
file when they need to.

SQLite has no schemas beyond ``main``; the default ``public`` schema is
mapped onto it so the same options work against a local file database.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import create_engine, inspect
from sqlalchemy import types as sqltypes
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from crudforge.errors import IntrospectionError
from crudforge.models import ColumnMetadata, DataType, TableMetadata
from crudforge.security import validate_identifier
from crudforge.templates import SOFT_DELETE_COLUMN, TIMESTAMP_COLUMNS

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.introspection")

# Checked in order; Enum before String because it subclasses it
_GENERIC_TYPES: tuple = (
    (sqltypes.Enum, DataType.ENUM),
    (sqltypes.Boolean, DataType.BOOLEAN),
    (sqltypes.Integer, DataType.INTEGER),
    (sqltypes.Numeric, DataType.DECIMAL),
    (sqltypes.DateTime, DataType.DATETIME),
    (sqltypes.Date, DataType.DATETIME),
    (sqltypes.Time, DataType.DATETIME),
    (sqltypes.Interval, DataType.DATETIME),
    (sqltypes.Uuid, DataType.UUID),
    (sqltypes.JSON, DataType.JSON),
    (sqltypes.ARRAY, DataType.JSON),
    (sqltypes.String, DataType.STRING),
)


def map_column_type(column_type: Any) -> DataType:
    """SQLAlchemy type instance → ``DataType`` (falls back to the type's name)."""
    for generic, data_type in _GENERIC_TYPES:
        if isinstance(column_type, generic):
            return data_type
    return DataType.from_sql_type(type(column_type).__name__)


def _column_from_reflection(
    info: Dict[str, Any],
    primary_keys: Set[str],
    unique_columns: Set[str],
) -> ColumnMetadata:
    column_type: Any = info["type"]
    data_type: DataType = map_column_type(column_type)

    enum_values: Optional[List[str]] = None
    if data_type == DataType.ENUM:
        enum_values = [str(v) for v in getattr(column_type, "enums", [])] or None
        if enum_values is None:
            # enum without a readable value list is still a string to us
            data_type = DataType.STRING

    max_length: Optional[int] = None
    if data_type == DataType.STRING:
        max_length = getattr(column_type, "length", None) or None

    default: Any = info.get("default")
    name: str = info["name"]
    return ColumnMetadata(
        name=name,
        data_type=data_type,
        is_nullable=bool(info.get("nullable", True)) and name not in primary_keys,
        is_primary_key=name in primary_keys,
        is_unique=name in unique_columns,
        max_length=max_length,
        enum_values=enum_values,
        default=str(default) if default is not None else None,
    )


def _schema_argument(engine: Engine, schema: str) -> Optional[str]:
    if engine.dialect.name == "sqlite" and schema in ("public", "main"):
        return None
    return schema


def introspect_table(
    database_url: Optional[str],
    schema: str,
    table: str,
    *,
    engine: Optional[Engine] = None,
) -> TableMetadata:
    """
    Build ``TableMetadata`` for ``schema.table`` from the live catalogue.

    Args:
        database_url: SQLAlchemy URL; ignored when *engine* is given.
        schema: Schema name (validated as an identifier).
        table: Table name (validated as an identifier).
        engine: Existing engine to reuse; it is left open.

    Raises:
        InvalidIdentifier: *schema* or *table* is not a safe identifier.
        IntrospectionError: Connection, catalogue or missing-table failure.
    """
    schema = validate_identifier(schema, None, "schema")
    table = validate_identifier(table, None, "table")

    owns_engine: bool = engine is None
    if engine is None:
        if not database_url:
            raise IntrospectionError("No database URL given for introspection.")
        try:
            engine = create_engine(database_url)
        except (SQLAlchemyError, ImportError) as exc:
            raise IntrospectionError(
                f"Cannot create engine for introspection: {exc}",
                details={"schema": schema, "table": table},
            ) from exc

    try:
        inspector = inspect(engine)
        schema_arg: Optional[str] = _schema_argument(engine, schema)
        reflected: List[Dict[str, Any]] = inspector.get_columns(table, schema=schema_arg)
        pk_info: Dict[str, Any] = inspector.get_pk_constraint(table, schema=schema_arg)
        unique_info: List[Dict[str, Any]] = inspector.get_unique_constraints(
            table, schema=schema_arg
        )
    except NoSuchTableError as exc:
        raise IntrospectionError(
            f"Table {schema}.{table} does not exist.",
            details={"schema": schema, "table": table},
        ) from exc
    except SQLAlchemyError as exc:
        raise IntrospectionError(
            f"Failed to introspect {schema}.{table}: {exc}",
            details={"schema": schema, "table": table},
        ) from exc
    finally:
        if owns_engine:
            engine.dispose()

    if not reflected:
        raise IntrospectionError(
            f"Table {schema}.{table} does not exist or has no columns.",
            details={"schema": schema, "table": table},
        )

    primary_keys: Set[str] = set(pk_info.get("constrained_columns") or [])
    unique_sets: List[List[str]] = [
        list(u.get("column_names") or []) for u in unique_info
    ]
    single_unique: Set[str] = {cols[0] for cols in unique_sets if len(cols) == 1}

    columns: List[ColumnMetadata] = [
        _column_from_reflection(info, primary_keys, single_unique) for info in reflected
    ]
    names: Set[str] = {c.name for c in columns}

    metadata = TableMetadata(
        schema_name=schema,
        table_name=table,
        columns=columns,
        unique_columns=[c.name for c in columns if c.is_unique],
        has_timestamps=all(n in names for n in TIMESTAMP_COLUMNS),
        has_soft_delete=SOFT_DELETE_COLUMN in names,
    )
    logger.info(
        "Introspected %s: %d column(s), primary key %s.",
        metadata.key,
        len(columns),
        metadata.primary_key or "<none>",
    )
    return metadata


__all__: List[str] = [
    "map_column_type",
    "introspect_table",
]

logger.debug("crudforge.introspection loaded.")
