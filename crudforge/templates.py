# File: crudforge/templates.py
"""
crudforge - Code Template Engine
=================================
Turns one ``TableMetadata`` into the source of a self-contained CRUD module:

    1. ``queries.py``    validated, dialect-quoted SQL constants plus a
                         runtime ``build_list_query`` bound to the filter
                         compiler
    2. ``repository.py`` async repository over an asyncpg-style connection
                         (``fetch`` / ``fetchrow`` / ``execute``)
    3. ``schemas.py``    Pydantic V2 Create / Update / Read models
    4. ``__init__.py``   re-exports

**Safety contract:**
    - Every schema, table and column name is run through
      ``security.validate_identifier`` before it is quoted into SQL text.
    - Values never appear in the generated SQL; only placeholders do.

**Assembly contract:**
    - All string assembly uses ``List[str]`` + ``"\\n".join()``.
    - Every file carries ``crudforge-preserve`` regions and is checked
      with ``merge.validate_markers`` before it is handed out.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Set, Union

from crudforge.errors import TemplateError
from crudforge.filters import SqlDialect, get_dialect
from crudforge.merge import preserved_block, validate_markers
from crudforge.models import ColumnMetadata, DataType, Dialect, GeneratedFile, TableMetadata
from crudforge.security import validate_identifier, validate_identifiers
from crudforge.utils import (
    build_import_block,
    python_literal,
    safe_identifier,
    table_to_class_name,
    to_snake_case,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.templates")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TIMESTAMP_COLUMNS: tuple = ("created_at", "updated_at")
SOFT_DELETE_COLUMN: str = "deleted_at"
NOW_SQL: str = "CURRENT_TIMESTAMP"

GENERATED_FILES: tuple = ("__init__.py", "queries.py", "repository.py", "schemas.py")

# Column types whose filter values are converted before binding
_COERCED_TYPES: tuple = (
    DataType.INTEGER,
    DataType.DECIMAL,
    DataType.BOOLEAN,
    DataType.UUID,
    DataType.ENUM,
)

_HEADER_NOTE: List[str] = [
    "Generated by crudforge. Edit only inside crudforge-preserve blocks;",
    "everything else is rewritten on regeneration.",
]

# Type hint -> (module, name) it must be imported from
_TYPE_IMPORTS: Dict[str, tuple] = {
    "Decimal": ("decimal", "Decimal"),
    "datetime": ("datetime", "datetime"),
    "UUID": ("uuid", "UUID"),
    "Any": ("typing", "Any"),
}


def _is_generated_key(column: ColumnMetadata) -> bool:
    """Primary keys the database fills in (serial integers or a default)."""
    return column.default is not None or column.data_type == DataType.INTEGER


def _number_literal(column: ColumnMetadata, value: float) -> str:
    if column.data_type == DataType.INTEGER or float(value).is_integer():
        return repr(int(value))
    return repr(float(value))


def _add_type_imports(imports: Dict[str, Set[str]], hint: str) -> None:
    if hint.startswith("Literal["):
        imports.setdefault("typing", set()).add("Literal")
        return
    source: Optional[tuple] = _TYPE_IMPORTS.get(hint)
    if source is not None:
        imports.setdefault(source[0], set()).add(source[1])


class TemplateBuilder:
    """
    Source generator for a single table.

    Identifiers are validated once, in ``__init__``; an invalid name raises
    ``InvalidIdentifier`` before any text is produced.  The builder keeps
    no mutable state after construction.
    """

    def __init__(
        self,
        table: TableMetadata,
        dialect: Union[str, Dialect, SqlDialect, None] = None,
        *,
        indent_size: int = 4,
        generate_docstrings: bool = True,
    ) -> None:
        self._table: TableMetadata = table
        self._dialect: SqlDialect = get_dialect(dialect)
        self._indent: str = " " * indent_size
        self._docstrings: bool = generate_docstrings

        schema: str = validate_identifier(table.schema_name, None, "schema")
        name: str = validate_identifier(table.table_name, None, "table")
        validate_identifiers(table.column_names, None, "column")
        self._table_sql: str = self._dialect.qualified(schema, name)
        self._class_name: str = table_to_class_name(table.table_name)

        self._pk: Optional[ColumnMetadata] = table.primary_key_column
        self._created: Optional[ColumnMetadata] = None
        self._updated: Optional[ColumnMetadata] = None
        self._deleted: Optional[ColumnMetadata] = None
        if table.has_timestamps:
            self._created = table.column(TIMESTAMP_COLUMNS[0])
            self._updated = table.column(TIMESTAMP_COLUMNS[1])
        if table.has_soft_delete:
            self._deleted = table.column(SOFT_DELETE_COLUMN)

        lifecycle: Set[str] = {
            c.name for c in (self._created, self._updated, self._deleted) if c is not None
        }
        self._insert_columns: List[ColumnMetadata] = [
            c
            for c in table.columns
            if c.name not in lifecycle
            and not (self._pk is not None and c.name == self._pk.name and _is_generated_key(c))
        ]
        self._update_columns: List[ColumnMetadata] = [
            c for c in self._insert_columns if self._pk is None or c.name != self._pk.name
        ]

        logger.debug(
            "TemplateBuilder initialised for %s (dialect=%s, class=%s).",
            table.key,
            self._dialect.name,
            self._class_name,
        )

    # -- Naming -------------------------------------------------------------

    @property
    def class_name(self) -> str:
        return self._class_name

    @property
    def repository_name(self) -> str:
        return f"{self._class_name}Repository"

    @property
    def schema_names(self) -> List[str]:
        return [f"{self._class_name}{suffix}" for suffix in ("Create", "Update", "Read")]

    @property
    def returning(self) -> bool:
        """MySQL has no ``RETURNING`` clause."""
        return self._dialect.name != Dialect.MYSQL.value

    # ===================================================================
    # SQL statements
    # ===================================================================

    def _q(self, name: str) -> str:
        return self._dialect.quote(name)

    def _ph(self, index: int) -> str:
        return self._dialect.placeholder(index)

    def _column_list(self) -> str:
        return ", ".join(self._q(c.name) for c in self._table.columns)

    def _live_row_filter(self) -> Optional[str]:
        if self._deleted is None:
            return None
        return f"{self._q(self._deleted.name)} IS NULL"

    def _returning_clause(self) -> List[str]:
        return [f"RETURNING {self._column_list()}"] if self.returning else []

    def select_all_sql(self) -> List[str]:
        parts: List[str] = [f"SELECT {self._column_list()}", f"FROM {self._table_sql}"]
        live: Optional[str] = self._live_row_filter()
        if live:
            parts.append(f"WHERE {live}")
        return parts

    def select_by_id_sql(self) -> Optional[List[str]]:
        if self._pk is None:
            return None
        condition: str = f"{self._q(self._pk.name)} = {self._ph(1)}"
        live: Optional[str] = self._live_row_filter()
        if live:
            condition += f" AND {live}"
        return [f"SELECT {self._column_list()}", f"FROM {self._table_sql}", f"WHERE {condition}"]

    def count_all_sql(self) -> List[str]:
        parts: List[str] = [f"SELECT COUNT(*) FROM {self._table_sql}"]
        live: Optional[str] = self._live_row_filter()
        if live:
            parts.append(f"WHERE {live}")
        return parts

    def insert_sql(self) -> List[str]:
        names: List[str] = [self._q(c.name) for c in self._insert_columns]
        values: List[str] = [self._ph(i) for i in range(1, len(names) + 1)]
        for stamp in (self._created, self._updated):
            if stamp is not None:
                names.append(self._q(stamp.name))
                values.append(NOW_SQL)

        if not names:
            if self.returning:
                parts: List[str] = [f"INSERT INTO {self._table_sql} DEFAULT VALUES"]
            else:
                parts = [f"INSERT INTO {self._table_sql} () VALUES ()"]
        else:
            parts = [
                f"INSERT INTO {self._table_sql} ({', '.join(names)})",
                f"VALUES ({', '.join(values)})",
            ]
        return parts + self._returning_clause()

    def update_by_id_sql(self) -> Optional[List[str]]:
        if self._pk is None or not self._update_columns:
            return None
        assignments: List[str] = [
            f"{self._q(c.name)} = {self._ph(i)}"
            for i, c in enumerate(self._update_columns, start=1)
        ]
        if self._updated is not None:
            assignments.append(f"{self._q(self._updated.name)} = {NOW_SQL}")
        condition: str = (
            f"{self._q(self._pk.name)} = {self._ph(len(self._update_columns) + 1)}"
        )
        live: Optional[str] = self._live_row_filter()
        if live:
            condition += f" AND {live}"
        return [
            f"UPDATE {self._table_sql}",
            f"SET {', '.join(assignments)}",
            f"WHERE {condition}",
        ] + self._returning_clause()

    def delete_by_id_sql(self) -> Optional[List[str]]:
        """Soft delete (stamp ``deleted_at``) when the table supports it."""
        if self._pk is None:
            return None
        key: str = f"{self._q(self._pk.name)} = {self._ph(1)}"
        if self._deleted is not None:
            return [
                f"UPDATE {self._table_sql}",
                f"SET {self._q(self._deleted.name)} = {NOW_SQL}",
                f"WHERE {key} AND {self._live_row_filter()}",
            ]
        return [f"DELETE FROM {self._table_sql}", f"WHERE {key}"]

    def statements(self) -> Dict[str, Optional[str]]:
        """Every SQL constant of ``queries.py`` as a flat string (``None`` if absent)."""
        builders = {
            "SELECT_ALL": self.select_all_sql,
            "SELECT_BY_ID": self.select_by_id_sql,
            "INSERT": self.insert_sql,
            "UPDATE_BY_ID": self.update_by_id_sql,
            "DELETE_BY_ID": self.delete_by_id_sql,
            "COUNT_ALL": self.count_all_sql,
        }
        result: Dict[str, Optional[str]] = {}
        for name, build in builders.items():
            parts: Optional[List[str]] = build()
            result[name] = " ".join(parts) if parts is not None else None
        return result

    # ===================================================================
    # Shared rendering helpers
    # ===================================================================

    def _file_header(self, title: str, future_import: bool = True) -> List[str]:
        lines: List[str] = ['"""', title, ""]
        lines.extend(_HEADER_NOTE)
        lines.extend(['"""', ""])
        if future_import:
            lines.extend(["from __future__ import annotations", ""])
        return lines

    def _sql_constant(self, name: str, parts: Optional[Sequence[str]]) -> List[str]:
        if parts is None:
            return [f"{name}: Optional[str] = None"]
        if len(parts) == 1:
            return [f"{name}: str = {parts[0]!r}"]
        lines: List[str] = [f"{name}: str = ("]
        last: int = len(parts) - 1
        for index, part in enumerate(parts):
            text: str = part if index == last else part + " "
            lines.append(f"{self._indent}{text!r}")
        lines.append(")")
        return lines

    def _tuple_constant(self, name: str, values: Sequence[str]) -> List[str]:
        if not values:
            return [f"{name}: Tuple[str, ...] = ()"]
        lines: List[str] = [f"{name}: Tuple[str, ...] = ("]
        lines.extend(f"{self._indent}{python_literal(v)}," for v in values)
        lines.append(")")
        return lines

    def _column_rules_constant(self) -> List[str]:
        """``COLUMN_RULES`` literal consumed by ``column_coercer``."""
        name: str = "COLUMN_RULES: Dict[str, Dict[str, Any]] = "
        rules: List[str] = []
        for column in self._table.columns:
            if not column.is_filterable or column.data_type not in _COERCED_TYPES:
                continue
            fields: List[str] = [f'"data_type": {python_literal(column.data_type)}']
            if column.data_type == DataType.ENUM and column.enum_values:
                values: str = ", ".join(python_literal(v) for v in column.enum_values)
                fields.append(f'"enum_values": [{values}]')
            if column.data_type in (DataType.INTEGER, DataType.DECIMAL):
                if column.min_value is not None:
                    fields.append(f'"min_value": {_number_literal(column, column.min_value)}')
                if column.max_value is not None:
                    fields.append(f'"max_value": {_number_literal(column, column.max_value)}')
            rules.append(f"{self._indent}{python_literal(column.name)}: {{{', '.join(fields)}}},")
        if not rules:
            return [name + "{}"]
        return [name + "{", *rules, "}"]

    # ===================================================================
    # 1. queries.py
    # ===================================================================

    def generate_queries(self) -> str:
        """SQL constants and the runtime filter entry points."""
        t: TableMetadata = self._table
        i1: str = self._indent
        pk_literal: str = python_literal(self._pk.name) if self._pk is not None else "None"

        lines: List[str] = self._file_header(f"SQL statements for {t.key}.")
        lines.append(
            build_import_block({"typing": {"Any", "Dict", "List", "Mapping", "Optional", "Tuple"}})
        )
        lines.append("")
        lines.append(
            "from crudforge.filters import CONTROL_KEYS, column_coercer, compile_filter_query"
        )
        lines.append("")
        lines.extend(preserved_block("imports"))
        lines.append("")
        lines.append(f"DIALECT: str = {python_literal(self._dialect.name)}")
        lines.append(f"TABLE: str = {self._table_sql!r}")
        lines.append(f"PRIMARY_KEY: Optional[str] = {pk_literal}")
        lines.append("")
        lines.extend(self._tuple_constant("COLUMNS", t.column_names))
        lines.extend(
            self._tuple_constant("INSERT_COLUMNS", [c.name for c in self._insert_columns])
        )
        lines.extend(
            self._tuple_constant("UPDATE_COLUMNS", [c.name for c in self._update_columns])
        )
        lines.extend(self._tuple_constant("FILTERABLE_COLUMNS", t.filterable_columns))
        lines.extend(self._tuple_constant("SORTABLE_COLUMNS", t.sortable_columns))
        lines.append("")
        lines.extend(self._column_rules_constant())
        lines.append("")
        lines.append("_coerce_value = column_coercer(COLUMN_RULES)")
        lines.append("")

        lines.extend(self._sql_constant("SELECT_ALL", self.select_all_sql()))
        lines.extend(self._sql_constant("SELECT_BY_ID", self.select_by_id_sql()))
        lines.extend(self._sql_constant("INSERT", self.insert_sql()))
        lines.extend(self._sql_constant("UPDATE_BY_ID", self.update_by_id_sql()))
        lines.extend(self._sql_constant("DELETE_BY_ID", self.delete_by_id_sql()))
        lines.extend(self._sql_constant("COUNT_ALL", self.count_all_sql()))
        lines.append("")
        lines.append("")

        lines.append("def build_list_query(")
        lines.append(f"{i1}filters: Mapping[str, Any],")
        lines.append(f"{i1}strict: bool = False,")
        lines.append(") -> Tuple[str, List[Any]]:")
        if self._docstrings:
            lines.append(f'{i1}"""Compile request filters against ``SELECT_ALL``."""')
        lines.append(f"{i1}query = compile_filter_query(")
        lines.append(f"{i1 * 2}SELECT_ALL,")
        lines.append(f"{i1 * 2}filters,")
        lines.append(f"{i1 * 2}FILTERABLE_COLUMNS,")
        lines.append(f"{i1 * 2}dialect=DIALECT,")
        lines.append(f"{i1 * 2}strict=strict,")
        lines.append(f"{i1 * 2}coerce=_coerce_value,")
        lines.append(f"{i1 * 2}sortable=SORTABLE_COLUMNS,")
        lines.append(f"{i1})")
        lines.append(f"{i1}return query.text, query.values")
        lines.append("")
        lines.append("")

        lines.append("def build_count_query(")
        lines.append(f"{i1}filters: Mapping[str, Any],")
        lines.append(f"{i1}strict: bool = False,")
        lines.append(") -> Tuple[str, List[Any]]:")
        if self._docstrings:
            lines.append(f'{i1}"""Same conditions as ``build_list_query``, no paging or sort."""')
        lines.append(
            f"{i1}conditions = "
            "{key: value for key, value in filters.items() if key not in CONTROL_KEYS}"
        )
        lines.append(f"{i1}query = compile_filter_query(")
        lines.append(f"{i1 * 2}COUNT_ALL,")
        lines.append(f"{i1 * 2}conditions,")
        lines.append(f"{i1 * 2}FILTERABLE_COLUMNS,")
        lines.append(f"{i1 * 2}dialect=DIALECT,")
        lines.append(f"{i1 * 2}strict=strict,")
        lines.append(f"{i1 * 2}coerce=_coerce_value,")
        lines.append(f"{i1})")
        lines.append(f"{i1}return query.text, query.values")
        lines.append("")
        lines.append("")
        lines.extend(preserved_block("custom-queries"))
        lines.append("")
        return "\n".join(lines)

    # ===================================================================
    # 2. repository.py
    # ===================================================================

    def generate_repository(self) -> str:
        """Async repository over an asyncpg-style connection."""
        t: TableMetadata = self._table
        i1: str = self._indent
        i2: str = i1 * 2
        i3: str = i1 * 3
        read: str = f"{self._class_name}Read"
        create: str = f"{self._class_name}Create"
        update: str = f"{self._class_name}Update"

        imports: Dict[str, Set[str]] = {"typing": {"Any", "List", "Mapping", "Optional"}}
        pk_hint: str = "Any"
        if self._pk is not None:
            pk_hint = self._pk.python_type_hint
            _add_type_imports(imports, pk_hint)

        lines: List[str] = self._file_header(f"Data access for {t.key}.")
        lines.append(build_import_block(imports))
        lines.append("")
        lines.append("from . import queries")
        lines.append(f"from .schemas import {create}, {read}, {update}")
        lines.append("")
        lines.extend(preserved_block("imports"))
        lines.append("")
        lines.append("")
        lines.append(f"class {self.repository_name}:")
        if self._docstrings:
            lines.append(f'{i1}"""')
            lines.append(f"{i1}CRUD operations on {t.key}.")
            lines.append("")
            lines.append(f"{i1}``connection`` is anything exposing asyncpg's ``fetch``,")
            lines.append(f"{i1}``fetchrow`` and ``execute`` coroutines.")
            lines.append(f'{i1}"""')
            lines.append("")
        lines.append(f"{i1}def __init__(self, connection: Any) -> None:")
        lines.append(f"{i2}self._conn = connection")
        lines.append("")

        # --- find_all / count ---
        lines.append(f"{i1}async def find_all(")
        lines.append(f"{i2}self,")
        lines.append(f"{i2}filters: Optional[Mapping[str, Any]] = None,")
        lines.append(f"{i2}strict: bool = False,")
        lines.append(f"{i1}) -> List[{read}]:")
        lines.append(f"{i2}sql, values = queries.build_list_query(filters or {{}}, strict=strict)")
        lines.append(f"{i2}rows = await self._conn.fetch(sql, *values)")
        lines.append(f"{i2}return [{read}.model_validate(dict(row)) for row in rows]")
        lines.append("")
        lines.append(f"{i1}async def count(")
        lines.append(f"{i2}self,")
        lines.append(f"{i2}filters: Optional[Mapping[str, Any]] = None,")
        lines.append(f"{i2}strict: bool = False,")
        lines.append(f"{i1}) -> int:")
        lines.append(f"{i2}sql, values = queries.build_count_query(filters or {{}}, strict=strict)")
        lines.append(f"{i2}row = await self._conn.fetchrow(sql, *values)")
        lines.append(f"{i2}return int(row[0]) if row is not None else 0")
        lines.append("")

        # --- get_by_id ---
        if self._pk is not None:
            lines.append(f"{i1}async def get_by_id(self, pk: {pk_hint}) -> Optional[{read}]:")
            lines.append(f"{i2}row = await self._conn.fetchrow(queries.SELECT_BY_ID, pk)")
            lines.append(f"{i2}return {read}.model_validate(dict(row)) if row is not None else None")
            lines.append("")

        # --- create ---
        create_return: str = read if self.returning else "None"
        lines.append(f"{i1}async def create(self, data: {create}) -> {create_return}:")
        lines.append(f"{i2}payload = data.model_dump(by_alias=True)")
        lines.append(f"{i2}values = [payload.get(column) for column in queries.INSERT_COLUMNS]")
        if self.returning:
            lines.append(f"{i2}row = await self._conn.fetchrow(queries.INSERT, *values)")
            lines.append(f"{i2}return {read}.model_validate(dict(row))")
        else:
            lines.append(f"{i2}await self._conn.execute(queries.INSERT, *values)")
        lines.append("")

        # --- update ---
        if self._pk is not None and self._update_columns:
            lines.append(f"{i1}async def update(")
            lines.append(f"{i2}self,")
            lines.append(f"{i2}pk: {pk_hint},")
            lines.append(f"{i2}data: {update},")
            lines.append(f"{i1}) -> Optional[{read}]:")
            if self._docstrings:
                lines.append(f'{i2}"""Apply the fields set on *data*; ``None`` if the row is gone."""')
            lines.append(f"{i2}current = await self.get_by_id(pk)")
            lines.append(f"{i2}if current is None:")
            lines.append(f"{i3}return None")
            lines.append(f"{i2}payload = current.model_dump(by_alias=True)")
            lines.append(f"{i2}payload.update(data.model_dump(by_alias=True, exclude_unset=True))")
            lines.append(f"{i2}values = [payload.get(column) for column in queries.UPDATE_COLUMNS]")
            if self.returning:
                lines.append(f"{i2}row = await self._conn.fetchrow(queries.UPDATE_BY_ID, *values, pk)")
                lines.append(f"{i2}return {read}.model_validate(dict(row)) if row is not None else None")
            else:
                lines.append(f"{i2}await self._conn.execute(queries.UPDATE_BY_ID, *values, pk)")
                lines.append(f"{i2}return await self.get_by_id(pk)")
            lines.append("")

        # --- delete ---
        if self._pk is not None:
            lines.append(f"{i1}async def delete(self, pk: {pk_hint}) -> bool:")
            if self._docstrings:
                verb: str = "Soft-delete" if self._deleted is not None else "Delete"
                lines.append(f'{i2}"""{verb} one row; ``False`` when nothing matched."""')
            lines.append(f"{i2}status = await self._conn.execute(queries.DELETE_BY_ID, pk)")
            lines.append(f'{i2}return not str(status).endswith(" 0")')
            lines.append("")

        lines.extend(preserved_block("custom-methods", indent=i1))
        lines.append("")
        return "\n".join(lines)

    # ===================================================================
    # 3. schemas.py
    # ===================================================================

    def _field_args(self, col: ColumnMetadata, optional: bool) -> str:
        parts: List[str] = []
        if optional:
            parts.append("default=None")
        if safe_identifier(col.name) != col.name:
            parts.append(f"alias={python_literal(col.name)}")
        if col.max_length is not None and col.data_type == DataType.STRING:
            parts.append(f"max_length={col.max_length}")
        if col.data_type in (DataType.INTEGER, DataType.DECIMAL):
            if col.min_value is not None:
                parts.append(f"ge={_number_literal(col, col.min_value)}")
            if col.max_value is not None:
                parts.append(f"le={_number_literal(col, col.max_value)}")
        human_name: str = col.name.replace("_", " ").title()
        parts.append(f"description={python_literal(human_name)}")
        return f"Field({', '.join(parts)})"

    def _field_line(self, col: ColumnMetadata, optional: bool) -> str:
        hint: str = col.python_type_hint
        if optional:
            hint = f"Optional[{hint}]"
        return f"{self._indent}{safe_identifier(col.name)}: {hint} = {self._field_args(col, optional)}"

    def _schema_class(
        self,
        suffix: str,
        doc: str,
        config: str,
        fields: List[str],
    ) -> List[str]:
        lines: List[str] = [f"class {self._class_name}{suffix}(BaseModel):"]
        if self._docstrings:
            lines.append(f'{self._indent}"""{doc}"""')
            lines.append("")
        lines.append(f"{self._indent}model_config = ConfigDict({config})")
        if fields:
            lines.append("")
            lines.extend(fields)
        return lines

    def generate_schemas(self) -> str:
        """Pydantic V2 Create / Update / Read models."""
        t: TableMetadata = self._table
        label: str = to_snake_case(self._class_name).replace("_", " ")

        imports: Dict[str, Set[str]] = {
            "pydantic": {"BaseModel", "ConfigDict", "Field"},
            "typing": {"Optional"},
        }
        for col in t.columns:
            _add_type_imports(imports, col.python_type_hint)

        create_fields: List[str] = [
            self._field_line(c, optional=c.is_nullable or c.default is not None)
            for c in self._insert_columns
        ]
        update_fields: List[str] = [
            self._field_line(c, optional=True) for c in self._update_columns
        ]
        read_fields: List[str] = [
            self._field_line(c, optional=c.is_nullable and not c.is_primary_key)
            for c in t.columns
        ]

        lines: List[str] = self._file_header(f"Pydantic V2 schemas for {t.key}.")
        lines.append(build_import_block(imports))
        lines.append("")
        lines.extend(preserved_block("imports"))
        lines.append("")
        lines.append("")
        lines.extend(
            self._schema_class(
                "Create",
                f"Payload for inserting a {label}.",
                "populate_by_name=True, str_strip_whitespace=True",
                create_fields,
            )
        )
        lines.append("")
        lines.append("")
        lines.extend(
            self._schema_class(
                "Update",
                f"Partial update of a {label}; only fields that are set are written.",
                "populate_by_name=True, str_strip_whitespace=True",
                update_fields,
            )
        )
        lines.append("")
        lines.append("")
        lines.extend(
            self._schema_class(
                "Read",
                f"A {label} row as returned by the repository.",
                "from_attributes=True, populate_by_name=True",
                read_fields,
            )
        )
        lines.append("")
        lines.append("")
        lines.extend(preserved_block("custom-schemas"))
        lines.append("")
        return "\n".join(lines)

    # ===================================================================
    # 4. __init__.py
    # ===================================================================

    def generate_init(self) -> str:
        exports: List[str] = ["queries", self.repository_name] + self.schema_names
        lines: List[str] = self._file_header(
            f"CRUD module for {self._table.key}.", future_import=False
        )
        lines.append("from . import queries")
        lines.append(f"from .repository import {self.repository_name}")
        lines.append(f"from .schemas import {', '.join(sorted(self.schema_names))}")
        lines.append("")
        lines.extend(preserved_block("exports"))
        lines.append("")
        lines.append("__all__ = [")
        lines.extend(f"{self._indent}{python_literal(name)}," for name in exports)
        lines.append("]")
        lines.append("")
        return "\n".join(lines)

    # ===================================================================
    # Aggregate
    # ===================================================================

    def build_all(self) -> List[GeneratedFile]:
        """
        Every file of the module, paths relative to the module directory.

        Raises:
            TemplateError: A file failed its preserve-marker check.
        """
        rendered: Dict[str, str] = {
            "__init__.py": self.generate_init(),
            "queries.py": self.generate_queries(),
            "repository.py": self.generate_repository(),
            "schemas.py": self.generate_schemas(),
        }
        files: List[GeneratedFile] = []
        for path in GENERATED_FILES:
            content: str = rendered[path]
            check = validate_markers(content)
            if check.has_errors:
                raise TemplateError(
                    f"Generated {path} has malformed preserve markers.",
                    details={"path": path, "errors": [str(e) for e in check.errors]},
                )
            files.append(GeneratedFile(path=path, content=content))

        logger.debug(
            "Built %d files for %s (%d lines).",
            len(files),
            self._table.key,
            sum(f.line_count for f in files),
        )
        return files


__all__: List[str] = [
    "TIMESTAMP_COLUMNS",
    "SOFT_DELETE_COLUMN",
    "GENERATED_FILES",
    "TemplateBuilder",
]

logger.debug("crudforge.templates loaded.")
