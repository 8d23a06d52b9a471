"""
tests/test_introspection.py
Live introspection against a real SQLite database file.
"""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy import types as sqltypes

from crudforge.errors import IntrospectionError, InvalidIdentifier
from crudforge.introspection import introspect_table, map_column_type
from crudforge.models import DataType


class TestMapColumnType:

    @pytest.mark.parametrize(
        "column_type,expected",
        [
            (sqltypes.Enum("a", "b"), DataType.ENUM),
            (sqltypes.Boolean(), DataType.BOOLEAN),
            (sqltypes.BigInteger(), DataType.INTEGER),
            (sqltypes.Numeric(10, 2), DataType.DECIMAL),
            (sqltypes.Float(), DataType.DECIMAL),
            (sqltypes.DateTime(), DataType.DATETIME),
            (sqltypes.Date(), DataType.DATETIME),
            (sqltypes.Uuid(), DataType.UUID),
            (sqltypes.JSON(), DataType.JSON),
            (sqltypes.Text(), DataType.STRING),
            (sqltypes.String(20), DataType.STRING),
            (sqltypes.LargeBinary(), DataType.STRING),
        ],
    )
    def test_generic_types(self, column_type: object, expected: DataType) -> None:
        assert map_column_type(column_type) == expected


class TestIntrospectTable:

    def test_products_table(self, sqlite_url: str) -> None:
        table = introspect_table(sqlite_url, "public", "products")
        assert table.key == "public.products"
        assert table.column_names == [
            "id", "sku", "title", "price", "in_stock",
            "created_at", "updated_at", "deleted_at",
        ]
        assert table.primary_key == "id"
        assert table.has_timestamps
        assert table.has_soft_delete
        assert table.unique_columns == ["sku"]

        by_name = {c.name: c for c in table.columns}
        assert by_name["id"].data_type == "integer"
        assert by_name["id"].is_nullable is False
        assert by_name["sku"].data_type == "string"
        assert by_name["sku"].max_length == 32
        assert by_name["sku"].is_unique
        assert by_name["title"].max_length is None
        assert by_name["price"].data_type == "decimal"
        assert by_name["in_stock"].data_type == "boolean"
        assert by_name["in_stock"].is_nullable is False
        assert by_name["in_stock"].default is not None
        assert by_name["created_at"].data_type == "datetime"
        assert all(c.is_filterable for c in table.columns)

    def test_reuses_given_engine(self, sqlite_url: str) -> None:
        engine = create_engine(sqlite_url)
        try:
            first = introspect_table(None, "main", "products", engine=engine)
            second = introspect_table(None, "main", "products", engine=engine)
        finally:
            engine.dispose()
        assert first.column_names == second.column_names
        assert first.key == "main.products"

    def test_missing_table(self, sqlite_url: str) -> None:
        with pytest.raises(IntrospectionError, match="does not exist"):
            introspect_table(sqlite_url, "public", "invoices")

    def test_unsafe_table_name(self, sqlite_url: str) -> None:
        with pytest.raises(InvalidIdentifier):
            introspect_table(sqlite_url, "public", "products; DROP TABLE products")

    def test_missing_url(self) -> None:
        with pytest.raises(IntrospectionError, match="No database URL"):
            introspect_table(None, "public", "products")

    def test_bad_url(self) -> None:
        with pytest.raises(IntrospectionError, match="Cannot create engine"):
            introspect_table("nosuchdriver://x/y", "public", "products")
