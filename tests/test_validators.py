"""
tests/test_validators.py
Unit tests for crudforge.validators and the model-level checks.

Tests cover:
- Metadata model validation (duplicate columns, primary key resolution,
  enum values, bounds, SQL type mapping)
- Identifier checks on schema, table and column names
- Primary key, filterability and constraint warnings
- Lifecycle column requirements
- The aggregate validate_table_metadata entry point
"""

from __future__ import annotations

from typing import Any, Dict

import pytest
from pydantic import ValidationError as PydanticValidationError

from crudforge.models import DataType, TableMetadata
from crudforge.validators import (
    ValidationResult,
    validate_column_constraints,
    validate_column_names,
    validate_filterability,
    validate_lifecycle_columns,
    validate_primary_key,
    validate_table_identity,
    validate_table_metadata,
)


# ===========================================================================
# Model-level validation
# ===========================================================================


class TestTableMetadataModel:

    def test_reference_metadata_loads(self, orders_table: TableMetadata) -> None:
        assert orders_table.key == "public.orders"
        assert orders_table.primary_key == "id"
        assert "notes" not in orders_table.filterable_columns
        assert orders_table.column("STATUS") is not None

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("varchar(255)", "string"),
            ("character varying", "string"),
            ("bigserial", "integer"),
            ("numeric(12,2)", "decimal"),
            ("timestamptz", "datetime"),
            ("integer[]", "json"),
            ("geometry", "string"),
            ("UUID", "uuid"),
        ],
    )
    def test_sql_type_mapping(self, raw: str, expected: str) -> None:
        assert DataType.from_sql_type(raw).value == expected

    def test_duplicate_column_rejected(self, users_dict: Dict[str, Any]) -> None:
        users_dict["columns"].append({"name": "EMAIL", "data_type": "string"})
        with pytest.raises(PydanticValidationError, match="Duplicate column"):
            TableMetadata.model_validate(users_dict)

    def test_unknown_primary_key_rejected(self, users_dict: Dict[str, Any]) -> None:
        users_dict["primary_key"] = "uuid"
        with pytest.raises(PydanticValidationError, match="not a column"):
            TableMetadata.model_validate(users_dict)

    def test_enum_requires_values(self, users_dict: Dict[str, Any]) -> None:
        users_dict["columns"].append({"name": "role", "data_type": "enum"})
        with pytest.raises(PydanticValidationError, match="enum_values"):
            TableMetadata.model_validate(users_dict)

    def test_bounds_must_be_ordered(self, users_dict: Dict[str, Any]) -> None:
        users_dict["columns"][3]["min_value"] = 200
        with pytest.raises(PydanticValidationError, match="exceeds max_value"):
            TableMetadata.model_validate(users_dict)

    def test_unknown_unique_column_rejected(self, users_dict: Dict[str, Any]) -> None:
        users_dict["unique_columns"] = ["nickname"]
        with pytest.raises(PydanticValidationError, match="unknown columns"):
            TableMetadata.model_validate(users_dict)

    def test_extra_keys_rejected(self, users_dict: Dict[str, Any]) -> None:
        users_dict["owner"] = "ops"
        with pytest.raises(PydanticValidationError):
            TableMetadata.model_validate(users_dict)

    def test_sortable_defaults_to_filterable(self, users_dict: Dict[str, Any]) -> None:
        users_dict["columns"][1]["is_sortable"] = False
        table = TableMetadata.model_validate(users_dict)
        assert "name" in table.filterable_columns
        assert "name" not in table.sortable_columns
        assert "password_hash" not in table.sortable_columns


# ===========================================================================
# Individual checks
# ===========================================================================


class TestIdentityAndNames:

    def test_valid_identity(self, orders_table: TableMetadata) -> None:
        assert validate_table_identity(orders_table).is_valid

    def test_reserved_table_name(self, users_dict: Dict[str, Any]) -> None:
        users_dict["table"] = "select"
        result = validate_table_identity(TableMetadata.model_validate(users_dict))
        assert result.codes() == ["IDENT_TABLE"]

    def test_bad_column_name(self, users_dict: Dict[str, Any]) -> None:
        users_dict["columns"].append({"name": "full name"})
        result = validate_column_names(TableMetadata.model_validate(users_dict))
        assert result.codes() == ["IDENT_COLUMN"]
        assert result.errors[0].context["column"] == "full name"

    def test_mixed_case_is_informational(self, users_dict: Dict[str, Any]) -> None:
        users_dict["columns"].append({"name": "lastLogin", "data_type": "datetime"})
        result = validate_column_names(TableMetadata.model_validate(users_dict))
        assert result.is_valid
        assert result.codes() == ["IDENT_MIXED_CASE"]


class TestPrimaryKey:

    def test_single_key(self, users_table: TableMetadata) -> None:
        assert len(validate_primary_key(users_table)) == 0

    def test_missing_key_warns(self, users_dict: Dict[str, Any]) -> None:
        users_dict["columns"][0]["is_primary_key"] = False
        result = validate_primary_key(TableMetadata.model_validate(users_dict))
        assert result.is_valid
        assert result.codes() == ["PK_MISSING"]

    def test_composite_key_warns(self, users_dict: Dict[str, Any]) -> None:
        users_dict["columns"][2]["is_primary_key"] = True
        result = validate_primary_key(TableMetadata.model_validate(users_dict))
        assert result.codes() == ["PK_COMPOSITE"]

    def test_flag_mismatch(self, users_dict: Dict[str, Any]) -> None:
        users_dict["primary_key"] = "email"
        result = validate_primary_key(TableMetadata.model_validate(users_dict))
        assert result.codes() == ["PK_FLAG_MISMATCH"]


class TestFilterabilityAndConstraints:

    def test_no_filterable_columns(self, users_dict: Dict[str, Any]) -> None:
        for col in users_dict["columns"]:
            col["is_filterable"] = False
        result = validate_filterability(TableMetadata.model_validate(users_dict))
        assert result.codes() == ["FILTER_NONE"]

    def test_filterable_json(self, users_dict: Dict[str, Any]) -> None:
        users_dict["columns"].append({"name": "prefs", "data_type": "jsonb"})
        result = validate_filterability(TableMetadata.model_validate(users_dict))
        assert result.codes() == ["FILTER_JSON"]

    def test_misplaced_constraints(self, users_dict: Dict[str, Any]) -> None:
        users_dict["columns"][3]["max_length"] = 3
        users_dict["columns"][1]["min_value"] = 1
        users_dict["columns"][4]["enum_values"] = ["y", "n"]
        result = validate_column_constraints(TableMetadata.model_validate(users_dict))
        assert sorted(result.codes()) == [
            "CONSTRAINT_BOUNDS",
            "CONSTRAINT_ENUM",
            "CONSTRAINT_MAX_LENGTH",
        ]
        assert result.is_valid

    def test_unique_flag_mismatch(self, users_dict: Dict[str, Any]) -> None:
        users_dict["unique_columns"] = ["name"]
        result = validate_column_constraints(TableMetadata.model_validate(users_dict))
        assert result.codes() == ["UNIQUE_FLAG_MISMATCH"]


class TestLifecycle:

    def test_complete_lifecycle(self, orders_table: TableMetadata) -> None:
        assert len(validate_lifecycle_columns(orders_table)) == 0

    def test_missing_timestamp_column(self, orders_dict: Dict[str, Any]) -> None:
        orders_dict["columns"] = [c for c in orders_dict["columns"] if c["name"] != "updated_at"]
        result = validate_lifecycle_columns(TableMetadata.model_validate(orders_dict))
        assert result.codes() == ["LIFECYCLE_TIMESTAMPS"]
        assert result.has_errors

    def test_missing_soft_delete_column(self, users_dict: Dict[str, Any]) -> None:
        users_dict["has_soft_delete"] = True
        result = validate_lifecycle_columns(TableMetadata.model_validate(users_dict))
        assert result.codes() == ["LIFECYCLE_SOFT_DELETE"]


# ===========================================================================
# Aggregate
# ===========================================================================


class TestValidateTableMetadata:

    def test_reference_metadata_is_clean(self, orders_table: TableMetadata) -> None:
        result = validate_table_metadata(orders_table)
        assert result.is_valid
        assert result.warnings == []

    def test_errors_and_warnings_combined(self, users_dict: Dict[str, Any]) -> None:
        users_dict["has_timestamps"] = True
        users_dict["columns"][0]["is_primary_key"] = False
        result = validate_table_metadata(TableMetadata.model_validate(users_dict))
        assert not result
        assert len(result.errors) == 2
        assert [w.code for w in result.warnings] == ["PK_MISSING"]

    def test_report_format(self, users_dict: Dict[str, Any]) -> None:
        users_dict["has_soft_delete"] = True
        report = validate_table_metadata(TableMetadata.model_validate(users_dict)).format_report()
        assert report.startswith("Validation: 1 error(s), 0 warning(s)")
        assert "[LIFECYCLE_SOFT_DELETE]" in report

    def test_report_lists_notices(self, users_dict: Dict[str, Any]) -> None:
        users_dict["has_soft_delete"] = True
        users_dict["columns"].append({"name": "lastLogin", "data_type": "datetime"})
        result = validate_table_metadata(TableMetadata.model_validate(users_dict))
        assert [n.code for n in result.notices] == ["IDENT_MIXED_CASE"]
        report = result.format_report()
        assert report.startswith("Validation: 1 error(s), 0 warning(s), 1 notice(s).")
        assert "  [info] [IDENT_MIXED_CASE]" in report

    def test_result_merge(self) -> None:
        first = ValidationResult()
        first.add_warning("A", "a")
        second = ValidationResult()
        second.add_error("B", "b", {"column": "x"})
        first.merge(second)
        assert first.codes() == ["A", "B"]
        assert first.errors[0].context == {"column": "x"}
        assert str(first.warnings[0]) == "[WARNING] A: a"
