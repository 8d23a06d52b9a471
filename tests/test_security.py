"""
tests/test_security.py
Identifier validation and the auxiliary value checks.
"""

from __future__ import annotations

import pytest

from crudforge.errors import InvalidIdentifier, InvalidValue
from crudforge.security import (
    MAX_IDENTIFIER_LENGTH,
    check_identifier,
    create_column_whitelist,
    is_safe_string,
    sanitize_string,
    validate_array,
    validate_filter_operator,
    validate_identifier,
    validate_identifiers,
    validate_integer,
    validate_pagination,
    validate_sort_direction,
    validate_uuid,
)


# ---------------------------------------------------------------------------
# Pattern mode
# ---------------------------------------------------------------------------


class TestIdentifierPattern:

    @pytest.mark.parametrize("name", ["users", "_private", "Order_Items2", "a"])
    def test_valid_names_pass(self, name: str) -> None:
        assert validate_identifier(name) == name

    def test_name_is_trimmed(self) -> None:
        assert validate_identifier("  users  ") == "users"

    @pytest.mark.parametrize(
        "name",
        ["users; DROP TABLE x", "1abc", "user-name", "naïve", "a b", "users--", ""],
    )
    def test_invalid_characters_rejected(self, name: str) -> None:
        with pytest.raises(InvalidIdentifier):
            validate_identifier(name)

    @pytest.mark.parametrize("name", ["select", "DROP", "Union", "xp_", "SP_"])
    def test_reserved_tokens_rejected(self, name: str) -> None:
        with pytest.raises(InvalidIdentifier, match="reserved"):
            validate_identifier(name)

    def test_procedure_prefix_only_rejected_on_full_match(self) -> None:
        assert validate_identifier("sp_orders") == "sp_orders"

    def test_length_limit(self) -> None:
        assert validate_identifier("a" * MAX_IDENTIFIER_LENGTH)
        with pytest.raises(InvalidIdentifier, match="maximum length"):
            validate_identifier("a" * (MAX_IDENTIFIER_LENGTH + 1))

    @pytest.mark.parametrize("value", [None, 42, "   ", ["users"]])
    def test_non_string_or_blank_rejected(self, value: object) -> None:
        with pytest.raises(InvalidIdentifier, match="non-empty string"):
            validate_identifier(value)

    def test_context_appears_in_message(self) -> None:
        with pytest.raises(InvalidIdentifier, match="Invalid sort field"):
            validate_identifier("bad name", context="sort field")

    def test_error_carries_details(self) -> None:
        with pytest.raises(InvalidIdentifier) as info:
            validate_identifier("x;y", context="column")
        assert info.value.details["name"] == "x;y"
        assert info.value.to_dict()["error_code"] == "INVALID_IDENTIFIER"

    def test_invalid_identifier_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            validate_identifier("1x")


# ---------------------------------------------------------------------------
# Whitelist mode
# ---------------------------------------------------------------------------


class TestIdentifierWhitelist:

    def test_member_passes_case_insensitively(self) -> None:
        assert validate_identifier("STATUS", ["status", "age"]) == "status"

    def test_returns_whitelist_spelling(self) -> None:
        assert validate_identifier("createdat", ["createdAt"]) == "createdAt"

    def test_non_member_rejected(self) -> None:
        with pytest.raises(InvalidIdentifier, match="not in allowed values"):
            validate_identifier("password", ["status", "age"])

    def test_empty_whitelist_rejects_everything(self) -> None:
        with pytest.raises(InvalidIdentifier):
            validate_identifier("status", [])

    def test_membership_replaces_pattern_checks(self) -> None:
        # a whitelisted name is accepted even though it is a reserved word
        assert validate_identifier("select", ["select"]) == "select"

    def test_check_identifier_does_not_raise(self) -> None:
        result = check_identifier("nope", ["status"])
        assert not result.ok
        assert "not in allowed values" in (result.reason or "")
        with pytest.raises(InvalidIdentifier):
            result.unwrap()


class TestValidateIdentifiers:

    def test_all_valid(self) -> None:
        assert validate_identifiers(["a", "b"]) == ["a", "b"]

    def test_reports_index_of_first_failure(self) -> None:
        with pytest.raises(InvalidIdentifier, match=r"columns\[1\]"):
            validate_identifiers(["ok", "not ok", "also bad"], context="columns")

    def test_empty_list_rejected(self) -> None:
        with pytest.raises(InvalidIdentifier, match="non-empty array"):
            validate_identifiers([])

    def test_whitelist_from_columns(self) -> None:
        whitelist = create_column_whitelist(["Status", "AGE"])
        assert whitelist == ("status", "age")
        assert validate_identifiers(["status", "Age"], whitelist) == ["status", "age"]


# ---------------------------------------------------------------------------
# Auxiliary value checks
# ---------------------------------------------------------------------------


class TestValueChecks:

    def test_pagination(self) -> None:
        assert validate_pagination("2", 50) == (2, 50)

    @pytest.mark.parametrize("page,limit", [(0, 10), (1, 0), (1, 1001), ("x", 10), (1.5, 10)])
    def test_pagination_rejects(self, page: object, limit: object) -> None:
        with pytest.raises(InvalidValue):
            validate_pagination(page, limit)

    def test_integer_rejects_bool(self) -> None:
        with pytest.raises(InvalidValue):
            validate_integer(True)

    def test_sort_direction(self) -> None:
        assert validate_sort_direction(" desc ") == "DESC"
        with pytest.raises(InvalidValue):
            validate_sort_direction("sideways")

    def test_uuid_normalised(self) -> None:
        value = "3F2504E0-4F89-11D3-9A0C-0305E82C3301"
        assert validate_uuid(value) == value.lower()
        with pytest.raises(InvalidValue):
            validate_uuid("not-a-uuid")

    def test_filter_operator(self) -> None:
        assert validate_filter_operator("nnull") == "nnull"
        with pytest.raises(InvalidValue, match="Allowed"):
            validate_filter_operator("regex")

    def test_array_applies_validator(self) -> None:
        assert validate_array(["1", 2], validate_integer) == [1, 2]
        with pytest.raises(InvalidValue, match="maximum"):
            validate_array(list(range(5)), validate_integer, max_items=3)

    def test_string_helpers(self) -> None:
        assert sanitize_string("a -- b /* c */") == "a  b  c "
        assert is_safe_string("hello, world (1)")
        assert not is_safe_string("x'; DROP")
