# File: crudforge/security.py
"""
crudforge - Identifier & Value Validation
==========================================
The only line of defence for SQL text that cannot be parameterised:
table, schema and column names.  Every identifier is checked here before
it is quoted into a query, in the filter compiler at request time and in
the templates at generation time.

Two modes:
    * whitelist: the trimmed, lower-cased name must be a member; pattern
      checks are not consulted because membership is strictly stronger.
    * pattern: ``^[A-Za-z_][A-Za-z0-9_]*$``, not a reserved token, at most
      63 characters.

The auxiliary validators (pagination, sort direction, UUID, operators)
raise ``InvalidValue``.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from crudforge.errors import InvalidIdentifier, InvalidValue

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.security")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_IDENTIFIER_LENGTH: int = 63
MAX_PAGE_LIMIT: int = 1000
MAX_ARRAY_ITEMS: int = 100

_IDENTIFIER_RE: re.Pattern[str] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_UUID_RE: re.Pattern[str] = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_SAFE_STRING_RE: re.Pattern[str] = re.compile(r"^[A-Za-z0-9\s\-_.@,()]*$")
_INJECTION_FRAGMENTS_RE: re.Pattern[str] = re.compile(
    r"--|/\*|\*/|;\s*DROP|;\s*DELETE|;\s*UPDATE|UNION\s+SELECT",
    re.IGNORECASE,
)

RESERVED_TOKENS: frozenset = frozenset({
    "SELECT", "INSERT", "UPDATE", "DELETE", "DROP", "CREATE", "ALTER",
    "TRUNCATE", "UNION", "EXEC", "EXECUTE",
    "--", "/*", "*/", ";",
    "XP_", "SP_",
})

FILTER_OPERATORS: Tuple[str, ...] = (
    "eq", "ne", "gt", "gte", "lt", "lte",
    "like", "in", "nin", "between", "null", "nnull",
)

SORT_DIRECTIONS: Tuple[str, ...] = ("ASC", "DESC")


# ---------------------------------------------------------------------------
# Identifier validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class IdentifierCheck:
    """Outcome of ``check_identifier``: ``value`` when ok, ``reason`` otherwise."""

    ok: bool
    value: Optional[str] = None
    reason: Optional[str] = None

    def unwrap(self) -> str:
        """Return the validated name or raise ``InvalidIdentifier``."""
        if not self.ok or self.value is None:
            raise InvalidIdentifier(self.reason or "Invalid identifier")
        return self.value


def check_identifier(
    name: Any,
    whitelist: Optional[Iterable[str]] = None,
    context: str = "identifier",
) -> IdentifierCheck:
    """
    Validate *name* without raising.

    Returns an ``IdentifierCheck`` carrying either the validated name (the
    whitelist spelling when a whitelist matched) or the rejection reason.
    """
    if not isinstance(name, str) or not name.strip():
        return IdentifierCheck(False, reason=f"Invalid {context}: must be a non-empty string")

    trimmed: str = name.strip()

    if whitelist is not None:
        # lower-cased name -> spelling as declared in the whitelist
        allowed: Dict[str, str] = {}
        for entry in whitelist:
            spelled: str = str(entry).strip()
            allowed.setdefault(spelled.lower(), spelled)
        canonical: Optional[str] = allowed.get(trimmed.lower())
        if canonical is None:
            return IdentifierCheck(
                False, reason=f'Invalid {context}: "{trimmed}" not in allowed values'
            )
        return IdentifierCheck(True, value=canonical)

    if not _IDENTIFIER_RE.match(trimmed):
        return IdentifierCheck(
            False, reason=f'Invalid {context}: "{trimmed}" contains invalid characters'
        )

    upper: str = trimmed.upper()
    if upper in RESERVED_TOKENS:
        return IdentifierCheck(
            False, reason=f'Invalid {context}: "{trimmed}" is a reserved SQL keyword'
        )

    if len(trimmed) > MAX_IDENTIFIER_LENGTH:
        return IdentifierCheck(
            False,
            reason=(
                f"Invalid {context}: exceeds maximum length of "
                f"{MAX_IDENTIFIER_LENGTH} characters"
            ),
        )

    return IdentifierCheck(True, value=trimmed)


def validate_identifier(
    name: Any,
    whitelist: Optional[Iterable[str]] = None,
    context: str = "identifier",
) -> str:
    """
    Validate a table/schema/column name and return it trimmed.

    With a whitelist the returned spelling is the whitelist entry that
    matched, so the caller always quotes a name the metadata declared.

    Args:
        name: Candidate identifier.
        whitelist: Allowed names.  When given (even empty) membership is the
            only check; when ``None`` the pattern/keyword/length checks apply.
        context: Label used in the error message (``"filter field"`` ...).

    Raises:
        InvalidIdentifier: The name was rejected.
    """
    result: IdentifierCheck = check_identifier(name, whitelist, context)
    if not result.ok:
        logger.debug("Rejected %s: %r (%s)", context, name, result.reason)
        raise InvalidIdentifier(
            result.reason or f"Invalid {context}",
            details={"name": name if isinstance(name, str) else repr(name), "context": context},
        )
    return result.value  # type: ignore[return-value]


def validate_identifiers(
    names: Sequence[Any],
    whitelist: Optional[Iterable[str]] = None,
    context: str = "identifiers",
) -> List[str]:
    """Validate an ordered list; fail on the first bad entry, naming its index."""
    if not isinstance(names, (list, tuple)) or not names:
        raise InvalidIdentifier(f"Invalid {context}: must be a non-empty array")
    allowed: Optional[List[str]] = list(whitelist) if whitelist is not None else None
    return [
        validate_identifier(name, allowed, f"{context}[{index}]")
        for index, name in enumerate(names)
    ]


def create_column_whitelist(columns: Iterable[str]) -> Tuple[str, ...]:
    """Lower-cased whitelist from column names."""
    return tuple(c.lower() for c in columns)


# ---------------------------------------------------------------------------
# Auxiliary value checks
# ---------------------------------------------------------------------------


def validate_numeric(value: Any, context: str = "value") -> float:
    """Accept finite ints/floats and numeric strings."""
    if isinstance(value, bool):
        raise InvalidValue(f"Invalid {context}: must be a number")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise InvalidValue(f"Invalid {context}: must be a number") from None
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidValue(f"Invalid {context}: must be a finite number")
    return value


def validate_integer(value: Any, context: str = "value") -> int:
    number = validate_numeric(value, context)
    if int(number) != number:
        raise InvalidValue(f"Invalid {context}: must be an integer")
    return int(number)


def validate_positive_integer(value: Any, context: str = "value") -> int:
    number: int = validate_integer(value, context)
    if number <= 0:
        raise InvalidValue(f"Invalid {context}: must be a positive integer")
    return number


def validate_pagination(
    page: Any,
    limit: Any,
    max_limit: int = MAX_PAGE_LIMIT,
) -> Tuple[int, int]:
    """Check ``page >= 1`` and ``1 <= limit <= max_limit``."""
    valid_page: int = validate_positive_integer(page, "page")
    valid_limit: int = validate_positive_integer(limit, "limit")
    if valid_limit > max_limit:
        raise InvalidValue(f"Invalid limit: maximum is {max_limit}")
    return valid_page, valid_limit


def validate_sort_direction(direction: Any) -> str:
    """Return ``ASC`` or ``DESC``; anything else is rejected."""
    if not isinstance(direction, str):
        raise InvalidValue("Invalid sort direction: must be a string")
    upper: str = direction.strip().upper()
    if upper not in SORT_DIRECTIONS:
        raise InvalidValue('Invalid sort direction: must be "ASC" or "DESC"')
    return upper


def validate_uuid(value: Any, context: str = "UUID") -> str:
    """Return the canonical lower-case form of an 8-4-4-4-12 UUID."""
    if not isinstance(value, str) or not _UUID_RE.match(value.strip()):
        raise InvalidValue(f"Invalid {context}: must be a valid UUID")
    return value.strip().lower()


def validate_filter_operator(operator: Any) -> str:
    if not isinstance(operator, str) or operator not in FILTER_OPERATORS:
        raise InvalidValue(
            f"Invalid filter operator: {operator!r}. "
            f"Allowed: {', '.join(FILTER_OPERATORS)}"
        )
    return operator


def validate_array(
    values: Any,
    validator: Any,
    context: str = "array",
    max_items: int = MAX_ARRAY_ITEMS,
) -> List[Any]:
    """Apply *validator* to every item of a bounded, non-empty list."""
    if not isinstance(values, (list, tuple)) or not values:
        raise InvalidValue(f"Invalid {context}: must be a non-empty array")
    if len(values) > max_items:
        raise InvalidValue(f"Invalid {context}: maximum {max_items} items allowed")
    return [validator(item, f"{context}[{index}]") for index, item in enumerate(values)]


# ---------------------------------------------------------------------------
# Display helpers (never a substitute for parameterisation)
# ---------------------------------------------------------------------------


def sanitize_string(value: str) -> str:
    """Strip comment and stacked-query fragments from text meant for logs."""
    if not isinstance(value, str):
        return ""
    return _INJECTION_FRAGMENTS_RE.sub("", value)


def is_safe_string(value: Any) -> bool:
    return isinstance(value, str) and bool(_SAFE_STRING_RE.match(value))


__all__: List[str] = [
    "MAX_IDENTIFIER_LENGTH",
    "MAX_PAGE_LIMIT",
    "RESERVED_TOKENS",
    "FILTER_OPERATORS",
    "SORT_DIRECTIONS",
    "IdentifierCheck",
    "check_identifier",
    "validate_identifier",
    "validate_identifiers",
    "create_column_whitelist",
    "validate_numeric",
    "validate_integer",
    "validate_positive_integer",
    "validate_pagination",
    "validate_sort_direction",
    "validate_uuid",
    "validate_filter_operator",
    "validate_array",
    "sanitize_string",
    "is_safe_string",
]

logger.debug("crudforge.security loaded.")
