# File: crudforge/errors.py
"""
crudforge - Exception Hierarchy
================================
Every failure the generator surfaces to a caller derives from
``CrudForgeError``.  Each exception carries a machine-readable
``error_code`` and an optional ``details`` mapping so the CLI (and any
embedding application) can report the offending name, checksum or path.

Categories:
    - Identifier / value errors: ``InvalidIdentifier``, ``InvalidValue``,
      ``MalformedFilterValue`` (also ``ValueError`` subclasses).
    - Regeneration safety: ``SchemaDriftDetected``.
    - Metadata sources: ``MetadataSourceError``, ``IntrospectionError``,
      ``MetadataValidationError``.
    - Generation: ``TemplateError``.
    - Persistence / configuration: ``MetadataStoreError``, ``ConfigError``.

Usage:
    raise InvalidIdentifier("Invalid column: \"x\"", details={"name": "x"})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from crudforge.validators import ValidationResult

logger: logging.Logger = logging.getLogger("crudforge.errors")


class CrudForgeError(Exception):
    """
    Base exception for all crudforge errors.

    Attributes:
        message: Human-readable description.
        error_code: Machine-readable identifier (e.g. ``"SCHEMA_DRIFT"``).
        details: Structured context for debugging and CLI output.
    """

    error_code: str = "CRUDFORGE_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert the exception to a JSON-friendly dictionary."""
        result: Dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# ---------------------------------------------------------------------------
# Identifier & value errors
# ---------------------------------------------------------------------------


class InvalidIdentifier(CrudForgeError, ValueError):
    """A table, schema or column name failed whitelist or pattern checks."""

    error_code = "INVALID_IDENTIFIER"


class InvalidValue(CrudForgeError, ValueError):
    """A scalar (page, limit, UUID, sort direction, ...) is out of range."""

    error_code = "INVALID_VALUE"


class MalformedFilterValue(CrudForgeError, ValueError):
    """
    A filter value could not be turned into a condition.

    Only raised when the compiler runs in strict mode; the lenient default
    drops the condition instead.
    """

    error_code = "MALFORMED_FILTER_VALUE"


# ---------------------------------------------------------------------------
# Regeneration safety
# ---------------------------------------------------------------------------


class SchemaDriftDetected(CrudForgeError):
    """
    Table metadata changed since the last generation and ``force`` was not set.

    Raised before any file is written.
    """

    error_code = "SCHEMA_DRIFT"

    def __init__(
        self,
        key: str,
        stored_checksum: str,
        current_checksum: str,
    ) -> None:
        super().__init__(
            f"Schema changes detected for {key} "
            f"(stored checksum {stored_checksum[:12]}, "
            f"current {current_checksum[:12]}). "
            "Re-run with force to accept the new metadata.",
            details={
                "key": key,
                "stored_checksum": stored_checksum,
                "current_checksum": current_checksum,
            },
        )
        self.key: str = key
        self.stored_checksum: str = stored_checksum
        self.current_checksum: str = current_checksum


# ---------------------------------------------------------------------------
# Metadata sources
# ---------------------------------------------------------------------------


class MetadataSourceError(CrudForgeError):
    """Neither literal metadata nor a database URL was supplied."""

    error_code = "METADATA_SOURCE"


class IntrospectionError(CrudForgeError):
    """The live database could not be read."""

    error_code = "INTROSPECTION_FAILED"


class MetadataValidationError(CrudForgeError):
    """Table metadata is structurally inconsistent (see ``result``)."""

    error_code = "METADATA_INVALID"

    def __init__(self, message: str, result: "ValidationResult") -> None:
        super().__init__(
            message,
            details={"errors": [str(e) for e in result.errors]},
        )
        self.result: "ValidationResult" = result


class TemplateError(CrudForgeError):
    """A generated file failed its own marker checks."""

    error_code = "TEMPLATE_INVALID"


# ---------------------------------------------------------------------------
# Persistence & configuration
# ---------------------------------------------------------------------------


class MetadataStoreError(CrudForgeError):
    """The checksum store exists but cannot be parsed."""

    error_code = "METADATA_STORE"


class ConfigError(CrudForgeError):
    """A configuration or metadata input file is missing or invalid."""

    error_code = "CONFIG_ERROR"


__all__: List[str] = [
    "CrudForgeError",
    "InvalidIdentifier",
    "InvalidValue",
    "MalformedFilterValue",
    "SchemaDriftDetected",
    "MetadataSourceError",
    "IntrospectionError",
    "MetadataValidationError",
    "TemplateError",
    "MetadataStoreError",
    "ConfigError",
]

logger.debug("crudforge.errors loaded.")
