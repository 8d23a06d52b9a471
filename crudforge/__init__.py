# File: crudforge/__init__.py
"""
crudforge: Metadata-Driven CRUD Module Generator
==================================================

Generates the data-access layer for one database table (parameterised SQL,
an async repository and Pydantic V2 schemas) from table metadata, and
regenerates it safely: hand-written code inside preserve markers survives,
and a checksum store refuses to overwrite a module whose table changed
unless forced.

Architecture overview::

    ┌──────────────┐     ┌────────────────┐     ┌─────────────────┐
    │  CLI / Entry │────▶│  CrudGenerator │────▶│ TemplateBuilder │
    │   (cli.py)   │     │ (generator.py) │     │ (templates.py)  │
    └──────────────┘     └───────┬────────┘     └────────┬────────┘
                                 │                       │
              ┌──────────────┬───┴────────┬──────────────┤
              ▼              ▼            ▼              ▼
       ┌─────────────┐ ┌──────────┐ ┌──────────┐ ┌─────────────┐
       │introspection│ │  store   │ │  merge   │ │   filters   │
       │   (.py)     │ │  (.py)   │ │  (.py)   │ │  security   │
       └─────────────┘ └──────────┘ └──────────┘ └─────────────┘

Usage::

    # As a library
    from crudforge import CrudGenerator, GenerateOptions, GeneratorConfig
    gen = CrudGenerator(GeneratorConfig(output_path="./app"))
    result = gen.generate_module(GenerateOptions(table="orders", metadata=table))

    # Runtime filtering
    from crudforge import compile_filter_query
    query = compile_filter_query("SELECT * FROM t", {"status_eq": "a"}, ["status"])

    # From the command line
    crudforge -m orders.yaml -o ./app -v
"""

from __future__ import annotations

__version__: str = "1.0.0"
__license__: str = "MIT"

from crudforge.config import GeneratorConfig, load_config_file, load_metadata_file
from crudforge.errors import (
    ConfigError,
    CrudForgeError,
    IntrospectionError,
    InvalidIdentifier,
    InvalidValue,
    MalformedFilterValue,
    MetadataSourceError,
    MetadataStoreError,
    MetadataValidationError,
    SchemaDriftDetected,
    TemplateError,
)
from crudforge.filters import FilterCompiler, compile_filter_query, parse_filters
from crudforge.generator import CrudGenerator, GenerationResult, generate_module
from crudforge.introspection import introspect_table
from crudforge.merge import (
    extract_preserved_blocks,
    merge_preserved_sections,
    merge_with_report,
    normalize_output,
    validate_markers,
)
from crudforge.models import (
    Architecture,
    ColumnMetadata,
    CompiledQuery,
    DataType,
    Dialect,
    GenerateOptions,
    MetadataRecord,
    TableMetadata,
)
from crudforge.security import validate_identifier, validate_identifiers
from crudforge.store import MetadataStore, compute_checksum
from crudforge.templates import TemplateBuilder
from crudforge.validators import ValidationResult, validate_table_metadata

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    # Version info
    "__version__",
    "__license__",
    # Orchestrator
    "CrudGenerator",
    "GenerationResult",
    "generate_module",
    # Configuration
    "GeneratorConfig",
    "load_config_file",
    "load_metadata_file",
    # Models
    "Architecture",
    "ColumnMetadata",
    "CompiledQuery",
    "DataType",
    "Dialect",
    "GenerateOptions",
    "MetadataRecord",
    "TableMetadata",
    # Identifier validation
    "validate_identifier",
    "validate_identifiers",
    # Filter compiler
    "compile_filter_query",
    "parse_filters",
    "FilterCompiler",
    # Drift tracking
    "MetadataStore",
    "compute_checksum",
    # Preservation merge
    "merge_preserved_sections",
    "merge_with_report",
    "extract_preserved_blocks",
    "validate_markers",
    "normalize_output",
    # Templates & introspection
    "TemplateBuilder",
    "introspect_table",
    # Validation
    "validate_table_metadata",
    "ValidationResult",
    # Errors
    "CrudForgeError",
    "InvalidIdentifier",
    "InvalidValue",
    "MalformedFilterValue",
    "SchemaDriftDetected",
    "MetadataSourceError",
    "IntrospectionError",
    "MetadataValidationError",
    "MetadataStoreError",
    "TemplateError",
    "ConfigError",
]
