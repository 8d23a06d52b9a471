# File: crudforge/cli.py
"""
crudforge - Command-Line Interface
===================================

CLI built with the standard-library ``argparse`` module.

Usage examples::

    # Generate from a metadata file
    crudforge -m orders.yaml -o ./app

    # Introspect a live database
    crudforge --table orders --database-url postgresql://... -o ./app

    # Monorepo layout, accept schema drift
    crudforge -m orders.yaml -o ./repo --architecture monorepo --app billing --force

    # Report drift only, write nothing
    crudforge -m orders.yaml -o ./app --check

Exit codes:
    0  success
    1  validation / identifier error
    2  generation error (introspection, templates, store)
    3  write error
    4  input / argument error
    5  schema drift detected
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from crudforge.config import GeneratorConfig, load_config_file, load_metadata_file
from crudforge.errors import (
    ConfigError,
    CrudForgeError,
    InvalidIdentifier,
    MetadataSourceError,
    MetadataValidationError,
    SchemaDriftDetected,
)
from crudforge.generator import CrudGenerator, GenerationResult
from crudforge.models import Architecture, Dialect, GenerateOptions, TableMetadata
from crudforge.store import DriftStatus

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_VALIDATION_ERROR: int = 1
EXIT_GENERATION_ERROR: int = 2
EXIT_WRITE_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4
EXIT_DRIFT_DETECTED: int = 5


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the ``crudforge`` logger based on verbosity level.

    Args:
        verbosity: -1 = silent, 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    elif verbosity == 0:
        level = logging.WARNING
    else:
        level = logging.CRITICAL + 10

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    fmt: str = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
    datefmt: str = "%H:%M:%S"
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root_logger: logging.Logger = logging.getLogger("crudforge")
    root_logger.setLevel(level)

    # Remove existing handlers to prevent duplication
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    from crudforge import __version__

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="crudforge",
        description=(
            "crudforge: metadata-driven CRUD module generator.\n\n"
            "Generates SQL, repository and schema modules for one table and "
            "regenerates them without losing hand-written preserved blocks."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s -m orders.yaml -o ./app\n"
            "  %(prog)s --table orders --database-url sqlite:///app.db -o ./app\n"
            "  %(prog)s -m orders.yaml -o ./app --check\n"
        ),
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # --- Input ---
    input_group = parser.add_argument_group("input")
    input_group.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        help="Path to a YAML/JSON generator configuration file.",
    )
    input_group.add_argument(
        "-m", "--metadata",
        type=str,
        default=None,
        help="Path to a YAML/JSON table metadata file (skips introspection).",
    )
    input_group.add_argument(
        "--schema",
        type=str,
        default=None,
        help="Database schema (default: from metadata, else 'public').",
    )
    input_group.add_argument(
        "--table",
        type=str,
        default=None,
        help="Table to generate (default: from metadata).",
    )
    input_group.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy URL for introspection (or CRUDFORGE_DATABASE_URL).",
    )

    # --- Output ---
    output_group = parser.add_argument_group("output")
    output_group.add_argument(
        "-o", "--output",
        type=str,
        default=None,
        help="Project root directory (default: config value or '.').",
    )
    output_group.add_argument(
        "--architecture",
        type=str,
        choices=[a.value for a in Architecture],
        default=None,
        help="Module directory layout.",
    )
    output_group.add_argument(
        "--app",
        type=str,
        default=None,
        help="App / service name for monorepo and microservice layouts.",
    )
    output_group.add_argument(
        "--module-name",
        type=str,
        default=None,
        help="Module name (default: singular snake_case of the table).",
    )
    output_group.add_argument(
        "--dialect",
        type=str,
        choices=[d.value for d in Dialect],
        default=None,
        help="SQL dialect of the generated statements.",
    )

    # --- Behaviour ---
    behaviour_group = parser.add_argument_group("behaviour flags")
    behaviour_group.add_argument(
        "--force",
        action="store_true",
        default=False,
        help="Regenerate even though the table metadata changed.",
    )
    behaviour_group.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Run the full pipeline without writing any file.",
    )
    behaviour_group.add_argument(
        "--check",
        action="store_true",
        default=False,
        help="Only report whether the metadata drifted (exit 5 on drift).",
    )
    behaviour_group.add_argument(
        "--archive-orphans",
        action="store_true",
        default=False,
        help="Save preserved blocks the templates dropped to <file>.orphaned.",
    )

    # --- Verbosity ---
    verbosity_group = parser.add_argument_group("verbosity")
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all log output.",
    )

    return parser


# ---------------------------------------------------------------------------
# Config & options builders
# ---------------------------------------------------------------------------


def _build_config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Config values given on the command line (``None`` means not given)."""
    return {
        "output_path": args.output,
        "architecture": args.architecture,
        "app_name": args.app,
        "dialect": args.dialect,
        "database_url": args.database_url,
        "archive_orphans": True if args.archive_orphans else None,
    }


def _load_config(args: argparse.Namespace) -> GeneratorConfig:
    base: GeneratorConfig = (
        load_config_file(Path(args.config)) if args.config else GeneratorConfig()
    )
    return base.with_overrides(**_build_config_overrides(args))


def _build_options(args: argparse.Namespace) -> GenerateOptions:
    metadata: Optional[TableMetadata] = None
    if args.metadata:
        metadata = load_metadata_file(Path(args.metadata))

    table: Optional[str] = args.table or (metadata.table_name if metadata else None)
    schema: Optional[str] = args.schema or (metadata.schema_name if metadata else None)
    if not table:
        raise ConfigError("A table is required: pass --table or -m/--metadata.")

    try:
        return GenerateOptions(
            schema_name=schema or "public",
            table_name=table,
            metadata=metadata,
            module_name=args.module_name,
            force=args.force,
            dry_run=args.dry_run,
        )
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid options: {exc}") from exc


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------


def _run_check(generator: CrudGenerator, options: GenerateOptions) -> int:
    status: DriftStatus = generator.check_drift(options)
    print(status.describe())
    return EXIT_DRIFT_DETECTED if status.has_drift else EXIT_SUCCESS


def _run_generation(generator: CrudGenerator, options: GenerateOptions) -> int:
    result: GenerationResult = generator.generate_module(options)
    print(result.summary())
    return EXIT_SUCCESS if result.success else EXIT_WRITE_ERROR


def _exit_code_for(exc: CrudForgeError) -> int:
    if isinstance(exc, SchemaDriftDetected):
        return EXIT_DRIFT_DETECTED
    if isinstance(exc, (InvalidIdentifier, MetadataValidationError)):
        return EXIT_VALIDATION_ERROR
    if isinstance(exc, (ConfigError, MetadataSourceError)):
        return EXIT_INPUT_ERROR
    return EXIT_GENERATION_ERROR


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entry point.

    Can be called from ``__main__.py`` or directly for testing.

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    _setup_logging(-1 if args.quiet else args.verbose)

    try:
        config: GeneratorConfig = _load_config(args)
        options: GenerateOptions = _build_options(args)
        generator = CrudGenerator(config)

        logger.info("Table:   %s.%s", options.schema_name, options.table_name)
        logger.info("Output:  %s", Path(config.output_path).resolve())

        if args.check:
            exit_code: int = _run_check(generator, options)
        else:
            exit_code = _run_generation(generator, options)
    except CrudForgeError as exc:
        logger.error("%s", exc.message)
        if isinstance(exc, MetadataValidationError):
            print(exc.result.format_report(), file=sys.stderr)
        else:
            print(f"error: {exc.message}", file=sys.stderr)
        exit_code = _exit_code_for(exc)

    if exit_code == EXIT_SUCCESS:
        logger.info("Done.")
    else:
        logger.error("crudforge failed with exit code %d.", exit_code)

    sys.exit(exit_code)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "cli_main",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_ERROR",
    "EXIT_GENERATION_ERROR",
    "EXIT_WRITE_ERROR",
    "EXIT_INPUT_ERROR",
    "EXIT_DRIFT_DETECTED",
]

logger.debug("crudforge.cli loaded.")
