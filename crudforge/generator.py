# File: crudforge/generator.py
"""
crudforge - Generation Orchestrator
====================================
Connects every phase of one module generation:

    Resolve metadata → Validate → Checksum / drift gate → Build files →
    per file {read existing → merge preserved blocks → normalise → compare →
    skip | write} → persist checksum record

``CrudGenerator`` is the programmatic API and the backend for the CLI.

Error handling strategy:
    - Identifier, metadata-source, validation and drift errors abort the
      call before anything is written; they propagate as ``CrudForgeError``
      subclasses.
    - Per-file I/O errors are isolated: the remaining files are still
      processed, the errors land in ``GenerationResult.errors`` and the
      checksum record is NOT persisted, so the next run retries.
    - ``dry_run`` executes every step except file writes and the store save.

Each call handles one table.  Callers serialise calls per ``schema.table``;
nothing here takes a lock.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from crudforge.config import GeneratorConfig
from crudforge.errors import (
    ConfigError,
    MetadataSourceError,
    MetadataValidationError,
    SchemaDriftDetected,
)
from crudforge.introspection import introspect_table
from crudforge.merge import MergeResult, format_orphan_archive, merge_with_report, normalize_output
from crudforge.models import Architecture, GeneratedFile, GenerateOptions, TableMetadata
from crudforge.security import validate_identifier
from crudforge.store import DriftStatus, MetadataStore, default_store_path
from crudforge.templates import TemplateBuilder
from crudforge.utils import Timer, count_lines, read_if_exists, table_to_module_name, write_file
from crudforge.validators import ValidationResult, validate_table_metadata

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.generator")

ORPHAN_SUFFIX: str = ".orphaned"

_APP_NAME_RE: re.Pattern[str] = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


# ---------------------------------------------------------------------------
# Generation result
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class GenerationStepMetric:
    """Timing and outcome for a single pipeline step."""

    step_name: str = ""
    success: bool = True
    elapsed_seconds: float = 0.0
    detail: str = ""


@dataclass(frozen=False, slots=True)
class GenerationResult:
    """
    Outcome of ``CrudGenerator.generate_module()``.

    In a dry run ``written_files`` lists the files that *would* change.
    """

    module_name: str = ""
    target_directory: str = ""
    checksum: str = ""
    metadata: Optional[TableMetadata] = None

    files: List[str] = field(default_factory=list)
    written_files: List[str] = field(default_factory=list)
    skipped_files: List[str] = field(default_factory=list)
    orphaned_blocks: Dict[str, List[str]] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    step_metrics: List[GenerationStepMetric] = field(default_factory=list)

    success: bool = False
    dry_run: bool = False
    elapsed_seconds: float = 0.0

    def summary(self) -> str:
        """Return a human-readable summary string."""
        lines: List[str] = []
        status: str = "SUCCESS" if self.success else "FAILED"
        if self.dry_run:
            status += " (dry run)"
        key: str = self.metadata.key if self.metadata is not None else "?"
        lines.append(f"{'=' * 60}")
        lines.append("  crudforge: Generation Report")
        lines.append(f"{'=' * 60}")
        lines.append(f"  Status:     {status}")
        lines.append(f"  Table:      {key}")
        lines.append(f"  Module:     {self.module_name}")
        lines.append(f"  Directory:  {self.target_directory}")
        lines.append(f"  Checksum:   {self.checksum[:12]}")
        written_label: str = "Would write" if self.dry_run else "Written"
        lines.append(f"  {written_label + ':':<11} {len(self.written_files)}")
        lines.append(f"  Unchanged:  {len(self.skipped_files)}")
        lines.append(f"  Total time: {self.elapsed_seconds:.3f}s")
        lines.append(f"{'─' * 60}")

        if self.step_metrics:
            lines.append("  Pipeline Steps:")
            for step in self.step_metrics:
                icon: str = "✓" if step.success else "✗"
                lines.append(
                    f"    {icon} {step.step_name:<24s} "
                    f"{step.elapsed_seconds:>7.3f}s  {step.detail}"
                )

        if self.orphaned_blocks:
            lines.append(f"{'─' * 60}")
            lines.append(f"  Orphaned Preserved Blocks ({len(self.orphaned_blocks)} file(s)):")
            for path, ids in sorted(self.orphaned_blocks.items()):
                lines.append(f"    ⚠ {path}: {', '.join(ids)}")

        if self.errors:
            lines.append(f"{'─' * 60}")
            lines.append(f"  Errors ({len(self.errors)}):")
            for err in self.errors:
                lines.append(f"    ✗ {err}")

        lines.append(f"{'=' * 60}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Output layout
# ---------------------------------------------------------------------------


def resolve_module_directory(
    output_path: Union[str, Path],
    architecture: Union[str, Architecture],
    module_name: str,
    app_name: Optional[str] = None,
) -> Path:
    """
    Directory the module's files are written to.

    - standalone:   ``<root>/src/modules/<module>``
    - monorepo:     ``<root>/apps/<app>/src/modules/<module>``
    - microservice: ``<root>/services/<app>/src/modules/<module>``

    Raises:
        ConfigError: Unknown layout, or a missing / unsafe app name.
        InvalidIdentifier: *module_name* is not a safe identifier.
    """
    module: str = validate_identifier(module_name, None, "module name")
    root = Path(output_path)
    try:
        layout = Architecture(architecture)
    except ValueError as exc:
        raise ConfigError(f"Unknown architecture: {architecture!r}") from exc

    if layout == Architecture.STANDALONE:
        return root / "src" / "modules" / module

    if not app_name or not _APP_NAME_RE.match(app_name) or ".." in app_name:
        raise ConfigError(
            f"The {layout.value} layout needs a valid app name, got {app_name!r}.",
            details={"architecture": layout.value},
        )
    parent: str = "apps" if layout == Architecture.MONOREPO else "services"
    return root / parent / app_name / "src" / "modules" / module


# ---------------------------------------------------------------------------
# CrudGenerator
# ---------------------------------------------------------------------------


class CrudGenerator:
    """
    Single-table CRUD module generator.

    Usage::

        generator = CrudGenerator(GeneratorConfig(output_path="./app"))
        result = generator.generate_module(
            GenerateOptions(schema="public", table="orders", metadata=table)
        )
        print(result.summary())

    The generator is reusable; configuration is fixed at construction and
    every per-call input travels in ``GenerateOptions``.
    """

    def __init__(self, config: Optional[GeneratorConfig] = None) -> None:
        self._config: GeneratorConfig = config or GeneratorConfig()
        logger.debug(
            "CrudGenerator initialised: output=%s, architecture=%s, dialect=%s.",
            self._config.output_path,
            self._config.architecture,
            self._config.dialect,
        )

    @property
    def config(self) -> GeneratorConfig:
        return self._config

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def generate_module(self, options: GenerateOptions) -> GenerationResult:
        """
        Run the full pipeline for one table.

        Raises:
            InvalidIdentifier: Schema, table or module name rejected.
            MetadataSourceError: Neither metadata nor a database URL.
            IntrospectionError: The database could not be read.
            MetadataValidationError: The metadata cannot be generated.
            SchemaDriftDetected: Metadata changed and ``force`` is not set.
            MetadataStoreError: The checksum store is unreadable.
            TemplateError: A generated file failed its marker check.
        """
        pipeline_start: float = time.perf_counter()
        result = GenerationResult(dry_run=options.dry_run)

        # --- Step: resolve metadata ---
        with Timer("resolve_metadata") as t:
            metadata: TableMetadata = self.resolve_metadata(options)
        result.metadata = metadata
        result.step_metrics.append(GenerationStepMetric(
            step_name="Resolve Metadata",
            elapsed_seconds=t.elapsed,
            detail=f"{metadata.key}, {len(metadata.columns)} columns",
        ))

        # --- Step: validate ---
        self._step_validate(metadata, result)

        # --- Step: checksum & drift gate ---
        output_root: Path = self._output_root(options)
        store = MetadataStore(self._store_path(options))
        with Timer("drift") as t:
            status: DriftStatus = store.detect_drift(metadata)
        result.checksum = status.current_checksum
        result.step_metrics.append(GenerationStepMetric(
            step_name="Checksum",
            success=not status.has_drift or options.force,
            elapsed_seconds=t.elapsed,
            detail=status.describe(),
        ))
        if status.has_drift:
            if not options.force:
                logger.error("Schema drift detected: %s", status.describe())
                raise SchemaDriftDetected(
                    status.key,
                    status.stored_checksum or "",
                    status.current_checksum,
                )
            logger.warning("Schema drift accepted with force: %s", status.describe())

        # --- Step: build candidate files ---
        module_name: str = options.module_name or table_to_module_name(metadata.table_name)
        target_dir: Path = resolve_module_directory(
            output_root,
            options.architecture or self._config.architecture,
            module_name,
            options.app_name or self._config.app_name,
        )
        result.module_name = module_name
        result.target_directory = str(target_dir)

        with Timer("build") as t:
            builder = TemplateBuilder(
                metadata,
                self._config.dialect,
                indent_size=self._config.indent_size,
                generate_docstrings=self._config.generate_docstrings,
            )
            candidates: List[GeneratedFile] = builder.build_all()
        result.step_metrics.append(GenerationStepMetric(
            step_name="Build Files",
            elapsed_seconds=t.elapsed,
            detail=(
                f"{len(candidates)} files, "
                f"~{sum(count_lines(f.content) for f in candidates):,} lines"
            ),
        ))

        # --- Step: merge & write ---
        archive: bool = (
            options.archive_orphans
            if options.archive_orphans is not None
            else self._config.archive_orphans
        )
        self._step_write(candidates, target_dir, archive, options.dry_run, result)

        # --- Step: persist checksum record ---
        self._step_persist(store, metadata, status, result, options.dry_run)

        result.success = not result.errors
        result.elapsed_seconds = time.perf_counter() - pipeline_start
        logger.info(
            "Generated %s into %s: %d written, %d unchanged, %d error(s) in %.3fs%s.",
            metadata.key,
            target_dir,
            len(result.written_files),
            len(result.skipped_files),
            len(result.errors),
            result.elapsed_seconds,
            " (dry run)" if options.dry_run else "",
        )
        return result

    def check_drift(self, options: GenerateOptions) -> DriftStatus:
        """Resolve metadata and compare it with the store; writes nothing."""
        metadata: TableMetadata = self.resolve_metadata(options)
        return MetadataStore(self._store_path(options)).detect_drift(metadata)

    def resolve_metadata(self, options: GenerateOptions) -> TableMetadata:
        """
        Literal metadata wins; otherwise introspect the live database.

        Raises:
            InvalidIdentifier: Schema or table name rejected.
            MetadataSourceError: No metadata and no database URL, or literal
                metadata that names a different table.
            IntrospectionError: The database could not be read.
        """
        schema: str = validate_identifier(options.schema_name, None, "schema")
        table: str = validate_identifier(options.table_name, None, "table")

        if options.metadata is not None:
            metadata: TableMetadata = options.metadata
            if (metadata.schema_name, metadata.table_name) != (schema, table):
                raise MetadataSourceError(
                    f"Metadata describes {metadata.key} but {schema}.{table} was requested.",
                    details={"requested": f"{schema}.{table}", "metadata": metadata.key},
                )
            logger.debug("Using literal metadata for %s.", metadata.key)
            return metadata

        database_url: Optional[str] = options.database_url or self._config.database_url
        if not database_url:
            raise MetadataSourceError(
                f"No metadata and no database URL for {schema}.{table}.",
                details={"schema": schema, "table": table},
            )
        logger.info("Introspecting %s.%s.", schema, table)
        return introspect_table(database_url, schema, table)

    # -----------------------------------------------------------------
    # Pipeline steps
    # -----------------------------------------------------------------

    def _step_validate(self, metadata: TableMetadata, result: GenerationResult) -> None:
        with Timer("validation") as t:
            validation: ValidationResult = validate_table_metadata(metadata)

        result.step_metrics.append(GenerationStepMetric(
            step_name="Validate Metadata",
            success=validation.is_valid,
            elapsed_seconds=t.elapsed,
            detail=(
                f"{len(validation.errors)} error(s), "
                f"{len(validation.warnings)} warning(s)"
            ),
        ))

        for notice in validation.notices:
            logger.info("  ℹ %s", notice)
        for warn in validation.warnings:
            logger.warning("  ⚠ %s", warn)

        if validation.has_errors:
            for err in validation.errors:
                logger.error("  ✗ %s", err)
            raise MetadataValidationError(
                f"Metadata for {metadata.key} failed validation "
                f"({len(validation.errors)} error(s)).",
                validation,
            )

    def _step_write(
        self,
        candidates: List[GeneratedFile],
        target_dir: Path,
        archive_orphans: bool,
        dry_run: bool,
        result: GenerationResult,
    ) -> None:
        """Merge, normalise and compare every file; write only real changes."""
        with Timer("write") as t:
            for candidate in candidates:
                target: Path = target_dir / candidate.path
                result.files.append(str(target))
                try:
                    existing: Optional[str] = read_if_exists(target)
                    merged: MergeResult = merge_with_report(candidate.content, existing)
                    final: str = normalize_output(merged.content)

                    if merged.orphaned:
                        result.orphaned_blocks[str(target)] = sorted(merged.orphaned)
                        if archive_orphans and not dry_run:
                            self._archive_orphans(target, merged)

                    if existing is not None and final == existing:
                        result.skipped_files.append(str(target))
                        logger.debug("Unchanged: %s", target)
                        continue

                    if not dry_run:
                        write_file(target, final)
                    result.written_files.append(str(target))
                    logger.info("%s %s", "Would write" if dry_run else "Wrote", target)
                except (OSError, UnicodeDecodeError) as exc:
                    message: str = f"{target}: {exc}"
                    result.errors.append(message)
                    logger.error("Failed to write %s", message)

        result.step_metrics.append(GenerationStepMetric(
            step_name="Merge & Write",
            success=not result.errors,
            elapsed_seconds=t.elapsed,
            detail=(
                f"{len(result.written_files)} written, "
                f"{len(result.skipped_files)} unchanged, "
                f"{len(result.errors)} failed"
            ),
        ))

    def _archive_orphans(self, target: Path, merged: MergeResult) -> None:
        sidecar: Path = target.with_name(target.name + ORPHAN_SUFFIX)
        previous: str = read_if_exists(sidecar) or ""
        if previous and not previous.endswith("\n"):
            previous += "\n"
        write_file(sidecar, previous + format_orphan_archive(target.name, merged.orphaned))
        logger.warning(
            "Archived %d orphaned block(s) from %s to %s.",
            len(merged.orphaned),
            target.name,
            sidecar,
        )

    def _step_persist(
        self,
        store: MetadataStore,
        metadata: TableMetadata,
        status: DriftStatus,
        result: GenerationResult,
        dry_run: bool,
    ) -> None:
        with Timer("persist") as t:
            if result.errors:
                detail: str = "skipped: file errors"
                logger.error(
                    "Not recording checksum for %s: %d file(s) failed.",
                    metadata.key,
                    len(result.errors),
                )
            elif dry_run:
                detail = "skipped: dry run"
            elif not status.is_new and not status.has_drift and not result.written_files:
                detail = "unchanged"
            else:
                store.update_record(metadata.key, metadata, status.current_checksum)
                try:
                    store.save()
                except OSError as exc:
                    result.errors.append(f"{store.path}: {exc}")
                    logger.error("Failed to save checksum store %s: %s", store.path, exc)
                    detail = "failed"
                else:
                    detail = f"recorded {status.current_checksum[:12]}"

        result.step_metrics.append(GenerationStepMetric(
            step_name="Persist Checksum",
            success=not result.errors,
            elapsed_seconds=t.elapsed,
            detail=detail,
        ))

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------

    def _output_root(self, options: GenerateOptions) -> Path:
        return Path(options.output_path or self._config.output_path)

    def _store_path(self, options: GenerateOptions) -> Path:
        if self._config.store_path:
            return Path(self._config.store_path)
        return default_store_path(self._output_root(options))


def generate_module(
    options: GenerateOptions,
    config: Optional[GeneratorConfig] = None,
) -> GenerationResult:
    """Shortcut for ``CrudGenerator(config).generate_module(options)``."""
    return CrudGenerator(config).generate_module(options)


__all__: List[str] = [
    "ORPHAN_SUFFIX",
    "GenerationStepMetric",
    "GenerationResult",
    "resolve_module_directory",
    "CrudGenerator",
    "generate_module",
]

logger.debug("crudforge.generator loaded.")
