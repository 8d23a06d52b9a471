# File: crudforge/config.py
"""
crudforge - Generator Configuration
====================================
Project-level settings (output root, layout, dialect, store location) and
the loaders for configuration and table-metadata files.

Both file kinds are JSON or YAML (PyYAML ``safe_load``), dispatched on the
extension.  A config file may nest its settings under a top-level
``crudforge:`` key; a metadata file may nest the table under ``table:``.

Precedence, lowest first: model defaults → environment
(``CRUDFORGE_DATABASE_URL``) → config file → CLI flags
(``GeneratorConfig.with_overrides``).
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from crudforge.errors import ConfigError
from crudforge.models import _SHARED_CONFIG, Architecture, Dialect, TableMetadata
from crudforge.store import default_store_path

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.config")

ENV_DATABASE_URL: str = "CRUDFORGE_DATABASE_URL"
CONFIG_SECTION: str = "crudforge"


def _database_url_from_env() -> Optional[str]:
    return os.environ.get(ENV_DATABASE_URL) or None


# ---------------------------------------------------------------------------
# GeneratorConfig
# ---------------------------------------------------------------------------


class GeneratorConfig(BaseModel):
    """Settings shared by every ``generate_module`` call of one generator."""

    model_config = _SHARED_CONFIG

    output_path: str = Field(default=".", min_length=1, description="Project root.")
    architecture: Architecture = Field(
        default=Architecture.STANDALONE, description="Module directory layout."
    )
    app_name: Optional[str] = Field(
        default=None, description="App/service name for monorepo and microservice layouts."
    )
    dialect: Dialect = Field(default=Dialect.POSTGRESQL, description="Target SQL dialect.")
    store_path: Optional[str] = Field(
        default=None,
        description="Checksum store file; defaults to <output_path>/.crudforge/metadata.json.",
    )
    database_url: Optional[str] = Field(
        default_factory=_database_url_from_env,
        description="SQLAlchemy URL used for introspection.",
    )
    archive_orphans: bool = Field(
        default=False, description="Write orphaned preserved blocks to <file>.orphaned."
    )
    indent_size: int = Field(default=4, ge=2, le=8, description="Indent of generated code.")
    generate_docstrings: bool = Field(
        default=True, description="Emit docstrings in generated code."
    )

    def resolved_store_path(self) -> Path:
        if self.store_path:
            return Path(self.store_path)
        return default_store_path(self.output_path)

    def with_overrides(self, **overrides: Any) -> "GeneratorConfig":
        """
        Return a copy with every non-``None`` override applied (and validated).

        Raises:
            ConfigError: An override has an invalid value.
        """
        changes: Dict[str, Any] = {k: v for k, v in overrides.items() if v is not None}
        if not changes:
            return self
        data: Dict[str, Any] = self.model_dump()
        data.update(changes)
        try:
            return GeneratorConfig.model_validate(data)
        except PydanticValidationError as exc:
            raise ConfigError(f"Invalid configuration override: {exc}") from exc


# ---------------------------------------------------------------------------
# File loaders
# ---------------------------------------------------------------------------


def _load_json_file(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}", details={"path": str(path)}) from exc


def _load_yaml_file(path: Path) -> Any:
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}", details={"path": str(path)}) from exc


def load_data_file(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a JSON/YAML file whose top level must be a mapping.

    ``.json`` is parsed as JSON; anything else as YAML (a superset of JSON).

    Raises:
        ConfigError: Missing file, parse error, or non-mapping top level.
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise ConfigError(f"File not found: {file_path}", details={"path": str(file_path)})

    if file_path.suffix.lower() == ".json":
        data: Any = _load_json_file(file_path)
    else:
        data = _load_yaml_file(file_path)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Expected a mapping at the top level of {file_path}, "
            f"got {type(data).__name__}.",
            details={"path": str(file_path)},
        )
    return data


def load_config_file(path: Union[str, Path]) -> GeneratorConfig:
    """Load a ``GeneratorConfig`` (flat or under ``crudforge:``)."""
    raw: Dict[str, Any] = load_data_file(path)
    section: Any = raw.get(CONFIG_SECTION, raw)
    if not isinstance(section, dict):
        raise ConfigError(f"'{CONFIG_SECTION}' in {path} must be a mapping.")
    try:
        config = GeneratorConfig.model_validate(section)
    except PydanticValidationError as exc:
        raise ConfigError(f"Config validation failed for {path}: {exc}") from exc
    logger.info("Loaded configuration from %s.", path)
    return config


def load_metadata_file(path: Union[str, Path]) -> TableMetadata:
    """
    Load literal table metadata.

    The table may be nested under a ``table:`` mapping or be the file
    itself; in the flat form ``table`` is the table name.
    """
    raw: Dict[str, Any] = load_data_file(path)
    nested: Any = raw.get("table")
    data: Dict[str, Any] = nested if isinstance(nested, dict) else raw
    try:
        table = TableMetadata.model_validate(data)
    except PydanticValidationError as exc:
        raise ConfigError(f"Metadata validation failed for {path}: {exc}") from exc
    logger.info("Loaded metadata for %s from %s.", table.key, path)
    return table


__all__: List[str] = [
    "ENV_DATABASE_URL",
    "GeneratorConfig",
    "load_data_file",
    "load_config_file",
    "load_metadata_file",
]

logger.debug("crudforge.config loaded.")
