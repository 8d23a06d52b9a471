"""
tests/test_config.py
Generator configuration model and the JSON/YAML file loaders.
"""

from __future__ import annotations

import json
import pathlib
from typing import Any, Dict

import pytest
import yaml

from crudforge.config import (
    GeneratorConfig,
    load_config_file,
    load_data_file,
    load_metadata_file,
)
from crudforge.errors import ConfigError


class TestGeneratorConfig:

    def test_defaults(self) -> None:
        config = GeneratorConfig()
        assert config.output_path == "."
        assert config.architecture == "standalone"
        assert config.dialect == "postgresql"
        assert config.database_url is None
        assert not config.archive_orphans
        assert config.resolved_store_path() == pathlib.Path(".crudforge/metadata.json")

    def test_database_url_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CRUDFORGE_DATABASE_URL", "sqlite:///env.db")
        assert GeneratorConfig().database_url == "sqlite:///env.db"

    def test_explicit_store_path(self) -> None:
        config = GeneratorConfig(output_path="out", store_path="state/checksums.json")
        assert config.resolved_store_path() == pathlib.Path("state/checksums.json")

    def test_overrides_skip_none(self) -> None:
        base = GeneratorConfig(output_path="out", dialect="mysql")
        updated = base.with_overrides(output_path=None, architecture="monorepo", app_name="shop")
        assert updated.output_path == "out"
        assert updated.dialect == "mysql"
        assert updated.architecture == "monorepo"
        assert updated.app_name == "shop"
        assert base.architecture == "standalone"

    def test_no_overrides_returns_same_config(self) -> None:
        base = GeneratorConfig()
        assert base.with_overrides(dialect=None) is base

    @pytest.mark.parametrize("overrides", [{"dialect": "oracle"}, {"indent_size": 1}])
    def test_invalid_override(self, overrides: Dict[str, Any]) -> None:
        with pytest.raises(ConfigError, match="Invalid configuration override"):
            GeneratorConfig().with_overrides(**overrides)


class TestLoadDataFile:

    def test_missing_file(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(ConfigError, match="File not found"):
            load_data_file(tmp_path / "absent.yaml")

    def test_empty_yaml_is_empty_mapping(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "empty.yml"
        path.write_text("", encoding="utf-8")
        assert load_data_file(path) == {}

    def test_invalid_json(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{oops", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_data_file(path)

    def test_invalid_yaml(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("key: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_data_file(path)

    def test_top_level_must_be_mapping(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="got list"):
            load_data_file(path)


class TestLoadConfigFile:

    def test_nested_yaml_section(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "crudforge.yaml"
        path.write_text(
            yaml.dump({"crudforge": {"output_path": "out", "dialect": "sqlite", "indent_size": 2}}),
            encoding="utf-8",
        )
        config = load_config_file(path)
        assert config.output_path == "out"
        assert config.dialect == "sqlite"
        assert config.indent_size == 2

    def test_flat_json(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "crudforge.json"
        path.write_text(json.dumps({"architecture": "microservice", "app_name": "billing"}), encoding="utf-8")
        config = load_config_file(path)
        assert config.architecture == "microservice"
        assert config.app_name == "billing"

    def test_unknown_key_rejected(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "crudforge.yaml"
        path.write_text("crudforge:\n  colour: blue\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Config validation failed"):
            load_config_file(path)

    def test_section_must_be_mapping(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "crudforge.yaml"
        path.write_text("crudforge: yes\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="must be a mapping"):
            load_config_file(path)


class TestLoadMetadataFile:

    def test_nested_table(self, metadata_yaml_path: pathlib.Path) -> None:
        table = load_metadata_file(metadata_yaml_path)
        assert table.key == "public.orders"
        assert table.has_soft_delete

    def test_flat_json(self, tmp_path: pathlib.Path, users_dict: Dict[str, Any]) -> None:
        path = tmp_path / "users.json"
        path.write_text(json.dumps(users_dict), encoding="utf-8")
        table = load_metadata_file(path)
        assert table.table_name == "users"
        assert table.primary_key == "id"

    def test_invalid_metadata(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("table:\n  table: orders\n  columns: []\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Metadata validation failed"):
            load_metadata_file(path)
