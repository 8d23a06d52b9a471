"""
tests/conftest.py
Shared fixtures for the crudforge test suite.

No external mocking libraries are used; real file I/O is performed
inside temporary directories managed by pytest's tmp_path fixtures, and
introspection runs against a real SQLite file.
"""

from __future__ import annotations

import copy
import logging
import pathlib
from typing import Any, Dict, Iterator

import pytest
import yaml
from sqlalchemy import create_engine, text

from crudforge.config import GeneratorConfig
from crudforge.generator import CrudGenerator
from crudforge.models import TableMetadata


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

ROOT_DIR: pathlib.Path = pathlib.Path(__file__).resolve().parent.parent
METADATA_EXAMPLE_PATH: pathlib.Path = ROOT_DIR / "metadata_example.yaml"


# ---------------------------------------------------------------------------
# Global state hygiene
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep env vars and CLI logging setup from leaking between tests."""
    monkeypatch.delenv("CRUDFORGE_DATABASE_URL", raising=False)
    yield
    package_logger = logging.getLogger("crudforge")
    package_logger.handlers.clear()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


# ---------------------------------------------------------------------------
# Raw metadata fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def raw_metadata_dict() -> Dict[str, Any]:
    """Load the reference metadata_example.yaml once per session."""
    assert METADATA_EXAMPLE_PATH.exists(), (
        f"Reference metadata not found at {METADATA_EXAMPLE_PATH}. "
        "Make sure metadata_example.yaml is in the project root."
    )
    with open(METADATA_EXAMPLE_PATH, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    assert isinstance(data, dict), "Top-level YAML must be a mapping."
    return data["table"]


@pytest.fixture()
def orders_dict(raw_metadata_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Return a deep copy so each test can mutate freely."""
    return copy.deepcopy(raw_metadata_dict)


@pytest.fixture()
def orders_table(orders_dict: Dict[str, Any]) -> TableMetadata:
    return TableMetadata.model_validate(orders_dict)


@pytest.fixture()
def users_dict() -> Dict[str, Any]:
    """Small table: integer key, no lifecycle columns."""
    return {
        "schema": "public",
        "table": "users",
        "columns": [
            {"name": "id", "data_type": "integer", "is_nullable": False, "is_primary_key": True},
            {"name": "name", "data_type": "string", "is_nullable": False, "max_length": 100},
            {"name": "email", "data_type": "string", "is_nullable": False, "is_unique": True},
            {"name": "age", "data_type": "integer", "min_value": 0, "max_value": 150},
            {"name": "is_active", "data_type": "boolean", "is_nullable": False},
            {"name": "password_hash", "data_type": "string", "is_filterable": False},
        ],
    }


@pytest.fixture()
def users_table(users_dict: Dict[str, Any]) -> TableMetadata:
    return TableMetadata.model_validate(users_dict)


@pytest.fixture()
def metadata_yaml_path(orders_dict: Dict[str, Any], tmp_path: pathlib.Path) -> pathlib.Path:
    """Write the orders metadata to a temporary YAML file (nested form)."""
    path = tmp_path / "orders.yaml"
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump({"table": orders_dict}, fh, default_flow_style=False, allow_unicode=True)
    return path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def output_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / "app"
    path.mkdir()
    return path


@pytest.fixture()
def generator(output_dir: pathlib.Path) -> CrudGenerator:
    return CrudGenerator(GeneratorConfig(output_path=str(output_dir)))


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sqlite_url(tmp_path: pathlib.Path) -> str:
    """SQLite file with a ``products`` table; returns its SQLAlchemy URL."""
    db_path = tmp_path / "shop.db"
    url = f"sqlite:///{db_path}"
    engine = create_engine(url)
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE products ("
            " id INTEGER PRIMARY KEY,"
            " sku VARCHAR(32) NOT NULL,"
            " title TEXT NOT NULL,"
            " price NUMERIC(10, 2),"
            " in_stock BOOLEAN NOT NULL DEFAULT 1,"
            " created_at DATETIME,"
            " updated_at DATETIME,"
            " deleted_at DATETIME,"
            " CONSTRAINT uq_products_sku UNIQUE (sku)"
            ")"
        ))
    engine.dispose()
    return url
