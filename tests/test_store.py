"""
tests/test_store.py
Checksum computation, drift detection and the on-disk record store.
"""

from __future__ import annotations

import json
import pathlib
from datetime import datetime, timezone
from typing import Any, Dict

import pytest

from crudforge.errors import MetadataStoreError
from crudforge.models import TableMetadata
from crudforge.store import (
    MetadataStore,
    compute_checksum,
    default_store_path,
    load_store,
)

T1 = datetime(2026, 10, 16, 9, 0, 0, tzinfo=timezone.utc)
T2 = datetime(2026, 10, 16, 9, 30, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Checksum
# ---------------------------------------------------------------------------


class TestChecksum:

    def test_is_sha256_hex(self, orders_table: TableMetadata) -> None:
        checksum = compute_checksum(orders_table)
        assert len(checksum) == 64
        int(checksum, 16)

    def test_deterministic(self, orders_dict: Dict[str, Any]) -> None:
        a = TableMetadata.model_validate(orders_dict)
        b = TableMetadata.model_validate(dict(reversed(list(orders_dict.items()))))
        assert compute_checksum(a) == compute_checksum(b)

    def test_flag_change_alters_checksum(self, orders_dict: Dict[str, Any]) -> None:
        before = compute_checksum(TableMetadata.model_validate(orders_dict))
        orders_dict["columns"][5]["is_filterable"] = True
        after = compute_checksum(TableMetadata.model_validate(orders_dict))
        assert before != after

    def test_unique_columns_order_ignored(self, orders_dict: Dict[str, Any]) -> None:
        orders_dict["unique_columns"] = ["reference", "id"]
        before = compute_checksum(TableMetadata.model_validate(orders_dict))
        orders_dict["unique_columns"] = ["id", "reference"]
        after = compute_checksum(TableMetadata.model_validate(orders_dict))
        assert before == after

    def test_resolved_sortable_default_ignored(self, orders_dict: Dict[str, Any]) -> None:
        implicit = TableMetadata.model_validate(orders_dict)
        for col in orders_dict["columns"]:
            if col.get("is_filterable", True) and col.get("is_sortable") is None:
                col["is_sortable"] = True
        explicit = TableMetadata.model_validate(orders_dict)
        assert explicit.sortable_columns == implicit.sortable_columns
        assert compute_checksum(explicit) == compute_checksum(implicit)

    def test_sortable_change_alters_checksum(self, orders_dict: Dict[str, Any]) -> None:
        before = compute_checksum(TableMetadata.model_validate(orders_dict))
        orders_dict["columns"][1]["is_sortable"] = False
        after = compute_checksum(TableMetadata.model_validate(orders_dict))
        assert before != after

    def test_column_order_matters(self, orders_dict: Dict[str, Any]) -> None:
        before = compute_checksum(TableMetadata.model_validate(orders_dict))
        orders_dict["columns"][1], orders_dict["columns"][2] = (
            orders_dict["columns"][2],
            orders_dict["columns"][1],
        )
        after = compute_checksum(TableMetadata.model_validate(orders_dict))
        assert before != after


# ---------------------------------------------------------------------------
# Store file
# ---------------------------------------------------------------------------


class TestStoreFile:

    def test_default_path(self, tmp_path: pathlib.Path) -> None:
        assert default_store_path(tmp_path) == tmp_path / ".crudforge" / "metadata.json"

    def test_missing_file_is_empty(self, tmp_path: pathlib.Path) -> None:
        store = MetadataStore(tmp_path / "none.json")
        assert len(store) == 0
        assert store.get("public.orders") is None

    def test_blank_file_is_empty(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "store.json"
        path.write_text("  \n", encoding="utf-8")
        assert load_store(path) == {}

    def test_corrupt_file_raises(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(MetadataStoreError, match="Failed to parse"):
            load_store(path)

    def test_non_object_raises(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "store.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(MetadataStoreError, match="JSON object"):
            load_store(path)

    def test_invalid_record_raises(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "store.json"
        path.write_text(json.dumps({"public.orders": {"checksum": "abc"}}), encoding="utf-8")
        with pytest.raises(MetadataStoreError) as info:
            load_store(path)
        assert info.value.details["key"] == "public.orders"

    def test_save_and_reload(self, tmp_path: pathlib.Path, orders_table: TableMetadata) -> None:
        path = default_store_path(tmp_path)
        store = MetadataStore(path)
        store.update_record(orders_table.key, orders_table, now=T1)
        store.save()

        raw = json.loads(path.read_text(encoding="utf-8"))
        entry = raw["public.orders"]
        assert set(entry) == {"checksum", "metadata", "generatedAt", "updatedAt"}
        assert entry["checksum"] == compute_checksum(orders_table)
        assert entry["metadata"]["table_name"] == "orders"

        reloaded = MetadataStore(path)
        assert "public.orders" in reloaded
        record = reloaded.get("public.orders")
        assert record is not None
        assert record.generated_at == T1
        assert record.checksum == entry["checksum"]


# ---------------------------------------------------------------------------
# Drift
# ---------------------------------------------------------------------------


class TestDrift:

    def test_new_table(self, tmp_path: pathlib.Path, orders_table: TableMetadata) -> None:
        status = MetadataStore(tmp_path / "s.json").detect_drift(orders_table)
        assert status.is_new
        assert not status.has_drift
        assert status.describe() == "public.orders: not generated yet"

    def test_unchanged_table(self, tmp_path: pathlib.Path, orders_table: TableMetadata) -> None:
        store = MetadataStore(tmp_path / "s.json")
        store.update_record(orders_table.key, orders_table)
        status = store.detect_drift(orders_table)
        assert not status.is_new
        assert not status.has_drift
        assert "up to date" in status.describe()

    def test_changed_table(
        self, tmp_path: pathlib.Path, orders_dict: Dict[str, Any], orders_table: TableMetadata
    ) -> None:
        store = MetadataStore(tmp_path / "s.json")
        store.update_record(orders_table.key, orders_table)
        orders_dict["columns"][2]["is_filterable"] = False
        status = store.detect_drift(TableMetadata.model_validate(orders_dict))
        assert status.has_drift
        assert status.stored_checksum == compute_checksum(orders_table)
        assert "metadata changed" in status.describe()

    def test_update_keeps_generated_at(
        self, tmp_path: pathlib.Path, orders_table: TableMetadata
    ) -> None:
        store = MetadataStore(tmp_path / "s.json")
        store.update_record(orders_table.key, orders_table, now=T1)
        record = store.update_record(orders_table.key, orders_table, now=T2)
        assert record.generated_at == T1
        assert record.updated_at == T2

    def test_save_with_explicit_records(
        self, tmp_path: pathlib.Path, orders_table: TableMetadata
    ) -> None:
        first = MetadataStore(tmp_path / "a.json")
        first.update_record(orders_table.key, orders_table, now=T1)
        second = MetadataStore(tmp_path / "b.json")
        second.save(first.records)
        assert second.load()["public.orders"].checksum == first.records["public.orders"].checksum
