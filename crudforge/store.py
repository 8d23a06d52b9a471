# File: crudforge/store.py
"""
crudforge - Checksum Store & Drift Tracker
===========================================
Remembers, per ``"schema.table"`` key, the checksum of the metadata the
module was last generated from.  A later run whose freshly computed
checksum differs must be explicitly forced.

On-disk layout (``.crudforge/metadata.json``)::

    {
      "public.orders": {
        "checksum": "<sha256 hex>",
        "metadata": {...},
        "generatedAt": "2026-10-16T09:00:00Z",
        "updatedAt": "2026-10-16T09:30:00Z"
      }
    }

The store is read once and written once per generation call.  No lock is
taken; callers serialise generation per table key.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from crudforge.errors import MetadataStoreError
from crudforge.models import MetadataRecord, TableMetadata
from crudforge.utils import canonical_json, read_if_exists, sha256_hex, write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.store")

STORE_DIRNAME: str = ".crudforge"
STORE_FILENAME: str = "metadata.json"


# ---------------------------------------------------------------------------
# Checksum
# ---------------------------------------------------------------------------


def canonical_metadata(metadata: TableMetadata) -> Dict[str, Any]:
    """
    JSON-mode dump used both for hashing and for the stored record.

    Values with the same meaning dump the same way: ``unique_columns`` is a
    set and is sorted, and each column's ``is_sortable`` is replaced by the
    resolved ``ColumnMetadata.sortable``.
    """
    data: Dict[str, Any] = metadata.model_dump(mode="json")
    data["unique_columns"] = sorted(set(metadata.unique_columns))
    for dumped, column in zip(data["columns"], metadata.columns):
        dumped["is_sortable"] = column.sortable
    return data


def compute_checksum(metadata: TableMetadata) -> str:
    """
    SHA-256 over the canonical JSON form of *metadata*.

    Keys are sorted, so semantically identical metadata always hashes the
    same; column order is part of the table shape and does affect the hash.
    """
    return sha256_hex(canonical_json(canonical_metadata(metadata)))


def default_store_path(output_root: Union[str, Path]) -> Path:
    return Path(output_root) / STORE_DIRNAME / STORE_FILENAME


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def load_store(path: Union[str, Path]) -> Dict[str, MetadataRecord]:
    """
    Read every record from *path*.

    A missing file is an empty store; a file that exists but cannot be
    parsed raises ``MetadataStoreError`` rather than being silently reset.
    """
    store_path = Path(path)
    text: Optional[str] = read_if_exists(store_path)
    if text is None:
        logger.debug("No checksum store at %s; starting empty.", store_path)
        return {}

    try:
        raw: Any = json.loads(text) if text.strip() else {}
    except json.JSONDecodeError as exc:
        raise MetadataStoreError(
            f"Failed to parse metadata store {store_path}: {exc}",
            details={"path": str(store_path)},
        ) from exc

    if not isinstance(raw, dict):
        raise MetadataStoreError(
            f"Metadata store {store_path} must contain a JSON object, "
            f"got {type(raw).__name__}.",
            details={"path": str(store_path)},
        )

    records: Dict[str, MetadataRecord] = {}
    for key, entry in raw.items():
        try:
            records[key] = MetadataRecord.model_validate(entry)
        except PydanticValidationError as exc:
            raise MetadataStoreError(
                f"Invalid record '{key}' in metadata store {store_path}: {exc}",
                details={"path": str(store_path), "key": key},
            ) from exc

    logger.debug("Loaded %d record(s) from %s.", len(records), store_path)
    return records


def save_store(path: Union[str, Path], records: Dict[str, MetadataRecord]) -> None:
    """Write all *records* to *path* (2-space indented JSON, atomic replace)."""
    store_path = Path(path)
    payload: Dict[str, Any] = {
        key: record.model_dump(mode="json", by_alias=True)
        for key, record in sorted(records.items())
    }
    write_file(store_path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")
    logger.debug("Saved %d record(s) to %s.", len(records), store_path)


# ---------------------------------------------------------------------------
# Drift status
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DriftStatus:
    """Comparison of the stored checksum with the current one."""

    key: str
    current_checksum: str
    stored_checksum: Optional[str] = None

    @property
    def is_new(self) -> bool:
        return self.stored_checksum is None

    @property
    def has_drift(self) -> bool:
        return self.stored_checksum is not None and self.stored_checksum != self.current_checksum

    def describe(self) -> str:
        if self.is_new:
            return f"{self.key}: not generated yet"
        if self.has_drift:
            return (
                f"{self.key}: metadata changed "
                f"({self.stored_checksum[:12]} -> {self.current_checksum[:12]})"
            )
        return f"{self.key}: up to date ({self.current_checksum[:12]})"


# ---------------------------------------------------------------------------
# MetadataStore
# ---------------------------------------------------------------------------


class MetadataStore:
    """
    File-backed map of ``"schema.table"`` → ``MetadataRecord``.

    Records are loaded lazily on first access and written back with
    ``save()``.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self._path: Path = Path(path)
        self._records: Optional[Dict[str, MetadataRecord]] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def records(self) -> Dict[str, MetadataRecord]:
        if self._records is None:
            self._records = load_store(self._path)
        return self._records

    def load(self) -> Dict[str, MetadataRecord]:
        """(Re)read the store from disk."""
        self._records = load_store(self._path)
        return self._records

    def save(self, records: Optional[Dict[str, MetadataRecord]] = None) -> None:
        """Persist *records* (default: the in-memory map) to disk."""
        if records is not None:
            self._records = dict(records)
        save_store(self._path, self.records)

    def get(self, key: str) -> Optional[MetadataRecord]:
        return self.records.get(key)

    def detect_drift(self, metadata: TableMetadata) -> DriftStatus:
        record: Optional[MetadataRecord] = self.get(metadata.key)
        return DriftStatus(
            key=metadata.key,
            current_checksum=compute_checksum(metadata),
            stored_checksum=record.checksum if record is not None else None,
        )

    def update_record(
        self,
        key: str,
        metadata: TableMetadata,
        checksum: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> MetadataRecord:
        """
        Insert or refresh the record for *key* (in memory; call ``save``).

        ``generatedAt`` is kept from an existing record; ``updatedAt`` is
        always *now*.
        """
        timestamp: datetime = now or _utcnow()
        existing: Optional[MetadataRecord] = self.get(key)
        record = MetadataRecord(
            checksum=checksum or compute_checksum(metadata),
            metadata=canonical_metadata(metadata),
            generated_at=existing.generated_at if existing is not None else timestamp,
            updated_at=timestamp,
        )
        self.records[key] = record
        logger.debug("Updated record %s -> %s", key, record.checksum[:12])
        return record

    def __contains__(self, key: object) -> bool:
        return key in self.records

    def __len__(self) -> int:
        return len(self.records)

    def __repr__(self) -> str:
        return f"<MetadataStore {self._path}>"


__all__: List[str] = [
    "STORE_DIRNAME",
    "STORE_FILENAME",
    "canonical_metadata",
    "compute_checksum",
    "default_store_path",
    "load_store",
    "save_store",
    "DriftStatus",
    "MetadataStore",
]

logger.debug("crudforge.store loaded.")
