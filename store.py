"""Record store backed by the `;`-delimited master file.

Nothing is cached between calls. Every operation reads the whole master
resource, and every mutation rewrites it in full through ``write_text``,
which replaces the file atomically. There is no locking: when two
mutations overlap, the later rewrite wins.

Store functions take the resource as their first argument so callers can
point them at a real file (``FileResource``) or an in-memory buffer
(``MemoryResource``).
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

import codec
from codec import Record
from errors import StorageUnavailableError
from matcher import CodeType, matches_any, matches_ean, matches_sku

logger = logging.getLogger(__name__)


class FileResource:
    def __init__(self, path: str):
        self.path = os.path.abspath(path)

    def describe(self) -> str:
        return self.path

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def read_text(self) -> Optional[str]:
        """File contents, or None when the file does not exist."""
        if not self.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8-sig", newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise StorageUnavailableError(self.path, e) from e

    def read_bytes(self) -> Optional[bytes]:
        if not self.exists():
            return None
        try:
            with open(self.path, "rb") as f:
                return f.read()
        except OSError as e:
            raise StorageUnavailableError(self.path, e) from e

    def write_text(self, text: str) -> None:
        """Write to a temp file beside the target, then rename it over the target."""
        directory = os.path.dirname(self.path)
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=".", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            raise StorageUnavailableError(self.path, e) from e
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)

    def append_text(self, text: str) -> None:
        try:
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
            with open(self.path, "a", encoding="utf-8", newline="") as f:
                f.write(text)
        except OSError as e:
            raise StorageUnavailableError(self.path, e) from e


class MemoryResource:
    """In-memory stand-in for a master file; ``text=None`` means it does not exist."""

    def __init__(self, text: str | None = None):
        self.text = text
        self.writes = 0

    def describe(self) -> str:
        return "<memory>"

    def exists(self) -> bool:
        return self.text is not None

    def read_text(self) -> Optional[str]:
        return self.text

    def read_bytes(self) -> Optional[bytes]:
        return None if self.text is None else self.text.encode("utf-8")

    def write_text(self, text: str) -> None:
        self.text = text
        self.writes += 1

    def append_text(self, text: str) -> None:
        self.text = (self.text or "") + text
        self.writes += 1


@dataclass
class UpdateResult:
    updated: bool
    matched: int = 0


def load(resource) -> List[Record]:
    text = resource.read_text()
    if text is None:
        return []
    return codec.decode(text)


def save(resource, records: List[Record]) -> None:
    resource.write_text(codec.encode(records))


def count(resource) -> int:
    return len(load(resource))


def find_by_code(resource, code: str) -> List[Record]:
    return [r for r in load(resource) if matches_any(r, code)]


def search_by_type(resource, code_type: CodeType | str, query: str) -> List[Record]:
    if not isinstance(code_type, CodeType):
        code_type = CodeType(code_type.upper())
    match = matches_sku if code_type is CodeType.SKU else matches_ean
    return [r for r in load(resource) if match(r, query)]


def _normalize_codes(codes: Iterable[str]) -> set:
    return {c.strip().upper() for c in codes if c and c.strip()}


def bulk_find(resource, codes: Iterable[str]) -> List[Record]:
    """Records whose SKU, EAN-1 or any EAN-2 entry is in ``codes``; upper-case compare."""
    wanted = _normalize_codes(codes)
    if not wanted:
        return []
    found = []
    for record in load(resource):
        keys = {record.sku.strip().upper(), record.ean1.strip().upper()}
        keys.update(e.strip().upper() for e in record.ean2)
        if keys & wanted:
            found.append(record)
    return found


def bulk_lookup(resource, results_resource, codes: Iterable[str]) -> List[Record]:
    """``bulk_find`` and overwrite ``results_resource`` with the matches."""
    found = bulk_find(resource, codes)
    save(results_resource, found)
    logger.info("Bulk search matched %d record(s); results at %s",
                len(found), results_resource.describe())
    return found


def _resolve_updates(field_updates: Mapping[str, object]) -> Dict[str, object]:
    resolved: Dict[str, object] = {}
    for key, value in field_updates.items():
        field = codec.field_for_header(key)
        if field is None:
            raise ValueError(f"Unknown column {key!r}")
        if field == "ean2":
            items = value if isinstance(value, (list, tuple)) else [value]
            resolved[field] = [
                ean for item in items if item is not None for ean in codec.split_ean_cell(str(item))
            ]
        else:
            resolved[field] = "" if value is None else str(value)
    return resolved


def update(resource, code: str, field_updates: Mapping[str, object]) -> UpdateResult:
    """Apply ``field_updates`` to every record matching ``code`` and rewrite the file."""
    updates = _resolve_updates(field_updates)
    wanted = (code or "").strip().lower()
    if not wanted:
        return UpdateResult(updated=False)

    records = load(resource)
    matched = 0
    for record in records:
        if matches_any(record, wanted):
            for field, value in updates.items():
                setattr(record, field, value)
            matched += 1

    if not matched:
        logger.info("No record matched %r; nothing written", code)
        return UpdateResult(updated=False)

    save(resource, records)
    logger.info("Updated %d record(s) for code %r (%s)", matched, code, ", ".join(updates))
    return UpdateResult(updated=True, matched=matched)


def export_master(resource) -> Optional[bytes]:
    return resource.read_bytes()


def export_bulk_results(results_resource) -> Optional[bytes]:
    return results_resource.read_bytes()
