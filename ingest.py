# ingest.py

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence

import codec
import store
from codec import MASTER_COLUMNS, Record

logger = logging.getLogger(__name__)

ALIGN_POSITION = "position"
ALIGN_NAME = "name"


@dataclass
class DedupeResult:
    kept: int
    removed: int


@dataclass
class IngestResult:
    records_appended: int
    duplicates_removed: int
    total: int


def _identifiers(record: Record):
    sku = record.sku.strip().lower()
    eans = [record.ean1.strip()] + [e.strip() for e in record.ean2]
    return sku, [e for e in eans if e]


def deduplicate_records(records: List[Record]) -> List[Record]:
    """Keep the first record for each SKU (case-insensitive) and each EAN value."""
    seen_skus = set()
    seen_eans = set()
    kept: List[Record] = []
    for record in records:
        sku, eans = _identifiers(record)
        if (sku and sku in seen_skus) or any(e in seen_eans for e in eans):
            logger.debug("Dropping duplicate record sku=%r ean1=%r", record.sku, record.ean1)
            continue
        if sku:
            seen_skus.add(sku)
        seen_eans.update(eans)
        kept.append(record)
    return kept


def deduplicate(resource) -> DedupeResult:
    records = store.load(resource)
    kept = deduplicate_records(records)
    store.save(resource, kept)
    removed = len(records) - len(kept)
    if removed:
        logger.info("Removed %d duplicate record(s) from %s", removed, resource.describe())
    return DedupeResult(kept=len(kept), removed=removed)


def _align_by_position(values: Sequence[str], headers: Sequence[str]) -> List[str]:
    # Nth uploaded column feeds the Nth master column whatever its header says.
    width = min(len(headers), len(values))
    return [values[i] if i < width else "" for i in range(len(MASTER_COLUMNS))]


def _align_by_name(values: Sequence[str], headers: Sequence[str]) -> List[str]:
    by_field: Dict[str, str] = {}
    for i, header in enumerate(headers):
        field = codec.field_for_header(header)
        if field and field not in by_field:
            by_field[field] = values[i] if i < len(values) else ""
    return [by_field.get(field, "") for field in codec.FIELD_NAMES]


def values_to_records(rows: Sequence[Sequence[str]], headers: Sequence[str],
                      align: str = ALIGN_POSITION) -> List[Record]:
    """Build records from uploaded value lists laid out in ``headers`` order."""
    if align == ALIGN_POSITION:
        aligner = _align_by_position
    elif align == ALIGN_NAME:
        aligner = _align_by_name
    else:
        raise ValueError(f"Unknown alignment mode {align!r}")
    return [Record.from_row([v or "" for v in aligner(values, headers)]) for values in rows]


def rows_to_records(rows: Sequence[Mapping[str, str]], headers: Sequence[str],
                    align: str = ALIGN_POSITION) -> List[Record]:
    return values_to_records([[row.get(h) or "" for h in headers] for row in rows], headers, align)


def append_records(resource, records: List[Record]) -> None:
    """Append lines to the master file, creating it with the header when missing.

    A master whose header is not the standard column order is rewritten in full,
    since appended lines are always laid out in the standard order.
    """
    existing = resource.read_text()
    if existing is None:
        resource.write_text(codec.encode(records))
        return
    header, _ = codec.read_rows(existing)
    if header and header != MASTER_COLUMNS:
        store.save(resource, codec.decode(existing) + records)
        return
    lines = codec.encode_lines(records)
    if existing and not existing.endswith("\n"):
        lines = "\n" + lines
    if not header:
        lines = codec.DELIMITER.join(MASTER_COLUMNS) + "\n" + lines
    resource.append_text(lines)


def _merge(resource, records: List[Record], align: str) -> IngestResult:
    if records:
        append_records(resource, records)
        logger.info("Appended %d record(s) to %s (%s alignment)",
                    len(records), resource.describe(), align)
    dedupe = deduplicate(resource)
    return IngestResult(
        records_appended=len(records),
        duplicates_removed=dedupe.removed,
        total=dedupe.kept,
    )


def ingest_rows(resource, rows: Sequence[Mapping[str, str]], headers: Sequence[str],
                align: str = ALIGN_POSITION) -> IngestResult:
    return _merge(resource, rows_to_records(rows, headers, align), align)


def ingest(resource, uploaded, align: str = ALIGN_POSITION) -> IngestResult:
    """Merge uploaded `;`-delimited text (str or bytes) into the master file."""
    headers, raw_rows = codec.read_rows(uploaded)
    return _merge(resource, values_to_records(raw_rows, headers, align), align)
