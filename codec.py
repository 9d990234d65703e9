"""Master file codec.

The master database is a `;`-delimited UTF-8 text file with a fixed header:

    SKU;EAN-1;EAN-2;SHELF-1;SHELF-2

There is no quoting or escaping. A field value containing the delimiter or a
line break cannot be represented, and ``encode`` refuses to write one.

EAN-2 may hold several EAN codes in a single cell. In memory it is a list;
only this module splits and joins the raw cell.
"""

from __future__ import annotations

import csv
import io
import re
from typing import Dict, List, Tuple

from pydantic import BaseModel, Field

from errors import MalformedInputError

DELIMITER = ";"
MASTER_COLUMNS: List[str] = ["SKU", "EAN-1", "EAN-2", "SHELF-1", "SHELF-2"]
FIELD_NAMES: List[str] = ["sku", "ean1", "ean2", "shelf1", "shelf2"]

# Pieces of an EAN-2 cell may be separated by any of these.
EAN_SEPARATORS = re.compile(r"[|,;\s]+")
EAN_JOINER = ","


def field_for_header(name: str) -> str | None:
    """Map ``SHELF-1``, ``shelf_1``, ``shelf1`` and similar to the record field name."""
    compact = re.sub(r"[-_\s]", "", name or "").lower()
    return compact if compact in FIELD_NAMES else None


def split_ean_cell(cell: str | None) -> List[str]:
    if not cell:
        return []
    return [p for p in (piece.strip() for piece in EAN_SEPARATORS.split(cell)) if p]


def join_ean_cell(values: List[str]) -> str:
    return EAN_JOINER.join(v.strip() for v in values if v and v.strip())


class Record(BaseModel):
    sku: str = ""
    ean1: str = ""
    ean2: List[str] = Field(default_factory=list)
    shelf1: str = ""
    shelf2: str = ""

    @classmethod
    def from_row(cls, values: List[str]) -> "Record":
        """Build a record from values in master column order, padding short rows."""
        padded = list(values[: len(MASTER_COLUMNS)])
        padded += [""] * (len(MASTER_COLUMNS) - len(padded))
        sku, ean1, ean2, shelf1, shelf2 = padded
        return cls(sku=sku, ean1=ean1, ean2=split_ean_cell(ean2), shelf1=shelf1, shelf2=shelf2)

    def to_row(self) -> List[str]:
        return [
            self.sku,
            self.ean1,
            join_ean_cell(self.ean2),
            self.shelf1,
            self.shelf2,
        ]

    def to_api_dict(self) -> Dict[str, str]:
        sku, ean1, ean2, shelf1, shelf2 = self.to_row()
        return {"SKU": sku, "EAN1": ean1, "EAN2": ean2, "SHELF1": shelf1, "SHELF2": shelf2}


def _as_text(raw: str | bytes) -> str:
    if isinstance(raw, str):
        return raw
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise MalformedInputError(f"Content is not UTF-8 text: {e}") from e
    if "\x00" in text:
        raise MalformedInputError("Content looks binary (NUL bytes found)")
    return text


def read_rows(raw: str | bytes) -> Tuple[List[str], List[List[str]]]:
    """Split delimited text into its header and the remaining non-blank rows."""
    text = _as_text(raw).lstrip("\ufeff")
    reader = csv.reader(io.StringIO(text), delimiter=DELIMITER, quoting=csv.QUOTE_NONE)
    header: List[str] = []
    rows: List[List[str]] = []
    try:
        for values in reader:
            if len(values) <= 1 and not "".join(values).strip():
                continue
            if not header:
                header = [h.strip() for h in values]
                continue
            rows.append(values)
    except csv.Error as e:
        raise MalformedInputError(f"Could not read delimited text: {e}") from e
    return header, rows


def _column_positions(header: List[str]) -> List[int]:
    """Index of each master column in ``header``, or -1 when it has no source column.

    Columns named in the header are located by name. The rest fall back to their
    master position unless a named column already claimed that position.
    """
    named = {c: header.index(c) for c in MASTER_COLUMNS if c in header}
    claimed = set(named.values())
    positions = []
    for i, column in enumerate(MASTER_COLUMNS):
        if column in named:
            positions.append(named[column])
        elif i in claimed:
            positions.append(-1)
        else:
            positions.append(i)
    return positions


def decode(raw: str | bytes) -> List[Record]:
    header, rows = read_rows(raw)
    positions = _column_positions(header)
    records = []
    for values in rows:
        ordered = [values[p] if 0 <= p < len(values) else "" for p in positions]
        records.append(Record.from_row(ordered))
    return records


def _check_value(value: str) -> str:
    if DELIMITER in value or "\n" in value or "\r" in value:
        raise ValueError(f"Value {value!r} contains the delimiter or a line break")
    return value


def encode_lines(records: List[Record]) -> str:
    """Record lines only, without the header."""
    out = io.StringIO()
    for record in records:
        out.write(DELIMITER.join(_check_value(v) for v in record.to_row()))
        out.write("\n")
    return out.getvalue()


def encode(records: List[Record]) -> str:
    return DELIMITER.join(MASTER_COLUMNS) + "\n" + encode_lines(records)
