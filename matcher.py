"""Code matching against master records."""

from __future__ import annotations

import enum
import re

from codec import Record

EAN_PATTERN = re.compile(r"[0-9]{12,13}")


class CodeType(str, enum.Enum):
    EAN = "EAN"
    SKU = "SKU"


def classify(code: str) -> CodeType:
    if EAN_PATTERN.fullmatch(code or ""):
        return CodeType.EAN
    return CodeType.SKU


def normalize_sku(value: str | None) -> str:
    return (value or "").strip().lower()


def matches_sku(record: Record, code: str) -> bool:
    wanted = normalize_sku(code)
    return bool(wanted) and normalize_sku(record.sku) == wanted


def matches_ean(record: Record, code: str) -> bool:
    """EAN-1 or any EAN-2 entry equals ``code``; exact, no case folding."""
    wanted = (code or "").strip()
    if not wanted:
        return False
    if record.ean1.strip() == wanted:
        return True
    return wanted in (e.strip() for e in record.ean2)


def matches_any(record: Record, code: str) -> bool:
    return matches_sku(record, code) or matches_ean(record, code)
