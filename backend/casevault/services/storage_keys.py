"""
CaseVault Backend - Storage Key Builder
=========================================

What:  Builds object keys for uploaded documents.

Key format:
    {parent_id}/{category}_{base}_v{version}_{YYYYMMDD_HHMMSSmmm}{.ext}

    ECSI-25-001/Invoice_scan_v2_20250314_101502123.pdf

    - parent_id groups every document of a record under one prefix.
    - category and base keep the key readable in a bucket browser.
    - version plus the millisecond UTC timestamp make keys unique in practice
      without a uniqueness check against the store.

Sanitizing:
    - "/" and "\\" in parent id, category and base become "-", so the key
      always has exactly one "/".
    - The extension keeps only ASCII letters and digits.
    - Empty category → "document"; empty base → "file".

Pure functions; no I/O. Identical inputs always give identical keys.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

_SEPARATORS = re.compile(r"[/\\]")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")

DEFAULT_CATEGORY_SEGMENT = "document"
DEFAULT_BASE_SEGMENT = "file"

KEY_PATTERN = re.compile(r"^[^/]+/[^/]+_[^/]+_v\d+_\d{8}_\d{9}(\.[A-Za-z0-9]+)?$")


@dataclass(frozen=True)
class SplitFilename:
    base: str
    extension: Optional[str]


def _strip_separators(value: str) -> str:
    return _SEPARATORS.sub("-", value or "").strip()


def split_filename(original_filename: str) -> SplitFilename:
    """
    Split on the last dot of the basename.

    A leading dot (".env") is part of the base, not an extension marker.
    """
    basename = _SEPARATORS.split(original_filename or "")[-1].strip()
    idx = basename.rfind(".")
    if idx > 0:
        base, raw_ext = basename[:idx], basename[idx + 1:]
    else:
        base, raw_ext = basename, ""
    extension = _NON_ALNUM.sub("", raw_ext)
    return SplitFilename(base=base.strip(), extension=extension or None)


def format_timestamp(timestamp: datetime) -> str:
    """UTC YYYYMMDD_HHMMSSmmm. Naive datetimes are taken as UTC."""
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.strftime("%Y%m%d_%H%M%S") + f"{timestamp.microsecond // 1000:03d}"


def build_key(
    parent_id: str,
    category_name: str,
    original_filename: str,
    version: int,
    timestamp: datetime,
) -> str:
    """
    Raises:
        ValueError: empty parent id or version below 1.
    """
    parent = _strip_separators(parent_id)
    if not parent:
        raise ValueError("parent_id is required to build a storage key")
    if version < 1:
        raise ValueError(f"version must be >= 1, got {version}")

    category = _strip_separators(category_name) or DEFAULT_CATEGORY_SEGMENT
    parts = split_filename(original_filename)
    base = _strip_separators(parts.base) or DEFAULT_BASE_SEGMENT
    suffix = f".{parts.extension}" if parts.extension else ""

    return f"{parent}/{category}_{base}_v{version}_{format_timestamp(timestamp)}{suffix}"


def stored_filename(key: str) -> str:
    """Last path segment of a storage key."""
    return key.rsplit("/", 1)[-1]
