from __future__ import annotations

import re
from typing import Optional, Tuple

RANGE_WIDTH = 50
UNCODED_BUCKET = "000-099"

_CODED_PREFIX_RE = re.compile(r"^([a-z])(\d+)")
_LETTER_RANGE_RE = re.compile(r"^([a-z])(\d{2,})-([a-z])(\d{2,})$")
_NUMERIC_RANGE_RE = re.compile(r"^\d{3}-\d{3}$")


def bucket_for(project_id: str) -> str:
    """Archive range folder for a project id.

    b40-x -> b00-b49, b65-x -> b50-b99, a82-x -> a50-a99. Ids without a
    letter+digits prefix land in UNCODED_BUCKET.
    """
    m = _CODED_PREFIX_RE.match(project_id or "")
    if not m:
        return UNCODED_BUCKET
    letter = m.group(1)
    start = int(m.group(2)) // RANGE_WIDTH * RANGE_WIDTH
    end = start + RANGE_WIDTH - 1
    return f"{letter}{start:02d}-{letter}{end:02d}"


def bucket_bounds(bucket: str) -> Optional[Tuple[str, int, int]]:
    m = _LETTER_RANGE_RE.match(bucket)
    if not m or m.group(1) != m.group(3):
        return None
    return m.group(1), int(m.group(2)), int(m.group(4))


def is_range_folder(name: str) -> bool:
    """True for any name bucket_for can produce (b00-b49, b100-b149, 000-099)."""
    if _NUMERIC_RANGE_RE.match(name):
        return True
    return bucket_bounds(name) is not None


def coded_number(project_id: str) -> Optional[Tuple[str, int]]:
    m = _CODED_PREFIX_RE.match(project_id or "")
    if not m:
        return None
    return m.group(1), int(m.group(2))
