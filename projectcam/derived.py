"""
projectcam/derived.py

Computed fields attached to project and photo responses.

Pure Python logic - no FastAPI imports, no database access.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, Optional

SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def completion_percentage(checklists: Optional[Iterable[Dict[str, Any]]]) -> int:
    """
    Percentage of completed checklist items across all checklists.

    Rounds half up to the nearest integer; 0 when there are no items at all.

    Example:
        completion_percentage([{"items": [{"completed": True}, {}, {}]}]) -> 33
    """
    total = 0
    done = 0
    for checklist in checklists or []:
        items = checklist.get("items") or []
        total += len(items)
        done += sum(1 for item in items if item.get("completed"))
    if total == 0:
        return 0
    return int(math.floor(done * 100 / total + 0.5))


def format_file_size(num_bytes: int) -> str:
    """
    Human-readable size using binary (1024) steps up to GB.

    Two-decimal precision with trailing zeros stripped:
        0 -> "0 Bytes", 1024 -> "1 KB", 1536 -> "1.5 KB", 1048576 -> "1 MB"
    """
    if num_bytes < 0:
        raise ValueError("num_bytes must be non-negative")
    if num_bytes == 0:
        return "0 Bytes"

    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(SIZE_UNITS) - 1:
        value /= 1024
        unit += 1

    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[unit]}"


def file_type(mime_type: Optional[str]) -> str:
    mime = mime_type or ""
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    return "document"


def full_address(address: Optional[Dict[str, Any]]) -> str:
    if not address:
        return ""
    return f"{address.get('street', '')}, {address.get('city', '')}, {address.get('state', '')} {address.get('zip_code', '')}"
