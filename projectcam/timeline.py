# projectcam/timeline.py
# Append-only project timeline entries

from typing import Any, Dict, Optional

from projectcam.models import TimelineEntry, TimelineType, to_document


def append_timeline(
    project: Dict[str, Any],
    event: str,
    description: Optional[str],
    user_id: Optional[str],
    entry_type: TimelineType = TimelineType.milestone,
) -> Dict[str, Any]:
    """Append an entry to ``project["timeline"]`` in place and return it."""
    entry = to_document(TimelineEntry(event=event, description=description, user=user_id, type=entry_type))
    project.setdefault("timeline", []).append(entry)
    return entry
