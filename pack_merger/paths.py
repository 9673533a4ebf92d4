from __future__ import annotations

from typing import Optional


def sanitize_entry_path(raw: str) -> Optional[str]:
    """Normalize an entry path to forward-slash form, or return None if unsafe.

    Backslashes become slashes, empty and ``.`` segments are dropped. Absolute
    paths, ``..`` segments and paths with nothing left are rejected.
    """
    candidate = raw.replace("\\", "/")
    if candidate.startswith("/"):
        return None
    parts = [segment for segment in candidate.split("/") if segment not in ("", ".")]
    if not parts or ".." in parts:
        return None
    return "/".join(parts)
