from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from .options import ConflictPolicy
from .sources import MergeConflictError


@dataclass
class FileEntry:
    path: str
    content: bytes
    modified: Optional[float] = None
    source_index: int = 0


class MergeTable:
    """Sanitized path -> FileEntry, filled in source order under one conflict policy."""

    def __init__(self, policy: ConflictPolicy = ConflictPolicy.LAST_WINS) -> None:
        self.policy = ConflictPolicy.parse(policy)
        self._entries: Dict[str, FileEntry] = {}
        self.replaced = 0
        self.discarded = 0

    def insert(self, entry: FileEntry, *, source_label: str = "input") -> bool:
        """Apply the conflict policy for ``entry``; return True if it was stored."""
        existing = self._entries.get(entry.path)
        if existing is None:
            self._entries[entry.path] = entry
            return True

        if self.policy is ConflictPolicy.LAST_WINS:
            logging.debug("%s overrides %s", source_label, entry.path)
            self._entries[entry.path] = entry
            self.replaced += 1
            return True
        if self.policy is ConflictPolicy.ERROR_IF_CONFLICT:
            raise MergeConflictError(entry.path, source_label)
        # first-wins and skip-if-exists both keep the occupant
        logging.debug("Keeping existing %s; discarded copy from %s", entry.path, source_label)
        self.discarded += 1
        return False

    def get(self, path: str) -> Optional[FileEntry]:
        return self._entries.get(path)

    def paths(self) -> List[str]:
        return sorted(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[FileEntry]:
        for path in self.paths():
            yield self._entries[path]
