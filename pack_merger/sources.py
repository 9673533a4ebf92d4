from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Union

SourceKind = Literal["directory", "archive-file", "archive-bytes", "remote"]


class PackMergerError(Exception):
    """Base exception for merge failures."""


class PackIOError(PackMergerError):
    """Filesystem access failed while reading or writing a pack."""


class ArchiveFormatError(PackMergerError):
    """An archive could not be opened or read."""


class InvalidInputError(PackMergerError):
    """An input, option, or configuration value is unusable."""


class MergeConflictError(InvalidInputError):
    def __init__(self, path: str, source: str) -> None:
        super().__init__(f"Conflicting entry {path!r} supplied again by {source}")
        self.path = path
        self.source = source


class RemoteFetchError(InvalidInputError):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


@dataclass(frozen=True)
class PackSource:
    kind: SourceKind
    path: Path | None = None
    data: bytes | None = None
    url: str | None = None

    @classmethod
    def directory(cls, path: Union[str, Path]) -> "PackSource":
        return cls(kind="directory", path=Path(path))

    @classmethod
    def archive_file(cls, path: Union[str, Path]) -> "PackSource":
        return cls(kind="archive-file", path=Path(path))

    @classmethod
    def archive_bytes(cls, data: bytes) -> "PackSource":
        return cls(kind="archive-bytes", data=bytes(data))

    @classmethod
    def remote(cls, url: str) -> "PackSource":
        return cls(kind="remote", url=url)

    @property
    def label(self) -> str:
        if self.kind == "remote":
            return str(self.url)
        if self.kind == "archive-bytes":
            return f"<in-memory archive, {len(self.data or b'')} bytes>"
        return str(self.path)

    def __repr__(self) -> str:
        return f"PackSource({self.kind}: {self.label})"


def classify_input(spec: Union[str, Path]) -> PackSource:
    text = str(spec).strip()
    if text.startswith(("http://", "https://")):
        return PackSource.remote(text)
    path = Path(text).expanduser()
    if path.is_dir():
        return PackSource.directory(path)
    return PackSource.archive_file(path)


def read_input_list(path: Path) -> List[PackSource]:
    """Read one path or URL per line; blank lines and ``#`` comments are skipped."""
    try:
        text = path.read_text()
    except OSError as exc:
        raise PackIOError(f"Failed to read input list {path}: {exc}") from exc
    sources: List[PackSource] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        sources.append(classify_input(stripped))
    logging.debug("Read %d input(s) from %s", len(sources), path)
    return sources


def list_packs_in_folder(folder: Path) -> List[PackSource]:
    """Treat every entry of ``folder`` as a pack, merged in lexical order."""
    if not folder.is_dir():
        raise InvalidInputError(f"{folder} is not a directory")
    try:
        entries = sorted(folder.iterdir())
    except OSError as exc:
        raise PackIOError(f"Failed to list {folder}: {exc}") from exc
    return [
        PackSource.directory(entry) if entry.is_dir() else PackSource.archive_file(entry)
        for entry in entries
    ]
