from __future__ import annotations

import io
import logging
import time
import zipfile
import zlib
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator

from .paths import sanitize_entry_path
from .sources import (
    ArchiveFormatError,
    InvalidInputError,
    PackIOError,
    PackSource,
)
from .table import FileEntry, MergeTable

ARCHIVE_READ_ERRORS = (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    zlib.error,
    EOFError,
    NotImplementedError,
    RuntimeError,
)


def collect_source(
    source: PackSource,
    table: MergeTable,
    index: int,
    *,
    buffer_size: int,
    preserve_timestamps: bool = False,
) -> int:
    """Insert every regular file of ``source`` into ``table``; return how many were stored."""
    if source.kind == "directory":
        entries = _iter_directory(source, index, buffer_size, preserve_timestamps)
    elif source.kind in ("archive-file", "archive-bytes"):
        entries = _iter_archive(source, index, buffer_size, preserve_timestamps)
    else:
        raise InvalidInputError(f"{source.label} must be fetched before it can be collected")

    stored = 0
    seen = 0
    for entry in entries:
        seen += 1
        if table.insert(entry, source_label=source.label):
            stored += 1
    logging.info("Collected %d file(s) from %s (%d kept)", seen, source.label, stored)
    return stored


@contextmanager
def open_archive(source: PackSource) -> Iterator[zipfile.ZipFile]:
    if source.kind == "archive-bytes":
        target: "Path | BinaryIO" = io.BytesIO(source.data or b"")
    elif source.kind == "archive-file" and source.path is not None:
        target = source.path
    else:
        raise InvalidInputError(f"{source.label} is not an archive source")
    try:
        archive = zipfile.ZipFile(target)
    except OSError as exc:
        raise PackIOError(f"Failed to open archive {source.label}: {exc}") from exc
    except ARCHIVE_READ_ERRORS as exc:
        raise ArchiveFormatError(f"Unreadable archive {source.label}: {exc}") from exc
    with archive:
        yield archive


def read_archive_member(
    archive: zipfile.ZipFile,
    info: zipfile.ZipInfo,
    source: PackSource,
    buffer_size: int,
) -> bytes:
    try:
        with archive.open(info) as handle:
            return read_stream(handle, buffer_size)
    except OSError as exc:
        raise PackIOError(
            f"Failed to read {info.filename!r} from {source.label}: {exc}"
        ) from exc
    except ARCHIVE_READ_ERRORS as exc:
        raise ArchiveFormatError(
            f"Failed to read {info.filename!r} from {source.label}: {exc}"
        ) from exc


def read_stream(handle: BinaryIO, buffer_size: int) -> bytes:
    buffer = bytearray()
    for chunk in iter(lambda: handle.read(buffer_size), b""):
        buffer.extend(chunk)
    return bytes(buffer)


def _iter_directory(
    source: PackSource,
    index: int,
    buffer_size: int,
    preserve_timestamps: bool,
) -> Iterator[FileEntry]:
    root = source.path
    if root is None or not root.is_dir():
        raise InvalidInputError(f"{source.label} is not a directory")

    try:
        items = sorted(root.rglob("*"))
    except OSError as exc:
        raise PackIOError(f"Failed to walk {source.label}: {exc}") from exc

    for item in items:
        if not item.is_file():
            continue
        relative = "/".join(item.relative_to(root).parts)
        path = sanitize_entry_path(relative)
        if path is None:
            logging.debug("Skipping unsafe path %r in %s", relative, source.label)
            continue
        try:
            with item.open("rb") as handle:
                content = read_stream(handle, buffer_size)
            modified = item.stat().st_mtime if preserve_timestamps else None
        except OSError as exc:
            raise PackIOError(f"Failed to read {item}: {exc}") from exc
        yield FileEntry(path=path, content=content, modified=modified, source_index=index)


def _iter_archive(
    source: PackSource,
    index: int,
    buffer_size: int,
    preserve_timestamps: bool,
) -> Iterator[FileEntry]:
    with open_archive(source) as archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            path = sanitize_entry_path(info.filename)
            if path is None:
                logging.debug("Skipping unsafe entry %r in %s", info.filename, source.label)
                continue
            content = read_archive_member(archive, info, source, buffer_size)
            modified = _zip_mtime(info) if preserve_timestamps else None
            yield FileEntry(path=path, content=content, modified=modified, source_index=index)


def _zip_mtime(info: zipfile.ZipInfo) -> float:
    return time.mktime(info.date_time + (0, 0, -1))
