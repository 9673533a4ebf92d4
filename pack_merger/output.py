from __future__ import annotations

import io
import logging
import os
import shutil
import tempfile
import time
import zipfile
from importlib import resources
from pathlib import Path
from typing import BinaryIO, Dict, List, Sequence

from .inspection import DESCRIPTOR_NAME
from .paths import sanitize_entry_path
from .reporting import PROVENANCE_NAME
from .sources import InvalidInputError, PackIOError
from .table import FileEntry, MergeTable

ICON_NAME = "pack.png"
RESERVED_PATHS = frozenset({DESCRIPTOR_NAME, ICON_NAME, PROVENANCE_NAME})

ENTRY_MODE = 0o100644
FILE_MODE = 0o644
DIR_MODE = 0o755
FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)

DEFAULT_ICON: bytes = resources.files(__package__).joinpath("assets").joinpath(ICON_NAME).read_bytes()


def build_output_files(
    table: MergeTable,
    *,
    metadata: bytes,
    provenance: bytes,
) -> List[FileEntry]:
    """Combine merged content with the generated files, sorted by path."""
    files: Dict[str, FileEntry] = {}
    for entry in table:
        if entry.path in RESERVED_PATHS:
            logging.debug("Replacing input copy of %s with the generated version", entry.path)
            continue
        files[entry.path] = entry
    files[DESCRIPTOR_NAME] = FileEntry(path=DESCRIPTOR_NAME, content=metadata)
    files[ICON_NAME] = FileEntry(path=ICON_NAME, content=DEFAULT_ICON)
    files[PROVENANCE_NAME] = FileEntry(path=PROVENANCE_NAME, content=provenance)
    return [files[path] for path in sorted(files)]


def render_archive(
    files: Sequence[FileEntry],
    *,
    buffer_size: int,
    preserve_timestamps: bool = False,
) -> bytes:
    buffer = io.BytesIO()
    _write_zip(buffer, files, buffer_size, preserve_timestamps)
    return buffer.getvalue()


def write_archive(
    files: Sequence[FileEntry],
    destination: Path,
    *,
    atomic: bool,
    buffer_size: int,
    preserve_timestamps: bool = False,
) -> None:
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        if destination.is_dir():
            raise InvalidInputError(f"Output path {destination} is a directory")
        if atomic:
            _replace_file(files, destination, buffer_size, preserve_timestamps)
        else:
            with destination.open("wb") as handle:
                _write_zip(handle, files, buffer_size, preserve_timestamps)
    except OSError as exc:
        raise PackIOError(f"Failed to write archive {destination}: {exc}") from exc
    logging.info("Wrote %d entries to %s", len(files), destination)


def write_directory(
    files: Sequence[FileEntry],
    destination: Path,
    *,
    atomic: bool,
    buffer_size: int,
    preserve_timestamps: bool = False,
) -> None:
    if destination.exists() and not destination.is_dir():
        raise InvalidInputError(f"Output path {destination} exists and is not a directory")
    try:
        if not atomic:
            _materialize(files, destination, buffer_size, preserve_timestamps)
        else:
            _replace_directory(files, destination, buffer_size, preserve_timestamps)
    except OSError as exc:
        raise PackIOError(f"Failed to write directory {destination}: {exc}") from exc
    logging.info("Wrote %d files under %s", len(files), destination)


def _replace_file(
    files: Sequence[FileEntry],
    destination: Path,
    buffer_size: int,
    preserve_timestamps: bool,
) -> None:
    fd, staged_name = tempfile.mkstemp(
        prefix=f".{destination.name}.", suffix=".tmp", dir=destination.parent
    )
    staged = Path(staged_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            _write_zip(handle, files, buffer_size, preserve_timestamps)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(staged, FILE_MODE)
        os.replace(staged, destination)
    except BaseException:
        staged.unlink(missing_ok=True)
        raise


def _replace_directory(
    files: Sequence[FileEntry],
    destination: Path,
    buffer_size: int,
    preserve_timestamps: bool,
) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    staged = Path(
        tempfile.mkdtemp(prefix=f".{destination.name}.", suffix=".tmp", dir=destination.parent)
    )
    backup = staged.with_name(staged.name + ".old")
    try:
        _materialize(files, staged, buffer_size, preserve_timestamps)
        os.chmod(staged, DIR_MODE)
        if destination.exists():
            os.replace(destination, backup)
            try:
                os.replace(staged, destination)
            except OSError:
                os.replace(backup, destination)
                raise
            shutil.rmtree(backup)
        else:
            os.replace(staged, destination)
    except BaseException:
        if staged.exists():
            shutil.rmtree(staged, ignore_errors=True)
        raise


def _materialize(
    files: Sequence[FileEntry],
    root: Path,
    buffer_size: int,
    preserve_timestamps: bool,
) -> None:
    root.mkdir(parents=True, exist_ok=True)
    for entry in files:
        path = sanitize_entry_path(entry.path)
        if path is None:
            logging.warning("Refusing to write unsafe path %r", entry.path)
            continue
        target = root.joinpath(*path.split("/"))
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("wb") as handle:
            _copy_bytes(entry.content, handle, buffer_size)
        if preserve_timestamps and entry.modified is not None:
            os.utime(target, (entry.modified, entry.modified))


def _write_zip(
    handle: BinaryIO,
    files: Sequence[FileEntry],
    buffer_size: int,
    preserve_timestamps: bool,
) -> None:
    with zipfile.ZipFile(handle, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for entry in files:
            info = zipfile.ZipInfo(entry.path, date_time=_date_time(entry, preserve_timestamps))
            info.compress_type = zipfile.ZIP_DEFLATED
            info.create_system = 3
            info.external_attr = ENTRY_MODE << 16
            info.file_size = len(entry.content)
            with archive.open(info, "w") as member:
                _copy_bytes(entry.content, member, buffer_size)


def _copy_bytes(content: bytes, handle: BinaryIO, buffer_size: int) -> None:
    view = memoryview(content)
    for offset in range(0, len(view), buffer_size):
        handle.write(view[offset : offset + buffer_size])


def _date_time(entry: FileEntry, preserve_timestamps: bool) -> tuple:
    if not preserve_timestamps or entry.modified is None:
        return FIXED_DATE_TIME
    stamp = time.localtime(entry.modified)[:6]
    if stamp[0] < 1980:
        return FIXED_DATE_TIME
    if stamp[0] > 2107:
        return (2107, 12, 31, 23, 59, 58)
    return stamp
