from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .collector import open_archive, read_archive_member
from .paths import sanitize_entry_path
from .sources import PackIOError, PackSource
from .table import MergeTable

DESCRIPTOR_NAME = "pack.mcmeta"

_PEEK_BUFFER = 8192


@dataclass
class OverlayEntry:
    directory: str
    declaration: Dict[str, Any]


@dataclass
class MetadataFinding:
    pack_format: int
    max_format: Optional[int] = None
    overlays: Optional[List[OverlayEntry]] = None
    source: str = ""


@dataclass
class InspectionReport:
    findings: List[MetadataFinding] = field(default_factory=list)
    examined: List[str] = field(default_factory=list)


def inspect_source(source: PackSource) -> InspectionReport:
    """Look for descriptors in ``source`` without going through the main collection pass.

    Directories are checked for a root descriptor only. Archives are checked
    for a root descriptor and for descriptors exactly one directory deep.
    """
    report = InspectionReport()
    if source.kind == "directory":
        if source.path is None:
            return report
        candidate = source.path / DESCRIPTOR_NAME
        if not candidate.is_file():
            return report
        try:
            data = candidate.read_bytes()
        except OSError as exc:
            raise PackIOError(f"Failed to read {candidate}: {exc}") from exc
        report.examined.append(DESCRIPTOR_NAME)
        _record(report, parse_descriptor(data, source.label))
        return report

    if source.kind not in ("archive-file", "archive-bytes"):
        return report

    with open_archive(source) as archive:
        root_infos = []
        nested_infos = []
        for info in archive.infolist():
            if info.is_dir():
                continue
            path = sanitize_entry_path(info.filename)
            if path is None:
                continue
            if path == DESCRIPTOR_NAME:
                root_infos.append((path, info))
            elif path.count("/") == 1 and path.endswith("/" + DESCRIPTOR_NAME):
                nested_infos.append((path, info))
        for path, info in root_infos + nested_infos:
            data = read_archive_member(archive, info, source, _PEEK_BUFFER)
            report.examined.append(path)
            label = source.label if path == DESCRIPTOR_NAME else f"{source.label}!{path}"
            _record(report, parse_descriptor(data, label))
    return report


def inspect_nested(
    table: MergeTable,
    examined: Set[Tuple[str, int]],
    labels: Sequence[str],
) -> List[MetadataFinding]:
    """Parse merged descriptors that no per-source peek has already looked at."""
    findings: List[MetadataFinding] = []
    for entry in table:
        if entry.path != DESCRIPTOR_NAME and not entry.path.endswith("/" + DESCRIPTOR_NAME):
            continue
        if (entry.path, entry.source_index) in examined:
            continue
        origin = labels[entry.source_index] if entry.source_index < len(labels) else "input"
        finding = parse_descriptor(entry.content, f"{origin}!{entry.path}")
        if finding is not None:
            findings.append(finding)
    return findings


def parse_descriptor(data: bytes, source_label: str = "") -> Optional[MetadataFinding]:
    """Extract format hints from a descriptor; malformed documents give None."""
    try:
        document = json.loads(data.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        logging.debug("Ignoring unparseable descriptor in %s", source_label)
        return None
    if not isinstance(document, dict):
        return None
    pack = document.get("pack")
    if not isinstance(pack, dict):
        return None

    pack_format = _coerce_format(pack.get("pack_format"))
    if pack_format is None:
        pack_format = _coerce_format(pack.get("min_format"))
    if pack_format is None:
        logging.debug("Descriptor in %s declares no usable pack format", source_label)
        return None

    finding = MetadataFinding(
        pack_format=pack_format,
        max_format=_explicit_max(pack),
        overlays=_parse_overlays(document.get("overlays")),
        source=source_label,
    )
    logging.debug("Found descriptor in %s: %s", source_label, finding)
    return finding


def _record(report: InspectionReport, finding: Optional[MetadataFinding]) -> None:
    if finding is not None:
        report.findings.append(finding)


def _coerce_format(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.isascii() and text.isdigit():
            return int(text)
    return None


def _explicit_max(pack: Dict[str, Any]) -> Optional[int]:
    explicit = _coerce_format(pack.get("max_format"))
    if explicit is not None:
        return explicit
    supported = pack.get("supported_formats")
    if isinstance(supported, dict):
        return _coerce_format(supported.get("max_inclusive"))
    if isinstance(supported, list) and supported:
        return _coerce_format(supported[-1])
    return _coerce_format(supported)


def _parse_overlays(value: Any) -> Optional[List[OverlayEntry]]:
    if isinstance(value, dict):
        value = value.get("entries")
    if not isinstance(value, list):
        return None
    entries = [
        OverlayEntry(directory=item["directory"], declaration=dict(item))
        for item in value
        if isinstance(item, dict) and isinstance(item.get("directory"), str)
    ]
    return entries or None
