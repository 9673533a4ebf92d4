from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

from . import __version__

if TYPE_CHECKING:
    from .merge import MergeResult

PROVENANCE_NAME = "MERGED_SOURCES.txt"


@dataclass
class SourceRecord:
    position: int
    kind: str
    label: str
    status: str = "merged"
    files: int = 0
    reason: str = ""


def render_provenance(records: Sequence[SourceRecord]) -> bytes:
    lines = [f"# Generated by pack-merger {__version__}", "# Sources in merge order", ""]
    for record in records:
        line = f"{record.position}. {record.kind}: {record.label}"
        if record.status == "skipped":
            line += f" (skipped: {record.reason})"
        lines.append(line)
    return ("\n".join(lines) + "\n").encode("utf-8")


def summarize_cli(result: "MergeResult") -> str:
    lines = []
    lines.append("Merge Summary")
    lines.append("=============")
    for record in result.sources:
        detail = f"- [{record.position}] {record.kind} {record.label}: {record.status}"
        if record.status == "skipped":
            detail += f" ({record.reason})"
        else:
            detail += f" ({record.files} file(s) kept)"
        lines.append(detail)
    meta = result.metadata
    lines.append("")
    lines.append(
        f"pack_format={meta.pack_format} supported={meta.supported_formats} "
        f"max_format={meta.max_format} overlays={len(meta.overlays)}"
    )
    lines.append(f"{len(result.paths)} entr{'y' if len(result.paths) == 1 else 'ies'} in output")
    return "\n".join(lines)
