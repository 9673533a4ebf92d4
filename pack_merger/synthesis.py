from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from . import __version__
from .inspection import MetadataFinding, OverlayEntry
from .options import SupportedFormatsPolicy

# Descriptors whose lowest supported format is at or above this drop the
# legacy pack_format/supported_formats fields.
LEGACY_FORMAT_THRESHOLD = 65

TOOL_NAME = "pack-merger"


@dataclass
class SynthesizedMetadata:
    pack_format: int
    supported_formats: List[int]
    max_format: int
    description: str
    overlays: List[OverlayEntry] = field(default_factory=list)

    @property
    def min_format(self) -> int:
        return self.supported_formats[0]

    @property
    def is_legacy(self) -> bool:
        return self.min_format < LEGACY_FORMAT_THRESHOLD


def default_description() -> str:
    return f"Merged with {TOOL_NAME} {__version__}"


def synthesize(
    findings: Sequence[MetadataFinding],
    *,
    pack_format: Optional[int] = None,
    policy: SupportedFormatsPolicy = SupportedFormatsPolicy.ONE_TO_HIGHEST,
    description: Optional[str] = None,
) -> SynthesizedMetadata:
    policy = SupportedFormatsPolicy.parse(policy)
    declared = [finding.pack_format for finding in findings]

    if pack_format is not None:
        final_format = pack_format
    elif declared:
        final_format = max(declared)
    else:
        final_format = 1

    if policy is SupportedFormatsPolicy.LOWEST_TO_HIGHEST:
        bounds = _collapse(min(declared), max(declared)) if declared else [final_format]
    else:
        # one-to-latest has no release table to consult and shares this rule
        highest = max(declared) if declared else final_format
        bounds = _collapse(1, highest) if highest > 1 else [1]

    explicit_max = [finding.max_format for finding in findings if finding.max_format is not None]
    max_format = max(explicit_max) if explicit_max else bounds[-1]

    return SynthesizedMetadata(
        pack_format=final_format,
        supported_formats=bounds,
        max_format=max_format,
        description=description if description is not None else default_description(),
        overlays=merge_overlays(findings),
    )


def merge_overlays(findings: Sequence[MetadataFinding]) -> List[OverlayEntry]:
    merged: Dict[str, OverlayEntry] = {}
    for finding in findings:
        for entry in finding.overlays or []:
            merged[entry.directory] = entry
    return [merged[key] for key in sorted(merged)]


def build_document(meta: SynthesizedMetadata) -> Dict[str, Any]:
    if meta.is_legacy:
        pack: Dict[str, Any] = {
            "pack_format": meta.pack_format,
            "min_format": meta.min_format,
            "max_format": meta.max_format,
            "description": meta.description,
            "supported_formats": list(meta.supported_formats),
        }
    else:
        pack = {
            "min_format": meta.min_format,
            "max_format": meta.max_format,
            "description": meta.description,
        }
    document: Dict[str, Any] = {"pack": pack}
    if meta.overlays:
        document["overlays"] = {"entries": [dict(entry.declaration) for entry in meta.overlays]}
    return document


def render_metadata(meta: SynthesizedMetadata) -> bytes:
    return (json.dumps(build_document(meta), indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def _collapse(low: int, high: int) -> List[int]:
    return [low] if low == high else [low, high]
