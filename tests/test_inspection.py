from __future__ import annotations

import io
import json
import zipfile
from pathlib import Path
from typing import Dict

from pack_merger.inspection import (
    DESCRIPTOR_NAME,
    inspect_nested,
    inspect_source,
    parse_descriptor,
)
from pack_merger.sources import PackSource
from pack_merger.table import FileEntry, MergeTable


def make_zip(files: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def descriptor(pack: dict, **extra: object) -> bytes:
    return json.dumps({"pack": pack, **extra}).encode("utf-8")


def test_parse_numeric_and_string_formats() -> None:
    assert parse_descriptor(descriptor({"pack_format": 15})).pack_format == 15
    assert parse_descriptor(descriptor({"pack_format": " 22 "})).pack_format == 22


def test_parse_rejects_other_shapes_without_error() -> None:
    assert parse_descriptor(b"not json") is None
    assert parse_descriptor(b"[1, 2]") is None
    assert parse_descriptor(descriptor({"pack_format": "fifteen"})) is None
    assert parse_descriptor(descriptor({"pack_format": True})) is None
    assert parse_descriptor(descriptor({"pack_format": "\u00b2"})) is None
    assert parse_descriptor(descriptor({"min_format": "\u0663"})) is None
    assert parse_descriptor(json.dumps({"pack": 3}).encode()) is None
    assert parse_descriptor(descriptor({"description": "no format"})) is None


def test_parse_explicit_max_format_variants() -> None:
    assert parse_descriptor(descriptor({"pack_format": 3, "max_format": "9"})).max_format == 9
    ranged = descriptor({"pack_format": 3, "supported_formats": {"min_inclusive": 3, "max_inclusive": 12}})
    assert parse_descriptor(ranged).max_format == 12
    assert parse_descriptor(descriptor({"pack_format": 3, "supported_formats": [3, 8]})).max_format == 8
    assert parse_descriptor(descriptor({"pack_format": 3})).max_format is None


def test_parse_modern_descriptor_uses_min_format() -> None:
    finding = parse_descriptor(descriptor({"min_format": 70, "max_format": 75}))
    assert finding is not None
    assert finding.pack_format == 70
    assert finding.max_format == 75


def test_parse_overlays() -> None:
    data = descriptor(
        {"pack_format": 18},
        overlays={
            "entries": [
                {"directory": "ov_a", "formats": [18, 20]},
                {"formats": 3},
                "junk",
            ]
        },
    )
    finding = parse_descriptor(data)
    assert finding is not None
    assert finding.overlays is not None
    assert [entry.directory for entry in finding.overlays] == ["ov_a"]
    assert finding.overlays[0].declaration["formats"] == [18, 20]


def test_inspect_directory_root_descriptor(tmp_path: Path) -> None:
    root = tmp_path / "pack"
    (root / "nested").mkdir(parents=True)
    (root / DESCRIPTOR_NAME).write_bytes(descriptor({"pack_format": 7}))
    (root / "nested" / DESCRIPTOR_NAME).write_bytes(descriptor({"pack_format": 40}))

    report = inspect_source(PackSource.directory(root))

    assert [finding.pack_format for finding in report.findings] == [7]
    assert report.examined == [DESCRIPTOR_NAME]


def test_inspect_archive_root_and_one_level_nested() -> None:
    data = make_zip(
        {
            "ov_a/pack.mcmeta": descriptor({"pack_format": 9}),
            DESCRIPTOR_NAME: descriptor({"pack_format": 5}),
            "deep/er/pack.mcmeta": descriptor({"pack_format": 99}),
        }
    )

    report = inspect_source(PackSource.archive_bytes(data))

    assert [finding.pack_format for finding in report.findings] == [5, 9]
    assert report.examined == [DESCRIPTOR_NAME, "ov_a/pack.mcmeta"]


def test_inspect_archive_without_descriptor() -> None:
    report = inspect_source(PackSource.archive_bytes(make_zip({"a.txt": b"a"})))
    assert report.findings == []


def test_inspect_nested_skips_examined_entries() -> None:
    table = MergeTable()
    table.insert(FileEntry(DESCRIPTOR_NAME, descriptor({"pack_format": 5}), source_index=0))
    table.insert(FileEntry("ov_a/pack.mcmeta", descriptor({"pack_format": 9}), source_index=0))
    table.insert(FileEntry("deep/er/pack.mcmeta", descriptor({"pack_format": 30}), source_index=1))
    table.insert(FileEntry("notpack.mcmeta.txt", descriptor({"pack_format": 50}), source_index=1))

    findings = inspect_nested(
        table,
        {(DESCRIPTOR_NAME, 0), ("ov_a/pack.mcmeta", 0)},
        ["first", "second"],
    )

    assert [finding.pack_format for finding in findings] == [30]
    assert findings[0].source == "second!deep/er/pack.mcmeta"
