from __future__ import annotations

import io
import json
import zipfile
from pathlib import Path
from typing import Dict

import pytest

from pack_merger import cli
from pack_merger.remote import FetchedResource


def make_zip(files: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def make_inputs(tmp_path: Path) -> tuple[Path, Path]:
    base = tmp_path / "base"
    (base / "assets").mkdir(parents=True)
    (base / "assets" / "x.txt").write_text("hello")
    overlay = tmp_path / "overlay.zip"
    overlay.write_bytes(make_zip({"assets/x.txt": b"world", "assets/y.txt": b"new"}))
    return base, overlay


def test_cli_merges_into_zip(tmp_path: Path) -> None:
    base, overlay = make_inputs(tmp_path)
    out = tmp_path / "merged.zip"

    code = cli.main(["-o", str(out), str(base), str(overlay), "--description", "CLI pack"])

    assert code == 0
    with zipfile.ZipFile(out) as archive:
        assert archive.read("assets/x.txt") == b"world"
        meta = json.loads(archive.read("pack.mcmeta"))
    assert meta["pack"]["description"] == "CLI pack"


def test_cli_directory_output(tmp_path: Path) -> None:
    base, overlay = make_inputs(tmp_path)
    out = tmp_path / "merged"

    assert cli.main(["--out", str(out), "--dir", "--no-atomic", str(base), str(overlay)]) == 0
    assert (out / "assets" / "y.txt").read_text() == "new"


def test_cli_dry_run(tmp_path: Path) -> None:
    base, overlay = make_inputs(tmp_path)
    out = tmp_path / "merged.zip"
    assert cli.main(["-o", str(out), "--dry-run", str(base), str(overlay)]) == 0
    assert not out.exists()


def test_cli_missing_input_is_usage_error(tmp_path: Path) -> None:
    out = tmp_path / "merged.zip"
    assert cli.main(["-o", str(out), str(tmp_path / "nope.zip")]) == cli.EXIT_USAGE_ERROR
    assert not out.exists()


def test_cli_requires_inputs_and_output(tmp_path: Path) -> None:
    base, _ = make_inputs(tmp_path)
    assert cli.main(["-o", str(tmp_path / "m.zip")]) == cli.EXIT_USAGE_ERROR
    assert cli.main([str(base)]) == cli.EXIT_USAGE_ERROR


def test_cli_bad_policy_is_usage_error(tmp_path: Path) -> None:
    base, _ = make_inputs(tmp_path)
    code = cli.main(["-o", str(tmp_path / "m.zip"), "--overwrite", "newest", str(base)])
    assert code == cli.EXIT_USAGE_ERROR


def test_cli_conflict_is_merge_error(tmp_path: Path) -> None:
    base, overlay = make_inputs(tmp_path)
    out = tmp_path / "merged.zip"
    code = cli.main(["-o", str(out), "--overwrite", "error", str(base), str(overlay)])
    assert code == cli.EXIT_MERGE_ERROR
    assert not out.exists()


def test_cli_config_file_inputs_come_first(tmp_path: Path) -> None:
    base, overlay = make_inputs(tmp_path)
    late = tmp_path / "late.zip"
    late.write_bytes(make_zip({"assets/x.txt": b"late"}))
    config = tmp_path / "merge.json"
    config.write_text(
        json.dumps(
            {
                "inputs": [str(base), str(overlay)],
                "out": str(tmp_path / "from-config.zip"),
                "overwrite": "first",
            }
        )
    )

    assert cli.main(["--config", str(config), str(late)]) == 0
    with zipfile.ZipFile(tmp_path / "from-config.zip") as archive:
        assert archive.read("assets/x.txt") == b"hello"

    assert cli.main(["--config", str(config), "--overwrite", "last", str(late)]) == 0
    with zipfile.ZipFile(tmp_path / "from-config.zip") as archive:
        assert archive.read("assets/x.txt") == b"late"


def test_cli_inputs_file_and_packs_dir(tmp_path: Path) -> None:
    base, overlay = make_inputs(tmp_path)
    listing = tmp_path / "inputs.txt"
    listing.write_text(f"# base layer\n{base}\n")
    packs = tmp_path / "packs"
    packs.mkdir()
    (packs / "a.zip").write_bytes(make_zip({"assets/z.txt": b"z"}))
    out = tmp_path / "merged.zip"

    code = cli.main(
        ["-o", str(out), "--inputs-file", str(listing), "--packs-dir", str(packs), str(overlay)]
    )

    assert code == 0
    with zipfile.ZipFile(out) as archive:
        assert archive.read("assets/z.txt") == b"z"
        assert archive.read("assets/x.txt") == b"world"
        provenance = archive.read("MERGED_SOURCES.txt").decode()
    assert provenance.index(str(base)) < provenance.index("a.zip") < provenance.index("overlay.zip")


def test_cli_tolerates_unreachable_remote(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    base, _ = make_inputs(tmp_path)
    out = tmp_path / "merged.zip"

    def fake_fetch(url: str, *, timeout: float | None = None, session: object = None) -> FetchedResource:
        return FetchedResource(url, b"Not Found", "text/plain")

    monkeypatch.setattr("pack_merger.remote.fetch_url", fake_fetch)

    failing = cli.main(["-o", str(out), str(base), "https://example.com/p.zip"])
    assert failing == cli.EXIT_MERGE_ERROR
    assert not out.exists()

    tolerated = cli.main(
        ["-o", str(out), "--tolerate-missing-inputs", str(base), "https://example.com/p.zip"]
    )
    assert tolerated == 0
    assert out.exists()
