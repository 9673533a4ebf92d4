from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Sequence, Set, Tuple

from .collector import collect_source
from .inspection import MetadataFinding, inspect_nested, inspect_source
from .options import MergeOptions
from .output import build_output_files, render_archive, write_archive, write_directory
from .remote import Fetcher, ensure_archive_bytes, make_fetcher
from .reporting import SourceRecord, render_provenance
from .sources import InvalidInputError, PackSource, list_packs_in_folder
from .synthesis import SynthesizedMetadata, render_metadata, synthesize
from .table import FileEntry, MergeTable

OutputMode = Literal["archive", "directory"]


@dataclass
class MergeResult:
    output: str | None
    mode: OutputMode
    dry_run: bool
    paths: List[str]
    metadata: SynthesizedMetadata
    sources: List[SourceRecord]
    files: List[FileEntry] = field(default_factory=list, repr=False)


class MergeSession:
    """State for a single merge: the table, descriptor findings and source records."""

    def __init__(self, options: MergeOptions, fetcher: Fetcher | None = None) -> None:
        self.options = options
        self.fetcher = fetcher or make_fetcher()
        self.table = MergeTable(options.overwrite)
        self.findings: List[MetadataFinding] = []
        self.records: List[SourceRecord] = []
        self._examined: Set[Tuple[str, int]] = set()
        self._labels: List[str] = []

    def add_source(self, source: PackSource) -> SourceRecord:
        index = len(self.records)
        record = SourceRecord(position=index + 1, kind=source.kind, label=source.label)
        self.records.append(record)
        self._labels.append(source.label)

        resolved = source
        if source.kind == "remote":
            try:
                resolved = self._fetch(source)
            except InvalidInputError as exc:
                if not self.options.tolerate_missing_inputs:
                    raise
                logging.warning("Skipping unavailable input %s: %s", source.label, exc)
                record.status = "skipped"
                record.reason = str(exc)
                return record

        record.files = collect_source(
            resolved,
            self.table,
            index,
            buffer_size=self.options.buffer_size,
            preserve_timestamps=self.options.preserve_timestamps,
        )
        report = inspect_source(resolved)
        self.findings.extend(report.findings)
        self._examined.update((path, index) for path in report.examined)
        return record

    def synthesize(self) -> SynthesizedMetadata:
        nested = inspect_nested(self.table, self._examined, self._labels)
        if nested:
            logging.debug("Found %d additional descriptor(s) in merged content", len(nested))
        return synthesize(
            self.findings + nested,
            pack_format=self.options.pack_format,
            policy=self.options.supported_formats,
            description=self.options.description,
        )

    def output_files(self, metadata: SynthesizedMetadata) -> List[FileEntry]:
        return build_output_files(
            self.table,
            metadata=render_metadata(metadata),
            provenance=render_provenance(self.records),
        )

    def _fetch(self, source: PackSource) -> PackSource:
        resource = self.fetcher(str(source.url))
        return PackSource.archive_bytes(ensure_archive_bytes(resource))


def merge_packs(
    sources: Sequence[PackSource],
    output: Path | None = None,
    options: MergeOptions | None = None,
    *,
    as_directory: bool = False,
    fetcher: Fetcher | None = None,
) -> MergeResult:
    """Merge ``sources`` in order and write the result to ``output``.

    Nothing is written when ``output`` is None or the options request a dry run.
    """
    options = options or MergeOptions()
    session = MergeSession(options, fetcher=fetcher)
    for source in sources:
        session.add_source(source)
    metadata = session.synthesize()
    files = session.output_files(metadata)

    result = MergeResult(
        output=str(output) if output is not None else None,
        mode="directory" if as_directory else "archive",
        dry_run=options.dry_run,
        paths=[entry.path for entry in files],
        metadata=metadata,
        sources=session.records,
        files=files,
    )

    if output is None:
        return result
    if options.dry_run:
        logging.info(
            "Dry run: would write %d entries to %s %s", len(files), result.mode, output
        )
        for entry in files:
            logging.debug("Dry run: %s (%d bytes)", entry.path, len(entry.content))
        return result

    if as_directory:
        write_directory(
            files,
            output,
            atomic=options.atomic,
            buffer_size=options.buffer_size,
            preserve_timestamps=options.preserve_timestamps,
        )
    else:
        write_archive(
            files,
            output,
            atomic=options.atomic,
            buffer_size=options.buffer_size,
            preserve_timestamps=options.preserve_timestamps,
        )
    return result


def merge_packs_to_bytes(
    sources: Sequence[PackSource],
    options: MergeOptions | None = None,
    *,
    fetcher: Fetcher | None = None,
) -> bytes:
    options = options or MergeOptions()
    result = merge_packs(sources, None, options, fetcher=fetcher)
    return render_archive(
        result.files,
        buffer_size=options.buffer_size,
        preserve_timestamps=options.preserve_timestamps,
    )


def merge_all_packs_in_folder(
    folder: Path,
    options: MergeOptions | None = None,
    *,
    fetcher: Fetcher | None = None,
) -> bytes:
    """Merge every pack inside ``folder`` in lexical order and return the archive bytes."""
    return merge_packs_to_bytes(list_packs_in_folder(folder), options, fetcher=fetcher)
