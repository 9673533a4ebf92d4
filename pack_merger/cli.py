from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Sequence

from . import __version__
from .merge import MergeResult, merge_packs
from .options import (
    OPTION_FIELDS,
    ConfigFile,
    ConflictPolicy,
    MergeOptions,
    SupportedFormatsPolicy,
    build_options,
    load_config_file,
)
from .remote import make_fetcher
from .reporting import summarize_cli
from .sources import (
    InvalidInputError,
    PackMergerError,
    PackSource,
    classify_input,
    list_packs_in_folder,
    read_input_list,
)

EXIT_MERGE_ERROR = 1
EXIT_USAGE_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pack-merger",
        description=(
            "Merge resource packs into a single pack. Later inputs overwrite earlier ones."
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "-o",
        "--out",
        type=Path,
        help="Output zip path (or directory with --dir).",
    )
    parser.add_argument(
        "inputs",
        nargs="*",
        help="Input packs (directories, zip files or http(s) URLs). The last has highest priority.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="JSON configuration file; its inputs are merged before positional inputs.",
    )
    parser.add_argument(
        "--inputs-file",
        type=Path,
        help="Text file listing one input path/URL per line ('#' starts a comment).",
    )
    parser.add_argument(
        "--packs-dir",
        type=Path,
        help="Directory whose entries are each merged as a pack, in lexical order.",
    )
    parser.add_argument(
        "--dir",
        action="store_const",
        const=True,
        default=None,
        help="Write output as a directory instead of a zip file.",
    )
    parser.add_argument(
        "--overwrite",
        help="Conflict policy: "
        + ", ".join(policy.value for policy in ConflictPolicy)
        + " (aliases: last, first, error, skip). Default: last-wins.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_const",
        const=True,
        default=None,
        help="Read and validate inputs without writing output.",
    )
    parser.add_argument(
        "--buffer-size",
        type=int,
        help="Buffer size in bytes for streaming copies (default 32768).",
    )
    parser.add_argument(
        "--atomic",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Write to a temporary location and rename into place (default on).",
    )
    parser.add_argument(
        "--preserve-timestamps",
        action="store_const",
        const=True,
        default=None,
        help="Keep source modification times instead of a fixed timestamp.",
    )
    parser.add_argument(
        "--pack-format",
        type=int,
        help="Force the pack format written to pack.mcmeta.",
    )
    parser.add_argument(
        "--supported-formats",
        help="Supported-format range policy: "
        + ", ".join(policy.value for policy in SupportedFormatsPolicy)
        + ". Default: one-to-highest.",
    )
    parser.add_argument("--description", help="Description written to pack.mcmeta.")
    parser.add_argument(
        "--tolerate-missing-inputs",
        action="store_const",
        const=True,
        default=None,
        help="Skip remote inputs that cannot be fetched instead of failing.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Timeout in seconds for fetching remote inputs (default: none).",
    )
    return parser


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


@dataclass
class RunPlan:
    sources: List[PackSource]
    out: Path
    as_directory: bool
    options: MergeOptions
    timeout: float | None


def prepare(args: argparse.Namespace) -> RunPlan:
    """Resolve inputs and options; every failure here is a usage error."""
    config = load_config_file(args.config.expanduser()) if args.config else None

    sources = _collect_inputs(args, config)
    if not sources:
        raise InvalidInputError("No inputs given (positional, --inputs-file, --packs-dir or config)")
    for source in sources:
        if source.path is not None and not source.path.exists():
            raise InvalidInputError(f"Input path does not exist: {source.path}")

    out = args.out or (config.out if config else None)
    if out is None:
        raise InvalidInputError("An output path is required (--out or 'out' in config)")

    if args.dir is not None:
        as_directory = args.dir
    else:
        as_directory = bool(config and config.as_directory)
    timeout = args.timeout if args.timeout is not None else (config.timeout if config else None)

    options = build_options(_cli_option_values(args), config)
    return RunPlan(
        sources=sources,
        out=Path(out).expanduser(),
        as_directory=as_directory,
        options=options,
        timeout=timeout,
    )


def execute(plan: RunPlan) -> MergeResult:
    logging.info(
        "Merging %d input(s) into %s (%s, overwrite=%s)",
        len(plan.sources),
        plan.out,
        "directory" if plan.as_directory else "zip",
        plan.options.overwrite.value,
    )
    result = merge_packs(
        plan.sources,
        plan.out,
        plan.options,
        as_directory=plan.as_directory,
        fetcher=make_fetcher(plan.timeout),
    )
    logging.info("\n%s", summarize_cli(result))
    if result.dry_run:
        logging.info("Dry run complete; nothing written to %s", plan.out)
    else:
        logging.info("Wrote merged pack to %s", plan.out)
    return result


def _collect_inputs(args: argparse.Namespace, config: ConfigFile | None) -> List[PackSource]:
    sources: List[PackSource] = []
    if config is not None:
        sources.extend(classify_input(item) for item in config.inputs)
    if args.inputs_file:
        sources.extend(read_input_list(args.inputs_file.expanduser()))
    if args.packs_dir:
        sources.extend(list_packs_in_folder(args.packs_dir.expanduser()))
    sources.extend(classify_input(item) for item in args.inputs)
    return sources


def _cli_option_values(args: argparse.Namespace) -> Dict[str, Any]:
    return {name: getattr(args, name, None) for name in OPTION_FIELDS}


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    logging.debug("Arguments: %s", args)
    try:
        plan = prepare(args)
    except PackMergerError as exc:
        logging.error("%s", exc)
        return EXIT_USAGE_ERROR
    try:
        execute(plan)
    except PackMergerError as exc:
        logging.error("error merging packs: %s", exc)
        return EXIT_MERGE_ERROR
    except KeyboardInterrupt:
        logging.error("Interrupted")
        return 130
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
