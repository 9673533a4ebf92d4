from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .sources import InvalidInputError, PackIOError

DEFAULT_BUFFER_SIZE = 32 * 1024


class ConflictPolicy(str, Enum):
    LAST_WINS = "last-wins"
    FIRST_WINS = "first-wins"
    ERROR_IF_CONFLICT = "error-if-conflict"
    SKIP_IF_EXISTS = "skip-if-exists"

    @classmethod
    def parse(cls, value: "str | ConflictPolicy") -> "ConflictPolicy":
        if isinstance(value, cls):
            return value
        policy = _CONFLICT_ALIASES.get(_squash(str(value)))
        if policy is None:
            raise InvalidInputError(f"unknown overwrite policy: {value}")
        return policy


class SupportedFormatsPolicy(str, Enum):
    ONE_TO_HIGHEST = "one-to-highest"
    LOWEST_TO_HIGHEST = "lowest-to-highest"
    ONE_TO_LATEST = "one-to-latest"

    @classmethod
    def parse(cls, value: "str | SupportedFormatsPolicy") -> "SupportedFormatsPolicy":
        if isinstance(value, cls):
            return value
        squashed = _squash(str(value))
        for policy in cls:
            if _squash(policy.value) == squashed:
                return policy
        raise InvalidInputError(f"unknown supported-formats policy: {value}")


def _squash(value: str) -> str:
    return value.strip().lower().replace("-", "").replace("_", "")


_CONFLICT_ALIASES = {
    "last": ConflictPolicy.LAST_WINS,
    "lastwins": ConflictPolicy.LAST_WINS,
    "first": ConflictPolicy.FIRST_WINS,
    "firstwins": ConflictPolicy.FIRST_WINS,
    "error": ConflictPolicy.ERROR_IF_CONFLICT,
    "errorifconflict": ConflictPolicy.ERROR_IF_CONFLICT,
    "skip": ConflictPolicy.SKIP_IF_EXISTS,
    "skipifexists": ConflictPolicy.SKIP_IF_EXISTS,
}


@dataclass
class MergeOptions:
    overwrite: ConflictPolicy = ConflictPolicy.LAST_WINS
    dry_run: bool = False
    buffer_size: int = DEFAULT_BUFFER_SIZE
    atomic: bool = True
    preserve_timestamps: bool = False
    pack_format: Optional[int] = None
    supported_formats: SupportedFormatsPolicy = SupportedFormatsPolicy.ONE_TO_HIGHEST
    description: Optional[str] = None
    tolerate_missing_inputs: bool = False

    def __post_init__(self) -> None:
        self.overwrite = ConflictPolicy.parse(self.overwrite)
        self.supported_formats = SupportedFormatsPolicy.parse(self.supported_formats)
        if isinstance(self.buffer_size, bool) or not isinstance(self.buffer_size, int):
            raise InvalidInputError(f"buffer size must be an integer, got {self.buffer_size!r}")
        if self.buffer_size <= 0:
            raise InvalidInputError(f"buffer size must be positive, got {self.buffer_size}")
        if self.pack_format is not None and (
            isinstance(self.pack_format, bool)
            or not isinstance(self.pack_format, int)
            or self.pack_format <= 0
        ):
            raise InvalidInputError(f"pack format must be a positive integer, got {self.pack_format!r}")


OPTION_FIELDS = tuple(f.name for f in fields(MergeOptions))

_CONFIG_TYPES: Dict[str, tuple] = {
    "overwrite": (str,),
    "dry_run": (bool,),
    "buffer_size": (int,),
    "atomic": (bool,),
    "preserve_timestamps": (bool,),
    "pack_format": (int,),
    "supported_formats": (str,),
    "description": (str,),
    "tolerate_missing_inputs": (bool,),
    "inputs": (list,),
    "out": (str,),
    "dir": (bool,),
    "timeout": (int, float),
}


@dataclass
class ConfigFile:
    """Values read from a JSON configuration file; unset keys stay absent."""

    path: Path
    inputs: List[str] = field(default_factory=list)
    out: Optional[Path] = None
    as_directory: Optional[bool] = None
    timeout: Optional[float] = None
    options: Dict[str, Any] = field(default_factory=dict)


def load_config_file(path: Path) -> ConfigFile:
    try:
        raw = path.read_text()
    except OSError as exc:
        raise PackIOError(f"Failed to read config {path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidInputError(f"Config {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidInputError(f"Config {path} must contain a JSON object")

    if "conflict_policy" in data:
        if "overwrite" in data:
            raise InvalidInputError(f"Config {path} sets both overwrite and conflict_policy")
        data["overwrite"] = data.pop("conflict_policy")

    config = ConfigFile(path=path)
    for key, value in data.items():
        expected = _CONFIG_TYPES.get(key)
        if expected is None:
            raise InvalidInputError(f"Config {path} has unrecognized key: {key}")
        if value is None:
            continue
        if (isinstance(value, bool) and bool not in expected) or not isinstance(value, expected):
            raise InvalidInputError(f"Config {path}: invalid value for {key}: {value!r}")
        if key == "inputs":
            if not all(isinstance(item, str) for item in value):
                raise InvalidInputError(f"Config {path}: inputs must be a list of strings")
            config.inputs = list(value)
        elif key == "out":
            config.out = Path(value).expanduser()
        elif key == "dir":
            config.as_directory = value
        elif key == "timeout":
            config.timeout = float(value)
        else:
            config.options[key] = value
    logging.debug("Loaded config %s: %s", path, config)
    return config


def build_options(
    cli_values: Mapping[str, Any],
    config: ConfigFile | None = None,
) -> MergeOptions:
    """Resolve options with CLI values over config values over defaults.

    A CLI value of ``None`` means "not given on the command line".
    """
    resolved: Dict[str, Any] = {}
    for name in OPTION_FIELDS:
        value = cli_values.get(name)
        if value is None and config is not None:
            value = config.options.get(name)
        if value is not None:
            resolved[name] = value
    return MergeOptions(**resolved)
