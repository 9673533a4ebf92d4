"""
pack_merger package

Provides the CLI entrypoint (`pack-merger`) and the merge engine that layers
resource packs (directories, zip files, zip bytes, or remote zips) into one
deterministic output pack.
"""

__version__ = "0.1.0"

from .cli import main
from .merge import MergeResult, merge_packs, merge_packs_to_bytes
from .options import ConflictPolicy, MergeOptions, SupportedFormatsPolicy
from .sources import PackMergerError, PackSource

__all__ = [
    "ConflictPolicy",
    "MergeOptions",
    "MergeResult",
    "PackMergerError",
    "PackSource",
    "SupportedFormatsPolicy",
    "__version__",
    "main",
    "merge_packs",
    "merge_packs_to_bytes",
]
