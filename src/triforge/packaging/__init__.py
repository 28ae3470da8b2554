"""
Packaging: manifest merging and the packager invocation.
"""

from .manifest import POSTINSTALL_SCRIPT, filter_dependencies, merge_manifests, write_manifest
from .packager import Packager, builder_config, deep_merge

__all__ = [
    "POSTINSTALL_SCRIPT",
    "filter_dependencies",
    "merge_manifests",
    "write_manifest",
    "Packager",
    "builder_config",
    "deep_merge",
]
