"""
Target resolution for the Host, Bridge and UI targets.
"""

from .resolver import (
    build_descriptor,
    build_descriptors,
    find_target,
    resolve_entry,
    resolve_source_root,
)

__all__ = [
    "build_descriptor",
    "build_descriptors",
    "find_target",
    "resolve_entry",
    "resolve_source_root",
]
