"""
Import classification: bundled versus external modules.
"""

from .classifier import (
    INTERNAL_NAMESPACES,
    NODE_BUILTIN_MODULES,
    RUNTIME_MODULE,
    ExternalSet,
    build_external_set,
    is_external,
    is_internal,
    module_name,
)

__all__ = [
    "INTERNAL_NAMESPACES",
    "NODE_BUILTIN_MODULES",
    "RUNTIME_MODULE",
    "ExternalSet",
    "build_external_set",
    "is_external",
    "is_internal",
    "module_name",
]
