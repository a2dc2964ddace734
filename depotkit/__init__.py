"""depotkit - depot content download and incremental update tooling.

This package retrieves versioned, content-addressed depot data from content
servers, verifies it, and reconciles a local installation with a target
version by diffing manifests instead of re-downloading everything.

Key modules:
- core: transport, server selection, update planning, materialization
- formats: manifest and chunk codec interfaces
"""

__version__ = "0.1.0"
__author__ = "depotkit Team"

from depotkit.core.types import (
    ChunkRef,
    Manifest,
    ManifestNode,
    NodeAttributes,
    Server,
)

__all__ = [
    "__version__",
    "__author__",
    "ChunkRef",
    "Manifest",
    "ManifestNode",
    "NodeAttributes",
    "Server",
]
