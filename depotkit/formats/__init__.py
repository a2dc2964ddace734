"""Manifest and chunk codec interfaces.

The binary depot manifest and chunk wire formats are handled by pluggable
codecs. The transport only needs the interfaces defined here.
"""

from depotkit.formats.chunk import ChunkProcessor
from depotkit.formats.manifest import JSONManifestCodec, ManifestCodec

__all__ = [
    "ChunkProcessor",
    "JSONManifestCodec",
    "ManifestCodec",
]
