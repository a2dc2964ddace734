"""Manifest decoding interface and a JSON manifest codec."""

from __future__ import annotations

import json
from typing import Protocol

import structlog
from pydantic import ValidationError

from depotkit.core.errors import ProtocolViolation
from depotkit.core.types import Manifest

logger = structlog.get_logger()


class ManifestCodec(Protocol):
    """Deserializes manifests and decrypts their filenames."""

    def deserialize(self, data: bytes) -> Manifest:
        """Build a manifest from the decompressed archive entry."""
        ...

    def decrypt_filenames(self, manifest: Manifest, depot_key: bytes) -> None:
        """Decrypt node names in place using the depot key."""
        ...


class JSONManifestCodec:
    """Codec for manifests stored as JSON documents.

    JSON manifests are produced with plain-text filenames, so decryption
    only succeeds for manifests that are not flagged as encrypted.
    """

    def deserialize(self, data: bytes) -> Manifest:
        try:
            raw = json.loads(data)
            return Manifest.model_validate(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            raise ProtocolViolation(f"Invalid JSON manifest: {e}") from e

    def decrypt_filenames(self, manifest: Manifest, depot_key: bytes) -> None:
        if manifest.filenames_encrypted:
            raise ProtocolViolation(
                "JSON manifests cannot carry encrypted filenames"
            )
        logger.debug("manifest_filenames_plain", depot_id=manifest.depot_id)

    def serialize(self, manifest: Manifest) -> bytes:
        """Encode a manifest as JSON bytes."""
        return json.dumps(manifest.model_dump(mode="json"), separators=(",", ":")).encode()
