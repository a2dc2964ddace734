"""Chunk processing interface."""

from __future__ import annotations

from typing import Protocol

from depotkit.core.types import ChunkRef


class ChunkProcessor(Protocol):
    """Decrypts, decompresses and verifies raw chunk bytes."""

    def process(self, chunk: ChunkRef, data: memoryview, depot_key: bytes) -> bytes:
        """Turn raw chunk bytes into file content.

        ``data`` is a view over a pooled transfer buffer that is reused once
        this call returns, so implementations must not keep a reference to
        it and must return newly allocated bytes.

        Raises:
            IntegrityViolation: If the processed data fails verification
        """
        ...
