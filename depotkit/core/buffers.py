"""Pooled transfer buffers with scoped leases.

A lease hands out a memoryview sized exactly to the requested length over a
reusable bytearray. The view is released when the lease ends, so any access
after the buffer went back to the pool raises instead of reading data that
belongs to the next transfer.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class BufferLease:
    """A sized view over a pooled buffer, valid until released."""

    def __init__(self, buffer: bytearray, size: int):
        self._buffer = buffer
        self._base = memoryview(buffer)
        self._view: memoryview | None = self._base[:size]
        self.size = size

    @property
    def view(self) -> memoryview:
        """Writable view of exactly ``size`` bytes.

        Raises:
            RuntimeError: If the lease was already released
        """
        if self._view is None:
            raise RuntimeError("Buffer lease used after release")
        return self._view

    @property
    def released(self) -> bool:
        return self._view is None

    def release(self) -> bytearray:
        """Invalidate the view and hand back the underlying buffer."""
        if self._view is not None:
            self._view.release()
            self._base.release()
            self._view = None
        return self._buffer


class BufferPool:
    """Pool of reusable bytearrays.

    Args:
        max_retained: Number of idle buffers kept for reuse
        max_buffer_size: Buffers larger than this are never retained
    """

    def __init__(self, max_retained: int = 4, max_buffer_size: int = 64 * 1024 * 1024):
        self.max_retained = max_retained
        self.max_buffer_size = max_buffer_size
        self._idle: list[bytearray] = []
        self._lock = threading.Lock()
        self.outstanding = 0

    def _acquire(self, size: int) -> bytearray:
        with self._lock:
            self.outstanding += 1
            for idx, buffer in enumerate(self._idle):
                if len(buffer) >= size:
                    return self._idle.pop(idx)
        return bytearray(size)

    def _return(self, buffer: bytearray) -> None:
        with self._lock:
            self.outstanding -= 1
            if len(buffer) <= self.max_buffer_size and len(self._idle) < self.max_retained:
                self._idle.append(buffer)

    @contextmanager
    def lease(self, size: int) -> Iterator[BufferLease]:
        """Lease a buffer of at least ``size`` bytes for the duration of a block.

        The buffer is returned to the pool on every exit path.

        Args:
            size: Exact number of bytes the lease view exposes

        Yields:
            BufferLease over the pooled buffer
        """
        if size < 0:
            raise ValueError("Buffer size must be non-negative")

        lease = BufferLease(self._acquire(size), size)
        try:
            yield lease
        finally:
            self._return(lease.release())

    @property
    def idle_count(self) -> int:
        return len(self._idle)
