"""Legacy content server sessions.

The binary storage-session protocol itself lives outside this package; the
classes here describe the client interface it must offer and wrap it so
that primitives answering "nothing" become explicit Result values.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import IntEnum
from typing import Protocol, TypeVar

import structlog

from depotkit.core.config import DirectoryConfig
from depotkit.core.directory import DirectoryClient, ServerDirectory
from depotkit.core.errors import ResourceUnavailable
from depotkit.core.result import Result
from depotkit.core.types import Manifest, ManifestNode, Server

logger = structlog.get_logger()

T = TypeVar("T")


class DownloadPriority(IntEnum):
    """Priority of a legacy file transfer."""

    low = 0
    medium = 1
    high = 2


class StorageSession(Protocol):
    """An open storage session for one depot version."""

    def download_manifest(self) -> Manifest | None:
        ...

    def download_updates(self, from_version: int) -> list[int] | None:
        """File ids changed since ``from_version``, or None on failure."""
        ...

    def download_checksums(self) -> bytes | None:
        ...

    def download_file(self, node: ManifestNode, priority: DownloadPriority) -> bytes:
        ...

    def close(self) -> None:
        ...


class ContentServerClient(Protocol):
    """Connection to a legacy content server."""

    def connect(self, server: Server) -> None:
        ...

    def open_storage(
        self, depot_id: int, version: int, cell_id: int | None = None
    ) -> StorageSession:
        ...

    def disconnect(self) -> None:
        ...


class StorageGateway:
    """Runs legacy storage primitives against a resolved content server.

    Each call resolves a server, connects a fresh client, opens a storage
    session, runs one primitive and disconnects again.

    Args:
        directory: Server directory used to pick a content server
        client_factory: Creates a legacy client per call
        cell_id: Region cell id used when opening sessions for metadata
    """

    def __init__(
        self,
        directory: ServerDirectory,
        client_factory: Callable[[], ContentServerClient],
        cell_id: int = 0,
    ):
        self.directory = directory
        self.client_factory = client_factory
        self.cell_id = cell_id

    @classmethod
    def from_config(
        cls,
        config: DirectoryConfig,
        directory_client_factory: Callable[[], DirectoryClient],
        client_factory: Callable[[], ContentServerClient],
    ) -> StorageGateway:
        """Create a gateway whose directory and sessions use the configured cell id.

        Args:
            config: Directory endpoints and cell id
            directory_client_factory: Creates directory service clients
            client_factory: Creates legacy content server clients
        """
        directory = ServerDirectory.from_config(config, directory_client_factory)
        return cls(directory, client_factory, cell_id=config.cell_id)

    def resolve_server(self, depot_id: int, version: int) -> Server:
        """Resolve a content server or raise.

        Raises:
            ResourceUnavailable: If no server could be found
        """
        result = self.directory.resolve_storage_server(depot_id, version)
        if not result.is_ok:
            raise ResourceUnavailable(result.reason)
        return result.unwrap()

    @contextmanager
    def open_session(
        self, depot_id: int, version: int, cell_id: int | None = None
    ) -> Iterator[StorageSession]:
        """Open a storage session, closing it and disconnecting on exit.

        Raises:
            ResourceUnavailable: If no server could be found
        """
        server = self.resolve_server(depot_id, version)
        client = self.client_factory()
        try:
            client.connect(server)
            session = client.open_storage(depot_id, version, cell_id)
            try:
                yield session
            finally:
                session.close()
        finally:
            client.disconnect()

    def _call(
        self,
        what: str,
        depot_id: int,
        version: int,
        action: Callable[[StorageSession], T | None],
    ) -> Result[T]:
        try:
            with self.open_session(depot_id, version, cell_id=self.cell_id) as session:
                value = action(session)
        except ResourceUnavailable as e:
            logger.warning("storage_no_server", what=what, depot_id=depot_id, version=version)
            return Result.unavailable(str(e))
        except Exception as e:
            logger.warning(
                "storage_call_failed",
                what=what,
                depot_id=depot_id,
                version=version,
                error=str(e),
            )
            return Result.unavailable(str(e))

        if value is None:
            return Result.rejected(f"Server returned no {what}")
        return Result.ok(value)

    def fetch_manifest(self, depot_id: int, version: int) -> Result[Manifest]:
        """Download the manifest of a depot version."""
        return self._call(
            "manifest", depot_id, version, lambda session: session.download_manifest()
        )

    def fetch_updates(self, depot_id: int, from_version: int, to_version: int) -> Result[list[int]]:
        """Download the ids of files changed between two versions.

        The ids refer to nodes of the ``from_version`` manifest.
        """
        return self._call(
            "updates",
            depot_id,
            to_version,
            lambda session: session.download_updates(from_version),
        )

    def fetch_checksums(self, depot_id: int, version: int) -> Result[bytes]:
        """Download the checksum table of a depot version."""
        return self._call(
            "checksums", depot_id, version, lambda session: session.download_checksums()
        )
