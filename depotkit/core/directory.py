"""Content server selection through directory services."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol

import structlog

from depotkit.core.config import DirectoryConfig
from depotkit.core.result import Result
from depotkit.core.types import Server, ServerCandidate

logger = structlog.get_logger()


class DirectoryClient(Protocol):
    """Client for one content server directory service."""

    def connect(self, endpoint: str) -> None:
        ...

    def get_content_server_list(
        self, depot_id: int, version: int, cell_id: int
    ) -> list[ServerCandidate] | None:
        """Candidate servers for a depot version, or None if rejected."""
        ...

    def disconnect(self) -> None:
        ...


def pick_least_loaded(candidates: Sequence[ServerCandidate]) -> ServerCandidate:
    """Candidate with the lowest load; ties keep the earliest candidate.

    Raises:
        ValueError: If there are no candidates
    """
    if not candidates:
        raise ValueError("No candidates to choose from")

    best = candidates[0]
    for candidate in candidates[1:]:
        if candidate.load < best.load:
            best = candidate
    return best


class ServerDirectory:
    """Resolves the content server to use for a depot version.

    Args:
        endpoints: Directory service endpoints in priority order
        client_factory: Creates a directory client per endpoint attempt
        cell_id: Region cell id sent with every query
    """

    def __init__(
        self,
        endpoints: Sequence[str],
        client_factory: Callable[[], DirectoryClient],
        cell_id: int = 0,
    ):
        self.endpoints = list(endpoints)
        self.client_factory = client_factory
        self.cell_id = cell_id

    @classmethod
    def from_config(
        cls, config: DirectoryConfig, client_factory: Callable[[], DirectoryClient]
    ) -> ServerDirectory:
        """Create a directory over the configured endpoints and cell id."""
        return cls(config.endpoints, client_factory, cell_id=config.cell_id)

    def _query(self, endpoint: str, depot_id: int, version: int) -> list[ServerCandidate] | None:
        client = self.client_factory()
        try:
            client.connect(endpoint)
            return client.get_content_server_list(depot_id, version, self.cell_id)
        except OSError as e:
            logger.warning("directory_connect_failed", endpoint=endpoint, error=str(e))
            return None
        finally:
            client.disconnect()

    def resolve_storage_server(self, depot_id: int, version: int) -> Result[Server]:
        """Find the least loaded content server for a depot version.

        Endpoints are tried in order; the first one that returns any
        candidates decides, later endpoints are not queried.

        Args:
            depot_id: Depot to serve
            version: Depot version to serve

        Returns:
            Result holding the selected server, or unavailable
        """
        if not self.endpoints:
            logger.error("directory_no_endpoints")
            return Result.unavailable("No directory service endpoints configured")

        for endpoint in self.endpoints:
            candidates = self._query(endpoint, depot_id, version)

            if candidates is None:
                logger.warning(
                    "directory_rejected",
                    endpoint=endpoint,
                    depot_id=depot_id,
                    version=version,
                )
                continue

            if not candidates:
                logger.warning(
                    "directory_empty",
                    endpoint=endpoint,
                    depot_id=depot_id,
                    version=version,
                )
                continue

            best = pick_least_loaded(candidates)
            logger.debug(
                "directory_server_selected",
                endpoint=endpoint,
                server=str(best.server),
                load=best.load,
                candidates=len(candidates),
            )
            return Result.ok(best.server)

        return Result.unavailable(
            f"No content server for depot {depot_id}, version {version}"
        )
