"""Writes planned depot files to disk."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import structlog
from rich.console import Console

from depotkit.core.errors import MaterializeError
from depotkit.core.planner import UpdateSet
from depotkit.core.storage import DownloadPriority, StorageSession
from depotkit.core.types import ManifestNode

logger = structlog.get_logger()


@dataclass
class MaterializeReport:
    """Outcome of materializing an update set."""

    written: int = 0
    bytes_written: int = 0
    skipped_config: int = 0
    skipped_encrypted: int = 0


class FileMaterializer:
    """Applies the per-file download policy and writes files.

    For each planned node, in plan order:
    - existing user configuration files are never overwritten
    - encrypted files are skipped with a warning
    - everything else is downloaded and written in full

    Any failure aborts the rest of the plan. Files already written stay on
    disk.

    Args:
        install_dir: Depot install directory (install root plus server folder)
        console: Optional console receiving one progress line per file
        progress_callback: Optional callable receiving (percent, node)
    """

    def __init__(
        self,
        install_dir: Path,
        console: Console | None = None,
        progress_callback: Callable[[float, ManifestNode], None] | None = None,
    ):
        self.install_dir = install_dir
        self.console = console
        self.progress_callback = progress_callback

    def create_directories(self, update_set: UpdateSet) -> None:
        """Create every directory of the target manifest."""
        for node in update_set.directories_to_create:
            node.local_path(self.install_dir).mkdir(parents=True, exist_ok=True)

    def materialize(self, update_set: UpdateSet, session: StorageSession) -> MaterializeReport:
        """Create directories, then fetch and write every planned file.

        Args:
            update_set: Plan to apply
            session: Open storage session for the target version

        Returns:
            MaterializeReport with per-policy counts

        Raises:
            MaterializeError: If any download or write fails
        """
        self.create_directories(update_set)
        report = MaterializeReport()

        for percent, node in update_set.weighted():
            if self.progress_callback is not None:
                self.progress_callback(percent, node)

            try:
                self._materialize_node(node, percent, session, report)
            except Exception as e:
                logger.error(
                    "materialize_failed",
                    file=node.full_name,
                    written=report.written,
                    error=str(e),
                )
                raise MaterializeError(f"Unable to install {node.full_name}: {e}") from e

        logger.info(
            "materialize_complete",
            written=report.written,
            bytes=report.bytes_written,
            skipped_config=report.skipped_config,
            skipped_encrypted=report.skipped_encrypted,
        )
        return report

    def _materialize_node(
        self,
        node: ManifestNode,
        percent: float,
        session: StorageSession,
        report: MaterializeReport,
    ) -> None:
        path = node.local_path(self.install_dir)

        if node.is_user_config and path.exists():
            report.skipped_config += 1
            return

        if node.is_encrypted:
            logger.warning("materialize_encrypted_skipped", file_id=node.file_id, file=node.full_name)
            report.skipped_encrypted += 1
            return

        if self.console is not None:
            self.console.print(f" {percent:05.2f}%\t{path}", markup=False, highlight=False)

        data = session.download_file(node, DownloadPriority.high)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

        report.written += 1
        report.bytes_written += len(data)
