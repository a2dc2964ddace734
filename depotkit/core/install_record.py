"""Persisted installed-version bookkeeping.

Records which version of each depot is installed under an install root.
The record is read once at the start of an install run and written once
after a successful run, using atomic writes (temp file + os.replace).
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import structlog

logger = structlog.get_logger()


class InstallRecord:
    """Installed depot versions for one install root.

    Args:
        install_path: Root installation directory
    """

    RECORD_FILENAME = ".install_record.json"

    def __init__(self, install_path: Path) -> None:
        self.install_path = install_path
        self.versions: dict[int, int] = {}
        self._dirty = False
        self._load()

    @property
    def record_path(self) -> Path:
        """Path to the record file."""
        return self.install_path / self.RECORD_FILENAME

    def _load(self) -> None:
        if not self.record_path.exists():
            return

        try:
            raw = json.loads(self.record_path.read_text())
            versions = {int(k): int(v) for k, v in raw.get("versions", {}).items()}
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning("install_record_unreadable", path=str(self.record_path), error=str(e))
            return

        self.versions = versions

    def get_app_version(self, depot_id: int) -> int | None:
        """Installed version of a depot, or None if not installed."""
        return self.versions.get(depot_id)

    def set_app_version(self, depot_id: int, version: int) -> None:
        """Record the installed version of a depot."""
        self.versions[depot_id] = version
        self._dirty = True

    def flush(self) -> None:
        """Persist the record if it changed."""
        if not self._dirty:
            return

        self.install_path.mkdir(parents=True, exist_ok=True)
        tmp_path = self.record_path.with_suffix(".json.tmp")

        data = {"versions": {str(k): v for k, v in sorted(self.versions.items())}}
        tmp_path.write_text(json.dumps(data, indent=2))
        os.replace(tmp_path, self.record_path)

        self._dirty = False
        logger.debug("install_record_saved", path=str(self.record_path))

    def __enter__(self) -> InstallRecord:
        return self

    def __exit__(self, exc_type: object, *args: object) -> None:
        if exc_type is None:
            self.flush()
