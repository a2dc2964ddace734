"""Incremental update planning for depot installs.

Given the installed version and the target version of a depot, the planner
decides between three update modes and computes which files to fetch:

- full: nothing is installed, every file of the target manifest is fetched
- reacquire: the target version is installed, only missing files are fetched
- partial: an older version is installed; files changed according to the
  server's diff, files new in the target manifest, and missing files are
  fetched

Nodes are matched across manifests by case-insensitive full name. File ids
are only meaningful inside the manifest they came from. Files absent from
the target manifest are never deleted locally.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from depotkit.core.errors import DiffUnavailable, InvalidArgument, ManifestUnavailable
from depotkit.core.storage import StorageGateway
from depotkit.core.types import Manifest, ManifestNode

logger = structlog.get_logger()


class UpdateMode(enum.Enum):
    """How a depot install is brought up to date."""

    full = "full"
    partial = "partial"
    reacquire = "reacquire"


def select_mode(installed_version: int, target_version: int) -> UpdateMode:
    """Pick the update mode from version bookkeeping.

    Version 0 means no install record exists.
    """
    if installed_version == 0:
        return UpdateMode.full
    if installed_version == target_version:
        return UpdateMode.reacquire
    return UpdateMode.partial


@dataclass(frozen=True)
class UpdateSet:
    """Files and directories to materialize for one depot.

    Attributes:
        mode: Mode the plan was built with, after any downgrade
        nodes_to_fetch: File nodes in fetch order, unique by full name
        directories_to_create: Directory nodes of the target manifest
        dropped_count: Changed ids that resolved to no target node
        diff_unavailable: The diff could not be obtained and full mode was used
    """

    mode: UpdateMode
    nodes_to_fetch: tuple[ManifestNode, ...]
    directories_to_create: tuple[ManifestNode, ...]
    dropped_count: int = 0
    diff_unavailable: bool = False

    @property
    def total_bytes(self) -> int:
        return sum(node.size_or_count for node in self.nodes_to_fetch)

    def weighted(self) -> Iterator[tuple[float, ManifestNode]]:
        """Yield each node with the percentage completed before it starts.

        Percentages are weighted by file size over the whole plan, so the
        first node always reports 0.
        """
        total = self.total_bytes
        done = 0
        for node in self.nodes_to_fetch:
            percent = (done / total) * 100.0 if total else 0.0
            yield percent, node
            done += node.size_or_count


def _unique_files(nodes: Iterable[ManifestNode | None]) -> tuple[ManifestNode, ...]:
    seen: set[str] = set()
    result: list[ManifestNode] = []
    for node in nodes:
        if node is None or node.is_directory or node.name_key in seen:
            continue
        seen.add(node.name_key)
        result.append(node)
    return tuple(result)


def missing_files(manifest: Manifest, install_dir: Path) -> list[ManifestNode]:
    """File nodes whose destination does not exist.

    Presence only; sizes and contents are not checked.
    """
    return [
        node for node in manifest.files()
        if not node.local_path(install_dir).exists()
    ]


def new_files(source: Manifest, target: Manifest) -> list[ManifestNode]:
    """File nodes of the target manifest with no same-named node in the source."""
    return [
        node for node in target.files()
        if source.find_by_name(node.full_name) is None
    ]


def resolve_changes(
    changed_ids: Sequence[int], source: Manifest, target: Manifest
) -> tuple[list[ManifestNode], int]:
    """Translate changed source file ids into target nodes.

    Each id is looked up in the source manifest, then its full name is
    looked up in the target manifest. Ids that fail either lookup, or whose
    name is a directory in the target, are dropped; a file removed in the
    target is left on disk.

    Returns:
        Resolved target nodes and the number of dropped ids
    """
    resolved: list[ManifestNode] = []
    dropped = 0

    for file_id in changed_ids:
        old_node = source.find_by_id(file_id)
        new_node = target.find_by_name(old_node.full_name) if old_node is not None else None

        if new_node is None or new_node.is_directory:
            dropped += 1
            continue
        resolved.append(new_node)

    return resolved, dropped


def build_update_set(
    mode: UpdateMode,
    target: Manifest,
    install_dir: Path,
    source: Manifest | None = None,
    changed_ids: Sequence[int] | None = None,
    diff_unavailable: bool = False,
) -> UpdateSet:
    """Compute the update set for a mode.

    Args:
        mode: Update mode
        target: Manifest of the target version
        install_dir: Directory the depot is installed in
        source: Manifest of the installed version, partial mode only
        changed_ids: Changed source file ids, partial mode only
        diff_unavailable: Recorded on the result

    Returns:
        UpdateSet for the target manifest

    Raises:
        InvalidArgument: If partial mode lacks a source manifest or diff
    """
    directories = tuple(target.directories())
    dropped = 0

    if mode is UpdateMode.full:
        nodes = _unique_files(target.files())

    elif mode is UpdateMode.reacquire:
        nodes = _unique_files(missing_files(target, install_dir))
        logger.debug("planner_reacquire", missing=len(nodes))

    else:
        if source is None or changed_ids is None:
            raise InvalidArgument("Partial updates need a source manifest and a diff")

        updated, dropped = resolve_changes(changed_ids, source, target)
        added = new_files(source, target)
        missing = missing_files(target, install_dir)

        logger.debug(
            "planner_partial",
            updated=len(updated),
            added=len(added),
            missing=len(missing),
        )
        if dropped:
            logger.info("planner_dropped_changes", dropped=dropped)

        nodes = _unique_files([*updated, *added, *missing])

    return UpdateSet(
        mode=mode,
        nodes_to_fetch=nodes,
        directories_to_create=directories,
        dropped_count=dropped,
        diff_unavailable=diff_unavailable,
    )


class UpdatePlanner:
    """Fetches the manifests and diff a plan needs and builds the update set.

    Args:
        gateway: Legacy storage gateway used for manifests and diffs
        full_on_missing_diff: Fall back to a full update when the diff is
            unavailable instead of raising DiffUnavailable
    """

    def __init__(self, gateway: StorageGateway, full_on_missing_diff: bool = True):
        self.gateway = gateway
        self.full_on_missing_diff = full_on_missing_diff

    def plan(
        self,
        depot_id: int,
        installed_version: int,
        target_version: int,
        install_dir: Path,
    ) -> UpdateSet:
        """Plan the update of one depot.

        Partial updates fall back to full updates when the installed
        version's manifest or the diff cannot be obtained.

        Raises:
            ManifestUnavailable: If the target manifest cannot be obtained
            DiffUnavailable: If the diff is unavailable and fallback is disabled
        """
        mode = select_mode(installed_version, target_version)
        source: Manifest | None = None
        changed_ids: list[int] | None = None
        diff_unavailable = False

        if mode is UpdateMode.partial:
            logger.debug("planner_fetch_manifest", depot_id=depot_id, version=installed_version)
            source_result = self.gateway.fetch_manifest(depot_id, installed_version)

            if source_result.is_ok:
                source = source_result.unwrap()
            else:
                logger.warning(
                    "planner_source_manifest_unavailable",
                    depot_id=depot_id,
                    version=installed_version,
                    reason=source_result.reason,
                )
                mode = UpdateMode.full

        logger.debug("planner_fetch_manifest", depot_id=depot_id, version=target_version)
        target_result = self.gateway.fetch_manifest(depot_id, target_version)

        if not target_result.is_ok:
            raise ManifestUnavailable(
                f"Unable to download manifest for depot {depot_id}, version {target_version}"
            )
        target = target_result.unwrap()

        if mode is UpdateMode.partial:
            logger.debug(
                "planner_fetch_diff",
                depot_id=depot_id,
                from_version=installed_version,
                to_version=target_version,
            )
            diff_result = self.gateway.fetch_updates(depot_id, installed_version, target_version)

            if diff_result.is_ok:
                changed_ids = diff_result.unwrap()
            else:
                logger.warning(
                    "planner_diff_unavailable",
                    depot_id=depot_id,
                    from_version=installed_version,
                    to_version=target_version,
                    reason=diff_result.reason,
                )
                if not self.full_on_missing_diff:
                    raise DiffUnavailable(
                        f"Unable to diff depot {depot_id} from {installed_version} to {target_version}"
                    )
                mode = UpdateMode.full
                diff_unavailable = True

        update_set = build_update_set(
            mode,
            target,
            install_dir,
            source=source,
            changed_ids=changed_ids,
            diff_unavailable=diff_unavailable,
        )

        logger.info(
            "planner_update_set",
            depot_id=depot_id,
            mode=update_set.mode.value,
            files=len(update_set.nodes_to_fetch),
            directories=len(update_set.directories_to_create),
            bytes=update_set.total_bytes,
        )
        return update_set
