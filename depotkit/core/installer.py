"""Top-level depot install flow."""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import structlog
from rich.console import Console

from depotkit.core.catalog import DEFAULT_SUBSCRIPTION_ID, Catalog
from depotkit.core.config import AppConfig
from depotkit.core.directory import DirectoryClient
from depotkit.core.errors import (
    DepotError,
    DiffUnavailable,
    ManifestUnavailable,
    MaterializeError,
    NotEntitled,
    ResourceUnavailable,
    StaleCatalog,
)
from depotkit.core.install_record import InstallRecord
from depotkit.core.materializer import FileMaterializer, MaterializeReport
from depotkit.core.planner import UpdatePlanner, UpdateSet
from depotkit.core.storage import ContentServerClient, StorageGateway
from depotkit.core.types import AppInfo

logger = structlog.get_logger()


class InstallStatus(enum.Enum):
    """Outcome of installing one depot."""

    installed = "installed"
    unknown_app = "unknown_app"
    stale_catalog = "stale_catalog"
    not_entitled = "not_entitled"
    no_server = "no_server"
    manifest_unavailable = "manifest_unavailable"
    diff_unavailable = "diff_unavailable"
    failed = "failed"


# Most specific first
_ERROR_STATUS: list[tuple[type[DepotError], InstallStatus]] = [
    (StaleCatalog, InstallStatus.stale_catalog),
    (NotEntitled, InstallStatus.not_entitled),
    (ManifestUnavailable, InstallStatus.manifest_unavailable),
    (ResourceUnavailable, InstallStatus.no_server),
    (DiffUnavailable, InstallStatus.diff_unavailable),
]


def status_for(error: DepotError) -> InstallStatus:
    """Install status reported for an error."""
    for error_type, status in _ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return InstallStatus.failed


@dataclass
class InstallResult:
    """Result of a depot install run."""

    depot_id: int
    status: InstallStatus
    installed_version: int = 0
    target_version: int | None = None
    update_set: UpdateSet | None = None
    report: MaterializeReport | None = None
    error: DepotError | None = None

    @property
    def success(self) -> bool:
        return self.status is InstallStatus.installed


class DepotInstaller:
    """Brings a depot installation up to the catalog's current version.

    Args:
        catalog: Catalog providing depot metadata and ownership
        gateway: Legacy storage gateway
        install_root: Root directory holding installs and the install record
        planner: Update planner, built from the gateway by default
        console: Optional console for per-file progress lines
        subscription_id: Subscription checked for ownership
    """

    def __init__(
        self,
        catalog: Catalog,
        gateway: StorageGateway,
        install_root: Path,
        planner: UpdatePlanner | None = None,
        console: Console | None = None,
        subscription_id: int = DEFAULT_SUBSCRIPTION_ID,
    ):
        self.catalog = catalog
        self.gateway = gateway
        self.install_root = install_root
        self.planner = planner or UpdatePlanner(gateway)
        self.console = console
        self.subscription_id = subscription_id

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        catalog: Catalog,
        directory_client_factory: Callable[[], DirectoryClient],
        client_factory: Callable[[], ContentServerClient],
        console: Console | None = None,
    ) -> DepotInstaller:
        """Create an installer for the configured install root and directory.

        Args:
            config: Application configuration
            catalog: Catalog providing depot metadata and ownership
            directory_client_factory: Creates directory service clients
            client_factory: Creates legacy content server clients
            console: Optional console for per-file progress lines
        """
        gateway = StorageGateway.from_config(config.directory, directory_client_factory, client_factory)
        return cls(catalog, gateway, config.install_dir, console=console)

    def install_dir_for(self, app: AppInfo) -> Path:
        """Directory a depot's files are written to."""
        if app.server_folder:
            return self.install_root / app.server_folder
        return self.install_root

    def _check_catalog(self, installed_version: int, app: AppInfo) -> None:
        if installed_version > app.current_version:
            raise StaleCatalog(
                f"{app.name} (installed: {installed_version}, latest: {app.current_version}) "
                f"is newer than the catalog",
                installed=installed_version,
                latest=app.current_version,
            )

    def _check_entitlement(self, depot_id: int) -> None:
        subscription = self.catalog.get_subscription(self.subscription_id)
        if subscription is None or not subscription.owns_app(depot_id):
            raise NotEntitled(
                f"Depot {depot_id} is not available on subscription {self.subscription_id}"
            )

    def _materialize(self, depot_id: int, version: int, app: AppInfo, update_set: UpdateSet) -> MaterializeReport:
        materializer = FileMaterializer(self.install_dir_for(app), console=self.console)
        try:
            with self.gateway.open_session(depot_id, version) as session:
                return materializer.materialize(update_set, session)
        except DepotError:
            raise
        except Exception as e:
            raise MaterializeError(f"Unable to install: {e}") from e

    def install(self, depot_id: int) -> InstallResult:
        """Install or update one depot.

        The installed version is only recorded after every planned file was
        materialized.

        Args:
            depot_id: Depot to install

        Returns:
            InstallResult describing the outcome
        """
        if not self.install_root.exists():
            logger.debug("installer_create_root", path=str(self.install_root))
            self.install_root.mkdir(parents=True, exist_ok=True)

        record = InstallRecord(self.install_root)
        installed_version = record.get_app_version(depot_id) or 0
        result = InstallResult(depot_id=depot_id, status=InstallStatus.failed, installed_version=installed_version)

        app = self.catalog.get_app(depot_id)
        if app is None:
            logger.error("installer_unknown_app", depot_id=depot_id)
            result.status = InstallStatus.unknown_app
            return result

        target_version = app.current_version
        result.target_version = target_version
        log = logger.bind(depot_id=depot_id, name=app.name)

        try:
            self._check_catalog(installed_version, app)
            self._check_entitlement(depot_id)
            self.gateway.resolve_server(depot_id, target_version)

            if installed_version == target_version:
                log.info("installer_checking")
            else:
                log.info("installer_updating", from_version=installed_version, to_version=target_version)

            update_set = self.planner.plan(
                depot_id, installed_version, target_version, self.install_dir_for(app)
            )
            result.update_set = update_set
            result.report = self._materialize(depot_id, target_version, app, update_set)

        except DepotError as e:
            result.status = status_for(e)
            result.error = e
            log.error("installer_failed", status=result.status.value, error=str(e))
            return result

        record.set_app_version(depot_id, target_version)
        record.flush()

        result.status = InstallStatus.installed
        log.info("installer_complete", version=target_version)
        return result
