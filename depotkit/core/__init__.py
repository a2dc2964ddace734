"""Core functionality for depotkit.

This module provides the content pipeline:
- Configuration and error types
- CDN transport for manifests and chunks
- Content server selection
- Update planning and file materialization
- The install flow tying them together
"""

from depotkit.core.cdn import CDNClient
from depotkit.core.config import AppConfig, DirectoryConfig, TransportConfig
from depotkit.core.directory import ServerDirectory
from depotkit.core.installer import DepotInstaller, InstallResult, InstallStatus
from depotkit.core.materializer import FileMaterializer, MaterializeReport
from depotkit.core.planner import UpdateMode, UpdatePlanner, UpdateSet
from depotkit.core.result import Result, ResultStatus
from depotkit.core.storage import StorageGateway

__all__ = [
    # Config
    "AppConfig",
    "DirectoryConfig",
    "TransportConfig",
    # Transport
    "CDNClient",
    "ServerDirectory",
    "StorageGateway",
    # Planning
    "UpdateMode",
    "UpdatePlanner",
    "UpdateSet",
    "FileMaterializer",
    "MaterializeReport",
    # Install
    "DepotInstaller",
    "InstallResult",
    "InstallStatus",
    # Results
    "Result",
    "ResultStatus",
]
