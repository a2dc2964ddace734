"""Pytest configuration and shared fixtures for depotkit tests."""

from __future__ import annotations

import io
import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from depotkit.core.directory import ServerDirectory
from depotkit.core.storage import DownloadPriority, StorageGateway
from depotkit.core.types import (
    AppInfo,
    Manifest,
    ManifestNode,
    NodeAttributes,
    Server,
    ServerCandidate,
    Subscription,
)

DEPOT_ID = 201


def file_node(file_id: int, name: str, size: int = 10, attributes: int = 0) -> ManifestNode:
    """Create a file node."""
    return ManifestNode(file_id=file_id, full_name=name, size_or_count=size, attributes=attributes)


def dir_node(name: str) -> ManifestNode:
    """Create a directory node."""
    return ManifestNode(file_id=-1, full_name=name, size_or_count=0)


def zip_payload(*entries: bytes) -> bytes:
    """Zip each payload as a separate archive entry."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for idx, entry in enumerate(entries):
            archive.writestr(f"z{idx}", entry)
    return buffer.getvalue()


class FakeDirectoryClient:
    """Directory client answering from a per-endpoint table."""

    def __init__(self, answers: dict[str, list[ServerCandidate] | None | Exception], log: list[str]):
        self.answers = answers
        self.log = log
        self.endpoint: str | None = None
        self.disconnected = False

    def connect(self, endpoint: str) -> None:
        self.endpoint = endpoint
        answer = self.answers.get(endpoint)
        if isinstance(answer, Exception):
            raise answer

    def get_content_server_list(
        self, depot_id: int, version: int, cell_id: int
    ) -> list[ServerCandidate] | None:
        assert self.endpoint is not None
        self.log.append(self.endpoint)
        answer = self.answers.get(self.endpoint)
        assert not isinstance(answer, Exception)
        return answer

    def disconnect(self) -> None:
        self.disconnected = True


class FakeStorageSession:
    """Storage session serving manifests, diffs and files from memory."""

    def __init__(self, backend: FakeContentServer, depot_id: int, version: int):
        self.backend = backend
        self.depot_id = depot_id
        self.version = version
        self.closed = False

    def download_manifest(self) -> Manifest | None:
        return self.backend.manifests.get(self.version)

    def download_updates(self, from_version: int) -> list[int] | None:
        self.backend.diff_calls.append((from_version, self.version))
        return self.backend.updates.get((from_version, self.version))

    def download_checksums(self) -> bytes | None:
        return self.backend.checksums.get(self.version)

    def download_file(self, node: ManifestNode, priority: DownloadPriority) -> bytes:
        self.backend.downloads.append(node.full_name)
        if node.full_name in self.backend.failing_files:
            raise ConnectionError(f"transfer of {node.full_name} reset")
        return self.backend.files.get(node.full_name, f"content:{node.full_name}".encode())

    def close(self) -> None:
        self.closed = True


class FakeContentServer:
    """Shared state behind fake legacy content server clients."""

    def __init__(self) -> None:
        self.manifests: dict[int, Manifest] = {}
        self.updates: dict[tuple[int, int], list[int] | None] = {}
        self.checksums: dict[int, bytes] = {}
        self.files: dict[str, bytes] = {}
        self.failing_files: set[str] = set()
        self.diff_calls: list[tuple[int, int]] = []
        self.downloads: list[str] = []
        self.connections = 0
        self.disconnections = 0
        self.sessions: list[FakeStorageSession] = []

    def client(self) -> FakeContentServerClient:
        return FakeContentServerClient(self)


class FakeContentServerClient:
    """Legacy content server client bound to a FakeContentServer."""

    def __init__(self, backend: FakeContentServer):
        self.backend = backend
        self.server: Server | None = None

    def connect(self, server: Server) -> None:
        self.server = server
        self.backend.connections += 1

    def open_storage(self, depot_id: int, version: int, cell_id: int | None = None) -> FakeStorageSession:
        session = FakeStorageSession(self.backend, depot_id, version)
        self.backend.sessions.append(session)
        return session

    def disconnect(self) -> None:
        self.backend.disconnections += 1


class FakeCatalog:
    """Catalog holding apps and subscriptions in dicts."""

    def __init__(self) -> None:
        self.apps: dict[int, AppInfo] = {}
        self.subscriptions: dict[int, Subscription] = {}

    def get_app(self, app_id: int) -> AppInfo | None:
        return self.apps.get(app_id)

    def get_subscription(self, sub_id: int) -> Subscription | None:
        return self.subscriptions.get(sub_id)


@pytest.fixture
def content_server() -> Server:
    """A plain HTTP content server."""
    return Server(host="cs1.example.com", port=27030)


@pytest.fixture
def directory_log() -> list[str]:
    """Endpoints queried by fake directory clients, in order."""
    return []


@pytest.fixture
def directory_answers(content_server: Server) -> dict[str, list[ServerCandidate] | None | Exception]:
    """Directory answers keyed by endpoint."""
    return {"csds1.example.com:27030": [ServerCandidate(server=content_server, load=1.0)]}


@pytest.fixture
def directory_factory(
    directory_answers: dict[str, list[ServerCandidate] | None | Exception],
    directory_log: list[str],
) -> Callable[[], FakeDirectoryClient]:
    """Factory creating fake directory clients."""
    return lambda: FakeDirectoryClient(directory_answers, directory_log)


@pytest.fixture
def server_directory(
    directory_answers: dict[str, list[ServerCandidate] | None | Exception],
    directory_factory: Callable[[], FakeDirectoryClient],
) -> ServerDirectory:
    """Server directory over the fake directory endpoints."""
    return ServerDirectory(list(directory_answers), directory_factory, cell_id=3)


@pytest.fixture
def source_manifest() -> Manifest:
    """Manifest of installed version 2."""
    return Manifest(
        depot_id=DEPOT_ID,
        version=2,
        nodes=[
            dir_node("bin"),
            dir_node("data"),
            file_node(1, "bin/game.exe", 100),
            file_node(2, "data/level1.pak", 200),
            file_node(3, "data/old.pak", 50),
            file_node(4, "config.cfg", 10, NodeAttributes.USER_CONFIGURATION_FILE),
        ],
    )


@pytest.fixture
def target_manifest() -> Manifest:
    """Manifest of target version 3.

    game.exe changed case, old.pak was removed, extra/new.pak was added.
    """
    return Manifest(
        depot_id=DEPOT_ID,
        version=3,
        nodes=[
            dir_node("bin"),
            dir_node("data"),
            dir_node("data/extra"),
            file_node(10, "BIN/Game.exe", 120),
            file_node(11, "data/level1.pak", 200),
            file_node(12, "config.cfg", 10, NodeAttributes.USER_CONFIGURATION_FILE),
            file_node(13, "data/extra/new.pak", 70),
        ],
    )


@pytest.fixture
def fake_content_server(source_manifest: Manifest, target_manifest: Manifest) -> FakeContentServer:
    """Legacy content server holding versions 2 and 3."""
    backend = FakeContentServer()
    backend.manifests = {2: source_manifest, 3: target_manifest}
    backend.updates = {(2, 3): [1]}
    return backend


@pytest.fixture
def gateway(server_directory: ServerDirectory, fake_content_server: FakeContentServer) -> StorageGateway:
    """Storage gateway over the fake directory and content server."""
    return StorageGateway(server_directory, fake_content_server.client, cell_id=3)


@pytest.fixture
def catalog() -> FakeCatalog:
    """Catalog listing the test depot at version 3, owned by subscription 0."""
    fake = FakeCatalog()
    fake.apps[DEPOT_ID] = AppInfo(app_id=DEPOT_ID, name="Test Depot", current_version=3)
    fake.subscriptions[0] = Subscription(sub_id=0, app_ids=[DEPOT_ID])
    return fake


@pytest.fixture
def install_root(tmp_path: Path) -> Path:
    """Empty install root."""
    root = tmp_path / "install"
    root.mkdir()
    return root


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest settings."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    """Add the unit marker to tests not marked otherwise."""
    for item in items:
        if not any(marker.name in ["integration", "slow"] for marker in item.iter_markers()):
            item.add_marker(pytest.mark.unit)
