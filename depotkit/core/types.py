"""Core type definitions for depotkit."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntFlag, StrEnum
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_serializer, field_validator

from depotkit.core.errors import InvalidArgument

DIRECTORY_FILE_ID = -1


class ConnectionProtocol(StrEnum):
    """Protocol a content server speaks."""
    HTTP = "http"
    HTTPS = "https"


class NodeAttributes(IntFlag):
    """Manifest node attribute flags."""
    NONE = 0
    USER_CONFIGURATION_FILE = 0x1
    LAUNCH_FILE = 0x2
    ENCRYPTED_FILE = 0x100
    LOCKED_FILE = 0x800
    NO_CACHE_FILE = 0x2000
    VERSIONED_USER_CONFIGURATION_FILE = 0x4000


class Server(BaseModel):
    """Content server descriptor."""
    host: str = Field(..., description="Server host name or address")
    vhost: str | None = Field(None, description="Virtual host used in request URLs")
    port: int = Field(80, description="Server port")
    protocol: ConnectionProtocol = Field(ConnectionProtocol.HTTP, description="HTTP or HTTPS")
    use_as_proxy: bool = Field(False, description="Server rewrites requests for other hosts")
    proxy_request_path_template: str | None = Field(
        None, description="Path template with %host% and %path% placeholders"
    )

    model_config = ConfigDict(frozen=True)

    @property
    def request_host(self) -> str:
        """Host name placed in request URLs."""
        return self.vhost or self.host

    @property
    def scheme(self) -> str:
        return self.protocol.value

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class ServerCandidate(BaseModel):
    """A server reported by a directory service, with its load."""
    server: Server
    load: float = Field(..., description="Reported load, lower is better")

    model_config = ConfigDict(frozen=True)


class ChunkRef(BaseModel):
    """Content-addressed chunk reference inside a manifest file node."""
    chunk_id: bytes | None = Field(None, description="Content address (SHA-1 of chunk data)")
    checksum: int = Field(0, description="Checksum of the processed chunk")
    offset: int = Field(0, description="Offset of the chunk in its file")
    compressed_length: int = Field(0, description="Length on the wire, 0 if unknown")
    uncompressed_length: int = Field(0, description="Length after processing")

    @field_validator("chunk_id", mode="before")
    @classmethod
    def parse_chunk_id(cls, v: Any) -> Any:
        """Accept hex strings for the chunk id."""
        if isinstance(v, str):
            return bytes.fromhex(v)
        return v

    @field_serializer("chunk_id")
    def serialize_chunk_id(self, v: bytes | None) -> str | None:
        return v.hex() if v is not None else None

    @property
    def chunk_id_hex(self) -> str | None:
        """Lower-case hex encoding of the chunk id."""
        return self.chunk_id.hex() if self.chunk_id is not None else None


class ManifestNode(BaseModel):
    """A file or directory entry in a depot manifest.

    Directories carry a file id of -1. File ids are only stable within one
    manifest version; nodes are matched across versions by full name.
    """
    file_id: int = Field(..., description="File id, -1 for directories")
    full_name: str = Field(..., description="Path relative to the depot root")
    size_or_count: int = Field(0, description="File size in bytes, or child count")
    attributes: int = Field(0, description="NodeAttributes flags")
    chunks: list[ChunkRef] = Field(default_factory=list, description="Chunk references")

    @property
    def is_directory(self) -> bool:
        return self.file_id == DIRECTORY_FILE_ID

    @property
    def is_user_config(self) -> bool:
        return bool(self.attributes & NodeAttributes.USER_CONFIGURATION_FILE)

    @property
    def is_encrypted(self) -> bool:
        return bool(self.attributes & NodeAttributes.ENCRYPTED_FILE)

    @property
    def name_key(self) -> str:
        """Case-insensitive identity used to match nodes across manifests."""
        return self.full_name.casefold()

    @property
    def relative_path(self) -> PurePosixPath:
        """Full name with backslash separators normalised."""
        return PurePosixPath(self.full_name.replace("\\", "/"))

    def local_path(self, install_dir: Path) -> Path:
        """Destination of this node under an install directory.

        Raises:
            InvalidArgument: If the name is absolute or leaves the install directory
        """
        if self.relative_path.is_absolute() or PureWindowsPath(self.full_name).anchor:
            raise InvalidArgument(f"Node name is not relative: {self.full_name!r}")

        path = install_dir.joinpath(*self.relative_path.parts)
        if not path.resolve().is_relative_to(install_dir.resolve()):
            raise InvalidArgument(f"Node name escapes the install directory: {self.full_name!r}")
        return path


class Manifest(BaseModel):
    """Ordered listing of a depot's nodes at one version."""
    depot_id: int = Field(..., description="Depot id")
    version: int = Field(0, description="Depot version or manifest id")
    nodes: list[ManifestNode] = Field(default_factory=list, description="Flat node list")
    filenames_encrypted: bool = Field(False, description="Node names are still encrypted")

    _by_id: dict[int, ManifestNode] | None = PrivateAttr(default=None)
    _by_name: dict[str, ManifestNode] | None = PrivateAttr(default=None)

    def files(self) -> list[ManifestNode]:
        """All file nodes, in manifest order."""
        return [node for node in self.nodes if not node.is_directory]

    def directories(self) -> list[ManifestNode]:
        """All directory nodes, in manifest order."""
        return [node for node in self.nodes if node.is_directory]

    def find_by_id(self, file_id: int) -> ManifestNode | None:
        """First node with the given file id."""
        if self._by_id is None:
            self._by_id = {}
            for node in self.nodes:
                self._by_id.setdefault(node.file_id, node)
        return self._by_id.get(file_id)

    def find_by_name(self, full_name: str) -> ManifestNode | None:
        """First node whose full name matches case-insensitively."""
        if self._by_name is None:
            self._by_name = {}
            for node in self.nodes:
                self._by_name.setdefault(node.name_key, node)
        return self._by_name.get(full_name.casefold())

    def invalidate_indexes(self) -> None:
        """Drop lookup indexes after nodes were changed in place."""
        self._by_id = None
        self._by_name = None


@dataclass
class DepotChunk:
    """Chunk bytes returned by the CDN transport.

    Attributes:
        chunk: Reference the bytes belong to
        data: Processed bytes when a depot key was supplied, raw bytes otherwise
        processed: True if data was decrypted and verified
    """

    chunk: ChunkRef
    data: bytes
    processed: bool = False


class AppInfo(BaseModel):
    """Catalog metadata for a depot."""
    app_id: int = Field(..., description="Depot/app id")
    name: str = Field(..., description="Display name")
    current_version: int = Field(..., description="Latest version published")
    server_folder: str | None = Field(None, description="Install sub-folder, if any")

    model_config = ConfigDict(extra="allow")


class Subscription(BaseModel):
    """Catalog subscription listing owned apps."""
    sub_id: int = Field(..., description="Subscription id")
    app_ids: list[int] = Field(default_factory=list, description="Apps granted")

    def owns_app(self, app_id: int) -> bool:
        return app_id in self.app_ids
