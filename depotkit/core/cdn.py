"""Content server client for depot manifests and chunks."""

from __future__ import annotations

import io
import time
import zipfile
from collections.abc import Iterator
from contextlib import contextmanager

import httpx
import structlog

from depotkit.core.buffers import BufferPool
from depotkit.core.config import TransportConfig
from depotkit.core.errors import (
    FetchTimeout,
    IntegrityViolation,
    InvalidArgument,
    ProtocolViolation,
    RequestFailed,
)
from depotkit.core.types import ChunkRef, DepotChunk, Manifest, Server
from depotkit.formats.chunk import ChunkProcessor
from depotkit.formats.manifest import JSONManifestCodec, ManifestCodec

logger = structlog.get_logger()

MANIFEST_VERSION = 5


class CDNClient:
    """Downloads depot manifests and chunks from content servers.

    Every fetch runs under two cascading deadlines: the header timeout
    bounds the wait for response headers, after which the body timeout
    bounds reading the whole body. Bodies are read into pooled buffers
    sized to the advertised Content-Length.
    """

    def __init__(
        self,
        config: TransportConfig | None = None,
        manifest_codec: ManifestCodec | None = None,
        chunk_processor: ChunkProcessor | None = None,
        buffer_pool: BufferPool | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize CDN client.

        Args:
            config: Transport configuration (timeouts, TLS)
            manifest_codec: Manifest deserializer, JSON by default
            chunk_processor: Chunk decryptor used when a depot key is given
            buffer_pool: Pool for transfer buffers
            transport: Optional httpx transport, used by tests
        """
        self.config = config or TransportConfig()
        self.manifest_codec = manifest_codec or JSONManifestCodec()
        self.chunk_processor = chunk_processor
        self.buffer_pool = buffer_pool or BufferPool()
        self._transport = transport
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.config.header_timeout),
                verify=self.config.verify_ssl,
                headers={"User-Agent": self.config.user_agent},
                transport=self._transport,
            )
        return self._client

    @staticmethod
    def build_url(server: Server, command: str, proxy_server: Server | None = None) -> httpx.URL:
        """Build the request URL for a command, rewritten through a proxy.

        Args:
            server: Content server holding the content
            command: Request path without a leading slash
            proxy_server: Optional server that rewrites requests

        Returns:
            URL to request
        """
        url = httpx.URL(
            scheme=server.scheme,
            host=server.request_host,
            port=server.port,
            path=f"/{command}",
        )

        if (
            proxy_server is not None
            and proxy_server.use_as_proxy
            and proxy_server.proxy_request_path_template is not None
        ):
            rewritten = (
                proxy_server.proxy_request_path_template
                .replace("%host%", url.host)
                .replace("%path%", url.path)
            )
            target = httpx.URL(rewritten)
            path = target.path if target.path.startswith("/") else f"/{target.path}"

            components: dict[str, object] = {
                "scheme": proxy_server.scheme,
                "host": proxy_server.request_host,
                "port": proxy_server.port,
                "path": path,
            }
            if target.query:
                components["query"] = target.query
            url = httpx.URL(**components)  # type: ignore[arg-type]

        return url

    @property
    def body_timeout(self) -> httpx.Timeout:
        """Timeouts applied once response headers were received."""
        return httpx.Timeout(self.config.header_timeout, read=self.config.body_timeout)

    @contextmanager
    def _get(self, url: httpx.URL) -> Iterator[httpx.Response]:
        """Send a GET and yield the response once headers are received.

        Headers are awaited under the client's header timeout. Body reads
        then run under the body timeout; the transport reads the request's
        timeout extension lazily when the body is first iterated.
        """
        request = self.client.build_request("GET", url)
        response = self.client.send(request, stream=True)
        try:
            if not response.is_success:
                raise RequestFailed(
                    f"Response status code does not indicate success: "
                    f"{response.status_code} ({response.reason_phrase}).",
                    status_code=response.status_code,
                    reason=response.reason_phrase,
                    url=str(url),
                )
            request.extensions["timeout"] = self.body_timeout.as_dict()
            yield response
        finally:
            response.close()

    @staticmethod
    def _content_length(response: httpx.Response) -> int:
        value = response.headers.get("Content-Length")
        if value is None:
            raise ProtocolViolation("Response does not have Content-Length")
        try:
            length = int(value)
        except ValueError as e:
            raise ProtocolViolation(f"Invalid Content-Length: {value!r}") from e
        if length < 0:
            raise ProtocolViolation(f"Invalid Content-Length: {value!r}")
        return length

    def _read_body(self, response: httpx.Response, view: memoryview, deadline: float) -> None:
        """Stream the response body into a view of exactly the advertised size.

        Raises:
            FetchTimeout: If the body deadline passes or a read stalls past it
            IntegrityViolation: If the body is shorter or longer than advertised
        """
        expected = len(view)
        position = 0

        try:
            for piece in response.iter_raw():
                if time.monotonic() > deadline:
                    raise FetchTimeout(
                        f"Response body not read within {self.config.body_timeout}s"
                    )
                end = position + len(piece)
                if end > expected:
                    raise IntegrityViolation(
                        f"Response body exceeds Content-Length (expected {expected})",
                        expected=expected,
                        actual=end,
                    )
                view[position:end] = piece
                position = end
        except httpx.ReadTimeout as e:
            raise FetchTimeout(
                f"Response body not read within {self.config.body_timeout}s"
            ) from e

        if position != expected:
            raise IntegrityViolation(
                f"Length mismatch after download (was {position}, but should be {expected})",
                expected=expected,
                actual=position,
            )

    def _unpack_manifest(self, data: memoryview) -> bytes:
        """Extract the single entry of a zipped manifest."""
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                entries = archive.infolist()
                if len(entries) != 1:
                    logger.error("cdn_manifest_entry_count", entries=len(entries))
                    raise ProtocolViolation(
                        f"Expected the manifest archive to contain one file, found {len(entries)}"
                    )
                return archive.read(entries[0])
        except zipfile.BadZipFile as e:
            raise ProtocolViolation(f"Manifest archive is corrupt: {e}") from e

    def fetch_manifest(
        self,
        depot_id: int,
        manifest_id: int,
        manifest_request_code: int,
        server: Server,
        depot_key: bytes | None = None,
        proxy_server: Server | None = None,
    ) -> Manifest:
        """Download a depot manifest.

        Filenames are decrypted in place when a depot key is supplied.

        Args:
            depot_id: Depot being accessed
            manifest_id: Manifest to download
            manifest_request_code: Request code, omitted from the URL when 0
            server: Content server to request from
            depot_key: Optional depot decryption key
            proxy_server: Optional proxy server rewriting the request

        Returns:
            Parsed manifest

        Raises:
            RequestFailed: If the response status is not a success
            ProtocolViolation: If Content-Length is missing or the archive is malformed
            IntegrityViolation: If fewer bytes than advertised are received
        """
        if manifest_request_code > 0:
            command = f"depot/{depot_id}/manifest/{manifest_id}/{MANIFEST_VERSION}/{manifest_request_code}"
        else:
            command = f"depot/{depot_id}/manifest/{manifest_id}/{MANIFEST_VERSION}"

        url = self.build_url(server, command, proxy_server)

        try:
            with self._get(url) as response:
                length = self._content_length(response)
                deadline = time.monotonic() + self.config.body_timeout

                with self.buffer_pool.lease(length) as lease:
                    self._read_body(response, lease.view, deadline)
                    payload = self._unpack_manifest(lease.view)

            manifest = self.manifest_codec.deserialize(payload)
        except Exception as e:
            logger.debug("cdn_manifest_failed", url=str(url), error=str(e))
            raise

        if depot_key is not None:
            self.manifest_codec.decrypt_filenames(manifest, depot_key)
            manifest.invalidate_indexes()

        logger.debug(
            "cdn_manifest_fetched",
            depot_id=depot_id,
            manifest_id=manifest_id,
            nodes=len(manifest.nodes),
        )
        return manifest

    def fetch_chunk(
        self,
        depot_id: int,
        chunk: ChunkRef,
        server: Server,
        depot_key: bytes | None = None,
        proxy_server: Server | None = None,
    ) -> DepotChunk:
        """Download a depot chunk.

        With a depot key the chunk is decrypted and verified straight out
        of the transfer buffer; without one the raw bytes are returned.

        Args:
            depot_id: Depot being accessed
            chunk: Chunk reference from a manifest
            server: Content server to request from
            depot_key: Optional depot decryption key
            proxy_server: Optional proxy server rewriting the request

        Returns:
            DepotChunk holding processed or raw bytes

        Raises:
            InvalidArgument: If the chunk has no chunk id
            RequestFailed: If the response status is not a success
            ProtocolViolation: If Content-Length is missing
            IntegrityViolation: If the length does not match the chunk or the body
        """
        if chunk.chunk_id is None:
            raise InvalidArgument("Chunk must have a chunk id")
        if depot_key is not None and self.chunk_processor is None:
            raise InvalidArgument("A chunk processor is required to process chunks with a depot key")

        url = self.build_url(server, f"depot/{depot_id}/chunk/{chunk.chunk_id_hex}", proxy_server)

        try:
            with self._get(url) as response:
                length = self._content_length(response)

                # Only checked when the manifest recorded a length
                if chunk.compressed_length > 0 and length != chunk.compressed_length:
                    raise IntegrityViolation(
                        f"Content-Length mismatch for depot chunk "
                        f"(was {length}, but should be {chunk.compressed_length})",
                        expected=chunk.compressed_length,
                        actual=length,
                    )

                deadline = time.monotonic() + self.config.body_timeout

                with self.buffer_pool.lease(length) as lease:
                    self._read_body(response, lease.view, deadline)

                    if depot_key is not None:
                        assert self.chunk_processor is not None
                        data = self.chunk_processor.process(chunk, lease.view, depot_key)
                        return DepotChunk(chunk=chunk, data=data, processed=True)

                    return DepotChunk(chunk=chunk, data=bytes(lease.view))
        except Exception as e:
            logger.debug("cdn_chunk_failed", url=str(url), error=str(e))
            raise

    def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> CDNClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()
