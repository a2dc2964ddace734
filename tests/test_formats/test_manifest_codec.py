"""Tests for depotkit.formats.manifest module."""

import json

import pytest

from depotkit.core.errors import ProtocolViolation
from depotkit.core.types import ChunkRef, Manifest, ManifestNode
from depotkit.formats.manifest import JSONManifestCodec


@pytest.fixture
def codec():
    return JSONManifestCodec()


@pytest.fixture
def manifest():
    return Manifest(
        depot_id=7,
        version=12,
        nodes=[
            ManifestNode(file_id=-1, full_name="bin"),
            ManifestNode(
                file_id=1,
                full_name="bin\\tool.exe",
                size_or_count=4,
                chunks=[ChunkRef(chunk_id=b"\x01\x02", compressed_length=6, uncompressed_length=4)],
            ),
        ],
    )


class TestJSONManifestCodec:
    """Test JSONManifestCodec class."""

    def test_deserialize(self, codec, manifest):
        """Serialized manifests decode to equal models."""
        decoded = codec.deserialize(codec.serialize(manifest))

        assert decoded == manifest
        assert decoded.find_by_name("BIN\\TOOL.EXE").chunks[0].chunk_id_hex == "0102"

    def test_deserialize_hex_chunk_ids(self, codec):
        data = json.dumps({
            "depot_id": 7,
            "nodes": [{"file_id": 1, "full_name": "a", "chunks": [{"chunk_id": "abcd"}]}],
        }).encode()

        assert codec.deserialize(data).nodes[0].chunks[0].chunk_id == b"\xab\xcd"

    @pytest.mark.parametrize("payload", [
        b"not json",
        b"\xff\xfe",
        b'{"nodes": []}',
        b'{"depot_id": 1, "nodes": [{"full_name": "missing id"}]}',
    ])
    def test_deserialize_invalid(self, codec, payload):
        with pytest.raises(ProtocolViolation):
            codec.deserialize(payload)

    def test_decrypt_plain_filenames(self, codec, manifest):
        """Plain-text manifests are left untouched."""
        codec.decrypt_filenames(manifest, b"key")
        assert manifest.nodes[1].full_name == "bin\\tool.exe"

    def test_decrypt_encrypted_filenames(self, codec, manifest):
        manifest.filenames_encrypted = True

        with pytest.raises(ProtocolViolation):
            codec.decrypt_filenames(manifest, b"key")
