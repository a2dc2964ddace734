"""Tests for depotkit.core.directory module."""

import pytest

from depotkit.core.config import DirectoryConfig
from depotkit.core.directory import ServerDirectory, pick_least_loaded
from depotkit.core.result import ResultStatus
from depotkit.core.types import Server, ServerCandidate


def _candidate(host: str, load: float) -> ServerCandidate:
    return ServerCandidate(server=Server(host=host, port=27030), load=load)


class TestPickLeastLoaded:
    """Test pick_least_loaded function."""

    def test_lowest_load(self):
        """The candidate with the numerically lowest load wins."""
        candidates = [_candidate("a", 5.0), _candidate("b", 0.5), _candidate("c", 2.0)]
        assert pick_least_loaded(candidates).server.host == "b"

    def test_tie_keeps_earliest(self):
        """Equal loads keep the first candidate seen."""
        candidates = [_candidate("a", 3.0), _candidate("b", 1.0), _candidate("c", 1.0)]
        assert pick_least_loaded(candidates).server.host == "b"

    def test_empty(self):
        """An empty list is an error."""
        with pytest.raises(ValueError):
            pick_least_loaded([])


class TestServerDirectory:
    """Test ServerDirectory class."""

    def test_first_endpoint_wins(self, directory_factory, directory_answers, directory_log):
        """Later endpoints are not queried once one returns candidates."""
        directory_answers.clear()
        directory_answers["csds1:1"] = [_candidate("slow", 9.0), _candidate("fast", 1.0)]
        directory_answers["csds2:1"] = [_candidate("faster", 0.1)]

        directory = ServerDirectory(["csds1:1", "csds2:1"], directory_factory)
        result = directory.resolve_storage_server(10, 3)

        assert result.is_ok
        assert result.unwrap().host == "fast"
        assert directory_log == ["csds1:1"]

    def test_rejected_and_empty_endpoints_skipped(self, directory_factory, directory_answers, directory_log):
        """Rejecting and empty endpoints fall through to the next one."""
        directory_answers.clear()
        directory_answers["csds1:1"] = None
        directory_answers["csds2:1"] = []
        directory_answers["csds3:1"] = [_candidate("third", 4.0)]

        directory = ServerDirectory(["csds1:1", "csds2:1", "csds3:1"], directory_factory)
        result = directory.resolve_storage_server(10, 3)

        assert result.unwrap().host == "third"
        assert directory_log == ["csds1:1", "csds2:1", "csds3:1"]

    def test_unreachable_endpoint_skipped(self, directory_factory, directory_answers, directory_log):
        """Endpoints that cannot be connected to are skipped."""
        directory_answers.clear()
        directory_answers["csds1:1"] = ConnectionRefusedError("refused")
        directory_answers["csds2:1"] = [_candidate("second", 1.0)]

        directory = ServerDirectory(["csds1:1", "csds2:1"], directory_factory)

        assert directory.resolve_storage_server(10, 3).unwrap().host == "second"
        assert directory_log == ["csds2:1"]

    def test_all_endpoints_fail(self, directory_factory, directory_answers):
        """No usable endpoint yields an unavailable result."""
        directory_answers.clear()
        directory_answers["csds1:1"] = None
        directory_answers["csds2:1"] = []

        directory = ServerDirectory(["csds1:1", "csds2:1"], directory_factory)
        result = directory.resolve_storage_server(10, 3)

        assert result.status is ResultStatus.unavailable
        assert "depot 10" in result.reason

    def test_no_endpoints(self, directory_factory):
        """An empty endpoint list yields an unavailable result."""
        directory = ServerDirectory([], directory_factory)
        result = directory.resolve_storage_server(10, 3)

        assert result.status is ResultStatus.unavailable

    def test_cell_id_passed(self, content_server):
        """The configured cell id is sent with every query."""
        seen: list[tuple[int, int, int]] = []

        class Client:
            def connect(self, endpoint):
                pass

            def get_content_server_list(self, depot_id, version, cell_id):
                seen.append((depot_id, version, cell_id))
                return [ServerCandidate(server=content_server, load=0)]

            def disconnect(self):
                pass

        directory = ServerDirectory(["csds:1"], Client, cell_id=7)
        directory.resolve_storage_server(10, 3)

        assert seen == [(10, 3, 7)]

    def test_from_config(self, directory_factory, directory_log, content_server):
        """Endpoints and cell id come from the directory configuration."""
        config = DirectoryConfig(endpoints=["csds1.example.com:27030"], cell_id=4)

        directory = ServerDirectory.from_config(config, directory_factory)

        assert directory.endpoints == ["csds1.example.com:27030"]
        assert directory.cell_id == 4
        assert directory.resolve_storage_server(10, 3).unwrap() == content_server
        assert directory_log == ["csds1.example.com:27030"]
