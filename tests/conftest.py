"""Shared test fixtures for all test modules."""

import json
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from copperegg_writer.adapters.http import SinkClient
from copperegg_writer.core.settings import basic_auth_token
from copperegg_writer.writer import CopperEggWriter

BASE_URL = "https://api.test/v2/revealmetrics"
BASE_PATH = "/v2/revealmetrics"
TEST_PID = 42
TEST_SOURCE = "h"

_ITEM_PATH = re.compile(r"^/(metric_groups|dashboards)/([^/]+)\.json$")
_SAMPLES_PATH = re.compile(r"^/samples/([^/]+)\.json$")


class FakeSink:
    """In-process stand-in for the metrics API, served via httpx.MockTransport.

    Metric groups get text IDs (``mg<n>``) and dashboards integer IDs, as the
    real API does. ``fail`` makes a (method, path) raise a transport error and
    ``statuses`` forces a status code for a (method, path).
    """

    def __init__(
        self,
        metric_groups: list[dict[str, Any]] | None = None,
        dashboards: list[dict[str, Any]] | None = None,
    ) -> None:
        self.collections: dict[str, list[dict[str, Any]]] = {
            "metric_groups": list(metric_groups or []),
            "dashboards": list(dashboards or []),
        }
        self.requests: list[httpx.Request] = []
        self.samples: list[tuple[str, dict[str, Any]]] = []
        self.fail: set[tuple[str, str]] = set()
        self.statuses: dict[tuple[str, str], int] = {}
        self._next_id = 1

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def calls(self, method: str | None = None) -> list[tuple[str, str]]:
        """(method, path-with-query) of every recorded request."""
        result = []
        for request in self.requests:
            if method is None or request.method == method:
                path = request.url.raw_path.decode()[len(BASE_PATH) :]
                result.append((request.method, path))
        return result

    def _new_id(self, collection: str) -> str | int:
        n = self._next_id
        self._next_id += 1
        return n if collection == "dashboards" else f"mg{n}"

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len(BASE_PATH) :]
        key = (request.method, path)
        if key in self.fail:
            raise httpx.ConnectError("connection refused", request=request)
        if key in self.statuses:
            return httpx.Response(self.statuses[key], text="forced failure")

        if request.method == "GET" and path in ("/metric_groups.json", "/dashboards.json"):
            return httpx.Response(200, json=self.collections[path[1:-5]])

        if request.method == "POST" and path in ("/metric_groups.json", "/dashboards.json"):
            collection = path[1:-5]
            body = json.loads(request.content)
            created = {**body, "id": self._new_id(collection)}
            self.collections[collection].append(created)
            return httpx.Response(200, json=created)

        match = _ITEM_PATH.match(path)
        if request.method == "PUT" and match:
            collection, raw_id = match.groups()
            for index, item in enumerate(self.collections[collection]):
                if str(item["id"]) == raw_id:
                    updated = {**json.loads(request.content), "id": item["id"]}
                    self.collections[collection][index] = updated
                    return httpx.Response(200, json=updated)
            return httpx.Response(404, json={"error": "not found"})

        match = _SAMPLES_PATH.match(path)
        if request.method == "POST" and match:
            self.samples.append((match.group(1), json.loads(request.content)))
            return httpx.Response(200, json={})

        return httpx.Response(404, json={"error": "not found"})


def write_catalog(
    path: Path,
    groups: list[str],
    dashboards: list[str] | None = None,
) -> Path:
    """Write a minimal catalog file declaring the given names."""
    document = {
        "config": {
            "metric_groups": [
                {"name": name, "frequency": 60, "metrics": []} for name in groups
            ],
            "dashboards": [{"name": name, "data": {}} for name in dashboards or []],
        }
    }
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


@pytest.fixture
def fake_sink() -> FakeSink:
    """Empty fake sink."""
    return FakeSink()


@pytest.fixture
def sink_factory() -> Callable[..., FakeSink]:
    """Factory for fake sinks pre-populated with remote objects."""
    return FakeSink


@pytest.fixture
def catalog_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing catalog files into a temporary directory."""

    def _catalog(groups: list[str], dashboards: list[str] | None = None) -> Path:
        return write_catalog(tmp_path / "copperegg_config.json", groups, dashboards)

    return _catalog


@pytest.fixture
def base_settings() -> dict[str, Any]:
    """Settings pointing at the fake sink with source "h"."""
    return {"url": BASE_URL, "username": "user", "token": "secret", "source": TEST_SOURCE}


@pytest.fixture
def writer_factory(
    base_settings: dict[str, Any],
) -> Callable[..., CopperEggWriter]:
    """Factory building writers bound to a fake sink with PID 42.

    Usage:
        def test_something(writer_factory, fake_sink, catalog_factory):
            writer = writer_factory(fake_sink, catalog_factory(["jvm_os"]))
            writer.start()
    """

    def _writer(
        sink: FakeSink,
        catalog_path: Path | None = None,
        **overrides: Any,
    ) -> CopperEggWriter:
        settings = {**base_settings, **overrides}
        if catalog_path is not None:
            settings["catalogPath"] = str(catalog_path)
        return CopperEggWriter(
            settings, transport=sink.transport, pid_provider=lambda: TEST_PID
        )

    return _writer


@pytest.fixture
def client_factory() -> Callable[[FakeSink], SinkClient]:
    """Factory building a SinkClient wired to a fake sink."""

    def _client(sink: FakeSink) -> SinkClient:
        return SinkClient(
            BASE_URL, basic_auth_token("secret"), 1000, transport=sink.transport
        )

    return _client
