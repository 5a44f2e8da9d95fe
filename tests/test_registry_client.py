from __future__ import annotations

import base64
import hashlib
import json
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from socketserver import ThreadingMixIn
from typing import Any

import pytest

from pkgres_core.registry.client import RegistryClient
from pkgres_core.registry.errors import FetchError, IntegrityConflictError, NotFoundError
from pkgres_core.registry.integrity import parse_integrity
from pkgres_core.sources.cache import PackumentCache
from pkgres_core.sources.models import ResolveOptions
from pkgres_core.sources.packument import CORGI_DOC, FULL_DOC
from pkgres_core.sources.resolver import SourceResolver


class _ThreadedServer(ThreadingMixIn, HTTPServer):
    daemon_threads = True


class _RegistryHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:
        server = self.server
        server.requests.append({"path": self.path, "headers": {str(k).lower(): str(v) for k, v in self.headers.items()}})
        mode = getattr(server, "mode", "ok")

        if mode == "500":
            self._respond(500, {"error": "database   on    fire"})
            return
        if mode == "corgi_missing" and self.headers.get("Accept") == CORGI_DOC:
            self._respond(404, {"error": "Not found"})
            return
        if self.path != "/@scope%2fdemo":
            self._respond(404, {"error": "Not found"})
            return
        self._respond(
            200,
            {
                "name": "@scope/demo",
                "dist-tags": {"latest": "1.0.0"},
                "versions": {
                    "1.0.0": {
                        "name": "@scope/demo",
                        "version": "1.0.0",
                        "dist": {"tarball": "http://127.0.0.1/demo-1.0.0.tgz", "shasum": "0" * 40},
                    }
                },
            },
            extra_headers={"X-Local-Cache": "/var/cache/pkgres"},
        )

    def _respond(self, status: int, body: dict[str, Any], extra_headers: dict[str, str] | None = None) -> None:
        data = json.dumps(body).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        for key, value in (extra_headers or {}).items():
            self.send_header(key, value)
        self.end_headers()
        self.wfile.write(data)

    def log_message(self, format: str, *args: object) -> None:
        return


def _start_server(mode: str = "ok") -> tuple[_ThreadedServer, str]:
    server = _ThreadedServer(("127.0.0.1", 0), _RegistryHandler)
    server.mode = mode
    server.requests = []
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server, f"http://127.0.0.1:{server.server_port}/"


def _stop_server(server: _ThreadedServer) -> None:
    server.shutdown()
    server.server_close()


@pytest.fixture()
def registry():
    server, url = _start_server()
    try:
        yield server, url
    finally:
        _stop_server(server)


def test_fetch_lowercases_response_headers(registry) -> None:
    server, url = registry
    response = RegistryClient().fetch(f"{url}@scope%2fdemo", headers={"accept": FULL_DOC})
    assert response.status_code == 200
    assert response.headers["x-local-cache"] == "/var/cache/pkgres"
    assert response.json()["name"] == "@scope/demo"
    assert server.requests[0]["headers"]["accept"] == FULL_DOC


def test_fetch_maps_404_to_not_found(registry) -> None:
    _, url = registry
    with pytest.raises(NotFoundError) as excinfo:
        RegistryClient().fetch(f"{url}missing", headers={})
    assert excinfo.value.status_code == 404
    assert excinfo.value.code == "E404"


def test_fetch_maps_server_errors_with_compact_snippet() -> None:
    server, url = _start_server(mode="500")
    try:
        with pytest.raises(FetchError) as excinfo:
            RegistryClient().fetch(f"{url}@scope%2fdemo", headers={})
    finally:
        _stop_server(server)
    assert excinfo.value.status_code == 500
    assert not isinstance(excinfo.value, NotFoundError)
    assert "database on fire" in str(excinfo.value)


def test_fetch_wraps_connection_errors() -> None:
    server, url = _start_server()
    _stop_server(server)
    with pytest.raises(FetchError) as excinfo:
        RegistryClient().fetch(f"{url}@scope%2fdemo", headers={})
    assert excinfo.value.url == f"{url}@scope%2fdemo"


def test_fetch_checks_expected_body_integrity(registry) -> None:
    _, url = registry
    wrong = parse_integrity("sha512-" + base64.b64encode(hashlib.sha512(b"nope").digest()).decode("ascii"))
    with pytest.raises(IntegrityConflictError):
        RegistryClient().fetch(f"{url}@scope%2fdemo", headers={}, integrity=wrong)


def test_resolver_end_to_end_over_http() -> None:
    server, url = _start_server(mode="corgi_missing")
    try:
        resolver = SourceResolver(
            RegistryClient(),
            options=ResolveOptions(registry=url),
            cache=PackumentCache(),
        )
        package = resolver.manifest("@scope/demo")
        packument = resolver.packument("@scope/demo")
    finally:
        _stop_server(server)

    assert package.version == "1.0.0"
    assert package.integrity.algorithms == ("sha1",)
    assert packument.cached is True
    assert packument.full_metadata is True
    accepts = [item["headers"]["accept"] for item in server.requests]
    assert accepts == [CORGI_DOC, FULL_DOC]
    assert server.requests[-1]["headers"]["pkgres-pkg-id"] == "registry:@scope/demo"
