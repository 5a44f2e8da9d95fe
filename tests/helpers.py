from __future__ import annotations

import json
import threading
from typing import Any, Callable, Mapping

from pkgres_core.registry.errors import NotFoundError
from pkgres_core.registry.types import RegistryResponse


def packument_document(name: str, versions: Mapping[str, Mapping[str, Any]], **extra: Any) -> dict[str, Any]:
    document: dict[str, Any] = {
        "name": name,
        # last listed version is "latest" unless overridden
        "dist-tags": {"latest": list(versions)[-1]} if versions else {},
        "versions": {
            version: {"name": name, "version": version, **dict(manifest)} for version, manifest in versions.items()
        },
    }
    document.update(extra)
    return document


class FakeTransport:
    """Records calls; ``handler(url, headers)`` returns a document or raises."""

    def __init__(
        self,
        handler: Callable[[str, Mapping[str, str]], Any],
        *,
        response_headers: Mapping[str, str] | None = None,
    ) -> None:
        self.handler = handler
        self.response_headers = dict(response_headers or {})
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def fetch(self, url: str, *, headers: Mapping[str, str], integrity: Any = None) -> RegistryResponse:
        with self._lock:
            self.calls.append({"url": url, "headers": dict(headers), "integrity": integrity})
        document = self.handler(url, headers)
        body = json.dumps(document).encode("utf-8")
        return RegistryResponse(
            url=url,
            status_code=200,
            headers={"content-length": str(len(body)), **self.response_headers},
            body=body,
        )


def serve(document: Any) -> Callable[[str, Mapping[str, str]], Any]:
    def _handler(url: str, headers: Mapping[str, str]) -> Any:
        del url, headers
        return document

    return _handler


def not_found(url: str, headers: Mapping[str, str]) -> Any:
    del headers
    raise NotFoundError(f"404 Not Found - GET {url}", url=url, status_code=404)
