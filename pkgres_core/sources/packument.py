"""Packument retrieval with single-flight caching and compact/full fallback."""

from __future__ import annotations

import logging
import platform
from concurrent.futures import Future
from typing import Any, Callable, Mapping, Optional

from pkgres_core import __version__
from pkgres_core.registry.client import RegistryTransport
from pkgres_core.registry.errors import FetchError, NoMatchingVersionError, NotFoundError
from pkgres_core.registry.types import Packument

from .cache import PackumentCache
from .models import PackageRequest

logger = logging.getLogger(__name__)

# compact ("corgi") documents drop fields an install never needs
CORGI_DOC = "application/vnd.npm.install-v1+json; q=1.0, application/json; q=0.8, */*"
FULL_DOC = "application/json"

Matcher = Callable[..., Optional[Mapping[str, Any]]]


def packument_url(registry: str, escaped_name: str) -> str:
    return f"{registry.rstrip('/')}/{escaped_name}"


def cache_key(url: str, *, full_metadata: bool) -> str:
    # compact documents omit `time`, so full-mode callers never share them
    return f"full:{url}" if full_metadata else url


def default_user_agent() -> str:
    return f"pkgres/{__version__} python/{platform.python_version()}"


class PackumentFetcher:
    """Fetches packuments through an injected transport.

    ``cache`` is optional and owned by the caller; when given, concurrent
    fetches of one URL share a single upstream request.
    """

    def __init__(self, transport: RegistryTransport, cache: PackumentCache | None = None) -> None:
        self.transport = transport
        self.cache = cache

    def headers(self, request: PackageRequest, *, full_metadata: bool) -> dict[str, str]:
        options = request.options
        return {
            "user-agent": options.user_agent or default_user_agent(),
            **dict(options.headers),
            "pkgres-version": __version__,
            "pkgres-req-type": "packument",
            "pkgres-pkg-id": f"registry:{request.name}",
            "accept": FULL_DOC if full_metadata else CORGI_DOC,
        }

    def fetch(self, request: PackageRequest) -> Packument:
        url = packument_url(request.registry, request.escaped_name)
        if self.cache is None:
            return self._fetch_with_fallback(request, url)

        key = cache_key(url, full_metadata=self._needs_full_metadata(request))
        entry, owner = self.cache.claim(key)
        if not owner:
            logger.debug("packument cache hit key=%s pending=%s", key, isinstance(entry, Future))
            return entry.result() if isinstance(entry, Future) else entry

        try:
            packument = self._fetch_with_fallback(request, url)
        except BaseException as exc:
            self.cache.remove(key)
            entry.set_exception(exc)
            raise
        self.cache.put(key, packument)
        entry.set_result(packument)
        return packument

    @staticmethod
    def _needs_full_metadata(request: PackageRequest) -> bool:
        return request.options.full_metadata or request.options.before is not None

    def _fetch_with_fallback(self, request: PackageRequest, url: str) -> Packument:
        full_metadata = self._needs_full_metadata(request)
        retried = False
        for _ in range(2):
            try:
                return self._fetch_once(request, url, full_metadata=full_metadata)
            except NotFoundError:
                if full_metadata or retried:
                    raise
                # the registry may not serve compact documents
                logger.debug("compact packument not found, retrying with full metadata url=%s", url)
                retried = True
                full_metadata = True
        raise AssertionError("unreachable")

    def _fetch_once(self, request: PackageRequest, url: str, *, full_metadata: bool) -> Packument:
        response = self.transport.fetch(
            url,
            headers=self.headers(request, full_metadata=full_metadata),
            integrity=None,
        )
        headers = {str(key).lower(): value for key, value in response.headers.items()}
        try:
            content_length = int(headers.get("content-length") or 0)
        except ValueError:
            content_length = 0
        try:
            return Packument.from_document(
                response.json(),
                cached="x-local-cache" in headers,
                content_length=content_length,
                full_metadata=full_metadata,
            )
        except ValueError as exc:
            # JSONDecodeError and UnicodeDecodeError are ValueErrors too
            raise FetchError(
                f"invalid packument document from {url}: {exc}",
                url=url,
                status_code=response.status_code,
                package=request.spec,
            ) from exc


def select_manifest(packument: Packument, request: PackageRequest, matcher: Matcher) -> Mapping[str, Any]:
    """Run ``matcher`` and enforce that exactly one manifest comes back."""
    options = request.options
    manifest = matcher(
        packument,
        request.fetch_spec,
        default_tag=options.default_tag,
        before=options.before,
    )
    if manifest is None:
        raise NoMatchingVersionError(
            f"No matching version found for {request.spec}.",
            package=request.spec,
            wanted=request.fetch_spec,
            name=request.name,
        )
    return manifest
