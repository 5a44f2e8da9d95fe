"""HTTP transport for registry metadata built on ``requests``."""

from __future__ import annotations

import logging
from typing import Mapping, Protocol

import requests
from requests.exceptions import RequestException, Timeout

from .errors import FetchError, IntegrityConflictError, NotFoundError
from .integrity import Integrity
from .types import RegistryClientConfig, RegistryResponse

logger = logging.getLogger(__name__)


class RegistryTransport(Protocol):
    def fetch(
        self,
        url: str,
        *,
        headers: Mapping[str, str],
        integrity: Integrity | None = None,
    ) -> RegistryResponse: ...


def _error_body_snippet(response: requests.Response, max_chars: int = 200) -> str:
    body = response.text or ""
    compact = " ".join(body.split())
    return compact[:max_chars]


class RegistryClient:
    """Single-attempt GET client. Retries and auth belong to the caller's stack."""

    def __init__(
        self,
        config: RegistryClientConfig | None = None,
        *,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config or RegistryClientConfig()
        self.session = session

    def fetch(
        self,
        url: str,
        *,
        headers: Mapping[str, str],
        integrity: Integrity | None = None,
    ) -> RegistryResponse:
        timeout = max(float(self.config.timeout_seconds), 1.0)
        getter = self.session.get if self.session is not None else requests.get
        logger.debug("registry request url=%s accept=%s", url, headers.get("accept"))
        try:
            response = getter(url, headers=dict(headers), timeout=timeout)
        except Timeout as exc:
            raise FetchError(f"registry request timed out after {timeout:.1f}s: {url}", url=url) from exc
        except RequestException as exc:
            raise FetchError(f"registry request failed: {url}: {exc}", url=url) from exc

        status = response.status_code
        if status == 404:
            raise NotFoundError(f"404 Not Found - GET {url}", url=url, status_code=status)
        if status >= 400:
            snippet = _error_body_snippet(response)
            raise FetchError(
                f"{status} {response.reason or 'error'} - GET {url} body='{snippet}'",
                url=url,
                status_code=status,
            )

        body = response.content or b""
        if integrity and not integrity.check_bytes(body):
            raise IntegrityConflictError(
                f"Integrity check failed for {url}: wanted {integrity}",
                algorithm=integrity.pick_algorithm(),
                expected=str(integrity),
                actual=None,
            )
        return RegistryResponse(
            url=url,
            status_code=status,
            headers={str(key).lower(): str(value) for key, value in response.headers.items()},
            body=body,
        )
