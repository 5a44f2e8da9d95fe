from __future__ import annotations

import copy
import json
import logging
import re
import subprocess
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Mapping, Protocol

from pkgres_core.registry.client import RegistryClient, RegistryTransport
from pkgres_core.registry.errors import GitCommandError, InvalidManifestError, UnsupportedSpecError
from pkgres_core.registry.integrity import Integrity, parse_integrity, reconcile
from pkgres_core.registry.security import SignatureVerifier, TrustStore, redact_command_for_log
from pkgres_core.registry.types import DistInfo, Packument, Signature, TarballDescriptor
from pkgres_core.registry.versions import pick_manifest

from .cache import PackumentCache
from .models import REGISTRY_KINDS, PackageRequest, ResolvedPackage, ResolveOptions
from .packument import Matcher, PackumentFetcher, select_manifest
from .spec import parse_spec

logger = logging.getLogger(__name__)
_SHA_RE = re.compile(r"^[0-9a-f]{40}$")


class Fetcher(Protocol):
    request: PackageRequest

    def resolve(self) -> str: ...

    def manifest(self) -> ResolvedPackage: ...

    def tarball_descriptor(self) -> TarballDescriptor: ...


def normalize_manifest(
    manifest: Mapping[str, Any],
    *,
    resolved: str | None,
    integrity: Integrity,
    signatures: tuple[Signature, ...],
    from_spec: str,
) -> Mapping[str, Any]:
    normalized = copy.deepcopy(dict(manifest))
    name = normalized.get("name")
    version = normalized.get("version")
    if name and version:
        normalized.setdefault("_id", f"{name}@{version}")
    if "bundledDependencies" in normalized and "bundleDependencies" not in normalized:
        normalized["bundleDependencies"] = normalized.pop("bundledDependencies")
    if resolved:
        normalized["_resolved"] = resolved
    normalized["_from"] = from_spec
    if integrity:
        normalized["_integrity"] = str(integrity)
    if signatures:
        normalized["_signatures"] = [signature.to_dict() for signature in signatures]
    return MappingProxyType(normalized)


class _MemoizedFetcher(ABC):
    """Caches the result of ``_build`` for the lifetime of the fetcher."""

    def __init__(self) -> None:
        self._package: ResolvedPackage | None = None
        self._lock = threading.Lock()

    def manifest(self) -> ResolvedPackage:
        with self._lock:
            if self._package is None:
                self._package = self._build()
            return self._package

    @abstractmethod
    def _build(self) -> ResolvedPackage: ...


class RegistryFetcher(_MemoizedFetcher):
    def __init__(
        self,
        request: PackageRequest,
        *,
        packuments: PackumentFetcher,
        verifier: SignatureVerifier,
        matcher: Matcher,
    ) -> None:
        super().__init__()
        self.request = request
        self.packuments = packuments
        self.verifier = verifier
        self.matcher = matcher

    def packument(self) -> Packument:
        return self.packuments.fetch(self.request)

    def _build(self) -> ResolvedPackage:
        request = self.request
        manifest = select_manifest(self.packument(), request, self.matcher)
        dist = DistInfo.from_manifest(manifest)
        expected = parse_integrity(request.options.integrity) if request.options.integrity else None
        integrity = reconcile(expected, dist, package=request.spec)

        signatures: tuple[Signature, ...] = ()
        if integrity:
            manifest_id = str(manifest.get("_id") or f"{manifest.get('name')}@{manifest.get('version')}")
            signatures = self.verifier.verify(manifest_id, request.registry, integrity, dist.signatures)
        elif dist.signatures:
            logger.debug("no integrity declared for %s, signatures not attached", request.spec)

        package = ResolvedPackage(
            spec=request.spec,
            tarball=dist.tarball,
            integrity=integrity,
            signatures=signatures,
            manifest=normalize_manifest(
                manifest,
                resolved=dist.tarball,
                integrity=integrity,
                signatures=signatures,
                from_spec=request.spec,
            ),
        )
        logger.debug("resolved spec=%s tarball=%s integrity=%s", request.spec, package.tarball, package.integrity)
        return package

    def resolve(self) -> str:
        package = self.manifest()
        if not package.tarball:
            raise InvalidManifestError(
                "Invalid package manifest: no `dist.tarball` field",
                package=self.request.spec,
            )
        return package.tarball

    def tarball_descriptor(self) -> TarballDescriptor:
        resolved = self.resolve()
        package = self.manifest()
        remote = replace(
            self.request,
            kind="remote",
            fetch_spec=resolved,
            options=replace(self.request.options, integrity=str(package.integrity) or None),
        )
        return RemoteFetcher(remote, pkgid=f"registry:{self.request.name}@{resolved}").tarball_descriptor()


class RemoteFetcher(_MemoizedFetcher):
    """Plain tarball URL. The manifest only carries what the request knows."""

    def __init__(self, request: PackageRequest, *, pkgid: str | None = None) -> None:
        super().__init__()
        self.request = request
        self.pkgid = pkgid or f"remote:{request.name or request.fetch_spec}@{request.fetch_spec}"

    def resolve(self) -> str:
        return self.request.fetch_spec

    def _build(self) -> ResolvedPackage:
        integrity = parse_integrity(self.request.options.integrity)
        manifest: dict[str, Any] = {"name": self.request.name} if self.request.name else {}
        return ResolvedPackage(
            spec=self.request.spec,
            tarball=self.resolve(),
            integrity=integrity,
            signatures=(),
            manifest=normalize_manifest(
                manifest,
                resolved=self.resolve(),
                integrity=integrity,
                signatures=(),
                from_spec=self.request.spec,
            ),
        )

    def tarball_descriptor(self) -> TarballDescriptor:
        return TarballDescriptor(
            resolved=self.resolve(),
            integrity=self.request.options.integrity or None,
            pkgid=self.pkgid,
        )


class DirectoryFetcher(_MemoizedFetcher):
    def __init__(self, request: PackageRequest) -> None:
        super().__init__()
        self.request = request
        self.path = Path(request.fetch_spec)

    def resolve(self) -> str:
        return f"file:{self.path}"

    def _read_package_json(self) -> dict[str, Any]:
        manifest_path = self.path / "package.json"
        if not manifest_path.exists():
            raise InvalidManifestError(f"no package.json found in {self.path}", package=self.request.spec)
        try:
            payload = json.loads(manifest_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise InvalidManifestError(f"invalid package.json in {self.path}: {exc}", package=self.request.spec) from exc
        if not isinstance(payload, dict):
            raise InvalidManifestError(f"package.json in {self.path} must be an object", package=self.request.spec)
        return payload

    def _build(self) -> ResolvedPackage:
        resolved = self.resolve()
        return ResolvedPackage(
            spec=self.request.spec,
            tarball=resolved,
            integrity=Integrity(),
            signatures=(),
            manifest=normalize_manifest(
                self._read_package_json(),
                resolved=resolved,
                integrity=Integrity(),
                signatures=(),
                from_spec=self.request.spec,
            ),
        )

    def tarball_descriptor(self) -> TarballDescriptor:
        return TarballDescriptor(resolved=self.resolve(), integrity=None, pkgid=f"directory:{self.path}")


class GitFetcher(_MemoizedFetcher):
    """Git repository spec resolved to a commit through the ``git`` CLI."""

    def __init__(self, request: PackageRequest, *, timeout_seconds: float = 120.0) -> None:
        super().__init__()
        self.request = request
        self.timeout_seconds = timeout_seconds
        spec = request.fetch_spec
        if spec.startswith("git+"):
            spec = spec[len("git+") :]
        self.url, _, committish = spec.partition("#")
        self.committish = committish or None
        self._sha: str | None = None

    def _run(self, command: list[str]) -> subprocess.CompletedProcess[str]:
        redacted = " ".join(redact_command_for_log(command))
        logger.debug("git command cmd=%s", redacted)
        try:
            result = subprocess.run(
                command,
                check=False,
                capture_output=True,
                text=True,
                timeout=max(float(self.timeout_seconds), 1.0),
            )
        except FileNotFoundError as exc:
            raise GitCommandError(
                "git CLI not found. Install git and ensure it is available in PATH.",
                package=self.request.spec,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise GitCommandError(
                f"git command timed out after {self.timeout_seconds:.1f}s cmd='{redacted}'",
                package=self.request.spec,
            ) from exc
        if result.returncode != 0:
            detail = (result.stderr or "").strip()
            raise GitCommandError(
                f"git command failed (exit={result.returncode}) cmd='{redacted}' err='{detail}'",
                package=self.request.spec,
            )
        return result

    def commit_sha(self) -> str:
        if self._sha is not None:
            return self._sha
        if self.committish and _SHA_RE.match(self.committish):
            self._sha = self.committish
            return self._sha

        wanted = self.committish or "HEAD"
        result = self._run(["git", "ls-remote", self.url, wanted])
        refs: dict[str, str] = {}
        for line in (result.stdout or "").splitlines():
            sha, _, ref = line.strip().partition("\t")
            if sha and ref:
                refs[ref] = sha
        candidates = (
            f"refs/tags/{wanted}^{{}}",
            f"refs/tags/{wanted}",
            f"refs/heads/{wanted}",
            wanted,
        )
        for candidate in candidates:
            if candidate in refs:
                self._sha = refs[candidate]
                return self._sha
        raise GitCommandError(f"no git ref matching {wanted!r} in {self.url}", package=self.request.spec)

    def resolve(self) -> str:
        return f"git+{self.url}#{self.commit_sha()}"

    def _read_package_json(self, sha: str) -> dict[str, Any]:
        with tempfile.TemporaryDirectory(prefix="pkgres-git-") as tmp:
            self._run(["git", "init", "-q", tmp])
            self._run(["git", "-C", tmp, "fetch", "-q", "--depth", "1", self.url, sha])
            result = self._run(["git", "-C", tmp, "show", "FETCH_HEAD:package.json"])
        try:
            payload = json.loads(result.stdout or "")
        except json.JSONDecodeError as exc:
            raise InvalidManifestError(f"invalid package.json at {self.url}#{sha}", package=self.request.spec) from exc
        if not isinstance(payload, dict):
            raise InvalidManifestError(f"package.json at {self.url}#{sha} must be an object", package=self.request.spec)
        return payload

    def _build(self) -> ResolvedPackage:
        resolved = self.resolve()
        return ResolvedPackage(
            spec=self.request.spec,
            tarball=resolved,
            integrity=Integrity(),
            signatures=(),
            manifest=normalize_manifest(
                self._read_package_json(self.commit_sha()),
                resolved=resolved,
                integrity=Integrity(),
                signatures=(),
                from_spec=self.request.spec,
            ),
        )

    def tarball_descriptor(self) -> TarballDescriptor:
        return TarballDescriptor(resolved=self.resolve(), integrity=None, pkgid=f"git:{self.url}")


class SourceResolver:
    """Entry point: turns package specs into verified ``ResolvedPackage`` records.

    The packument cache and trust store are explicit dependencies. Pass the
    same ``PackumentCache`` to several resolvers to share fetches across a
    whole command; omit it to disable caching.
    """

    def __init__(
        self,
        transport: RegistryTransport | None = None,
        *,
        options: ResolveOptions | None = None,
        cache: PackumentCache | None = None,
        trust_store: TrustStore | None = None,
        matcher: Matcher | None = None,
        where: Path | None = None,
    ) -> None:
        self.options = options or ResolveOptions()
        self.transport = transport or RegistryClient()
        self.cache = cache
        self.where = where
        self.packuments = PackumentFetcher(self.transport, cache)
        self.trust_store = trust_store or TrustStore()
        self.matcher = matcher or pick_manifest
        self._fetchers: dict[PackageRequest, Fetcher] = {}
        self._lock = threading.Lock()
        self._factories: dict[str, Callable[[PackageRequest], Fetcher]] = {
            **{kind: self._registry_fetcher for kind in REGISTRY_KINDS},
            "remote": RemoteFetcher,
            "git": GitFetcher,
            "directory": DirectoryFetcher,
        }

    def _registry_fetcher(self, request: PackageRequest) -> RegistryFetcher:
        return RegistryFetcher(
            request,
            packuments=self.packuments,
            verifier=SignatureVerifier(self.trust_store, enabled=request.options.verify_signatures),
            matcher=self.matcher,
        )

    def request_for(self, spec: str | PackageRequest) -> PackageRequest:
        if isinstance(spec, PackageRequest):
            return spec
        return parse_spec(spec, self.options, where=self.where)

    def fetcher_for(self, spec: str | PackageRequest) -> Fetcher:
        request = self.request_for(spec)
        with self._lock:
            fetcher = self._fetchers.get(request)
            if fetcher is None:
                factory = self._factories.get(request.kind)
                if factory is None:
                    raise UnsupportedSpecError(f"unsupported spec kind {request.kind!r}", package=request.spec)
                fetcher = factory(request)
                self._fetchers[request] = fetcher
            return fetcher

    def packument(self, spec: str | PackageRequest) -> Packument:
        fetcher = self.fetcher_for(spec)
        if not isinstance(fetcher, RegistryFetcher):
            raise UnsupportedSpecError(
                f"{fetcher.request.spec} is not a registry spec and has no packument",
                package=fetcher.request.spec,
            )
        return fetcher.packument()

    def manifest(self, spec: str | PackageRequest) -> ResolvedPackage:
        return self.fetcher_for(spec).manifest()

    def resolve(self, spec: str | PackageRequest) -> str:
        return self.fetcher_for(spec).resolve()

    def tarball_descriptor(self, spec: str | PackageRequest) -> TarballDescriptor:
        return self.fetcher_for(spec).tarball_descriptor()
