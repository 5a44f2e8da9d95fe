from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping
from urllib.parse import quote

from pkgres_core.registry.integrity import Integrity
from pkgres_core.registry.types import DEFAULT_REGISTRY, Signature

REGISTRY_KINDS = ("version", "range", "tag")


def escape_name(name: str) -> str:
    """Escape a package name for use as a single URL path segment."""
    return quote(name, safe="@").replace("%2F", "%2f")


@dataclass(frozen=True)
class ResolveOptions:
    registry: str = DEFAULT_REGISTRY
    full_metadata: bool = False
    verify_signatures: bool = False
    before: datetime | None = None
    default_tag: str = "latest"
    integrity: str | None = None
    scoped_registries: tuple[tuple[str, str], ...] = ()
    user_agent: str | None = None
    headers: tuple[tuple[str, str], ...] = ()

    def registry_for(self, name: str | None) -> str:
        if name and name.startswith("@") and "/" in name:
            scope = name.split("/", 1)[0]
            for candidate, url in self.scoped_registries:
                if candidate == scope:
                    return url
        return self.registry


@dataclass(frozen=True)
class PackageRequest:
    raw: str
    kind: str
    name: str | None
    fetch_spec: str
    registry: str
    options: ResolveOptions = field(default_factory=ResolveOptions)

    @property
    def escaped_name(self) -> str:
        return escape_name(self.name or "")

    @property
    def spec(self) -> str:
        if self.name:
            return f"{self.name}@{self.fetch_spec}"
        return self.fetch_spec

    def __str__(self) -> str:
        return self.spec


@dataclass(frozen=True)
class ResolvedPackage:
    spec: str
    tarball: str | None
    integrity: Integrity
    signatures: tuple[Signature, ...]
    manifest: Mapping[str, Any]

    @property
    def name(self) -> str:
        return str(self.manifest.get("name") or "")

    @property
    def version(self) -> str:
        return str(self.manifest.get("version") or "")
