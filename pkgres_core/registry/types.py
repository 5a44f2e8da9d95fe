"""Registry client datatypes and configuration."""

from __future__ import annotations

import json
import textwrap
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

DEFAULT_REGISTRY = "https://registry.npmjs.org/"


@dataclass(frozen=True)
class RegistryClientConfig:
    timeout_seconds: float = 30.0
    user_agent: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RegistryResponse:
    url: str
    status_code: int
    headers: Mapping[str, str]
    body: bytes

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


@dataclass(frozen=True)
class Signature:
    keyid: str
    sig: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Signature":
        return cls(keyid=str(data.get("keyid") or ""), sig=str(data.get("sig") or ""))

    def to_dict(self) -> dict[str, str]:
        return {"keyid": self.keyid, "sig": self.sig}


@dataclass(frozen=True)
class PublicKey:
    keyid: str
    pemkey: str
    expires: datetime | None = None
    keytype: str | None = None
    scheme: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PublicKey":
        """Build a key from either a ``pemkey`` entry or a registry ``key`` entry.

        Registry key documents ship the base64 DER body under ``key``; it is
        wrapped into PEM armor here.
        """
        keyid = str(data.get("keyid") or "").strip()
        if not keyid:
            raise ValueError("public key entry is missing keyid")
        pemkey = str(data.get("pemkey") or "").strip()
        if not pemkey:
            body = str(data.get("key") or "").strip()
            if not body:
                raise ValueError(f"public key {keyid} has no key material")
            armored = "\n".join(textwrap.wrap("".join(body.split()), 64))
            pemkey = f"-----BEGIN PUBLIC KEY-----\n{armored}\n-----END PUBLIC KEY-----"
        return cls(
            keyid=keyid,
            pemkey=pemkey,
            expires=parse_timestamp(data.get("expires")),
            keytype=str(data["keytype"]) if data.get("keytype") else None,
            scheme=str(data["scheme"]) if data.get("scheme") else None,
        )


@dataclass(frozen=True)
class DistInfo:
    tarball: str | None = None
    integrity: str | None = None
    shasum: str | None = None
    signatures: tuple[Signature, ...] = ()

    @classmethod
    def from_manifest(cls, manifest: Mapping[str, Any]) -> "DistInfo":
        dist = manifest.get("dist")
        if not isinstance(dist, Mapping):
            return cls()
        raw_signatures = dist.get("signatures")
        signatures: tuple[Signature, ...] = ()
        if isinstance(raw_signatures, list):
            signatures = tuple(Signature.from_dict(item) for item in raw_signatures if isinstance(item, Mapping))
        return cls(
            tarball=str(dist["tarball"]) if dist.get("tarball") else None,
            integrity=str(dist["integrity"]) if dist.get("integrity") else None,
            shasum=str(dist["shasum"]) if dist.get("shasum") else None,
            signatures=signatures,
        )


@dataclass(frozen=True)
class Packument:
    name: str
    versions: Mapping[str, Mapping[str, Any]]
    dist_tags: Mapping[str, str] = field(default_factory=dict)
    time: Mapping[str, str] = field(default_factory=dict)
    cached: bool = False
    content_length: int = 0
    full_metadata: bool = False

    @classmethod
    def from_document(
        cls,
        document: Mapping[str, Any],
        *,
        cached: bool = False,
        content_length: int = 0,
        full_metadata: bool = False,
    ) -> "Packument":
        if not isinstance(document, Mapping):
            raise ValueError("packument document must be an object")
        versions = document.get("versions")
        dist_tags = document.get("dist-tags")
        times = document.get("time")
        return cls(
            name=str(document.get("name") or ""),
            versions={
                str(key): value
                for key, value in (versions.items() if isinstance(versions, Mapping) else ())
                if isinstance(value, Mapping)
            },
            dist_tags={
                str(key): str(value)
                for key, value in (dist_tags.items() if isinstance(dist_tags, Mapping) else ())
            },
            time={
                str(key): str(value)
                for key, value in (times.items() if isinstance(times, Mapping) else ())
            },
            cached=cached,
            content_length=content_length,
            full_metadata=full_metadata,
        )


@dataclass(frozen=True)
class TarballDescriptor:
    resolved: str
    integrity: str | None
    pkgid: str


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = f"{text[:-1]}+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
