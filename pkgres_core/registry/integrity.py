"""Subresource-integrity digests and their reconciliation."""

from __future__ import annotations

import base64
import binascii
import hashlib
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping

from .errors import IntegrityConflictError, InvalidManifestError
from .types import DistInfo

LEGACY_ALGORITHM = "sha1"
# weakest first
ALGORITHM_STRENGTH = ("md5", "sha1", "sha256", "sha384", "sha512")

_SRI_RE = re.compile(r"^([a-z0-9]+)-([A-Za-z0-9+/=]+)(\?[\x21-\x7e]*)?$")


@dataclass(frozen=True)
class IntegrityEntry:
    algorithm: str
    digest: str
    options: tuple[str, ...] = ()

    def __str__(self) -> str:
        suffix = "".join(f"?{option}" for option in self.options)
        return f"{self.algorithm}-{self.digest}{suffix}"


class Integrity:
    """Immutable mapping of algorithm -> digest entries, in insertion order."""

    __slots__ = ("_hashes",)

    def __init__(self, entries: Iterable[IntegrityEntry] = ()) -> None:
        hashes: dict[str, list[IntegrityEntry]] = {}
        for entry in entries:
            bucket = hashes.setdefault(entry.algorithm, [])
            if all(existing.digest != entry.digest for existing in bucket):
                bucket.append(entry)
        self._hashes: Mapping[str, tuple[IntegrityEntry, ...]] = {
            algorithm: tuple(bucket) for algorithm, bucket in hashes.items()
        }

    @property
    def algorithms(self) -> tuple[str, ...]:
        return tuple(self._hashes)

    def __iter__(self) -> Iterator[IntegrityEntry]:
        for bucket in self._hashes.values():
            yield from bucket

    def __getitem__(self, algorithm: str) -> tuple[IntegrityEntry, ...]:
        return self._hashes[algorithm]

    def __contains__(self, algorithm: object) -> bool:
        return algorithm in self._hashes

    def __bool__(self) -> bool:
        return bool(self._hashes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Integrity):
            return NotImplemented
        return {algo: self.digests(algo) for algo in self._hashes} == {
            algo: other.digests(algo) for algo in other._hashes
        }

    def __hash__(self) -> int:
        return hash(frozenset((entry.algorithm, entry.digest) for entry in self))

    def __str__(self) -> str:
        return " ".join(str(entry) for entry in self)

    def __repr__(self) -> str:
        return f"Integrity({str(self)!r})"

    def digests(self, algorithm: str) -> frozenset[str]:
        return frozenset(entry.digest for entry in self._hashes.get(algorithm, ()))

    def merge(self, other: "Integrity") -> "Integrity":
        return Integrity([*self, *other])

    def pick_algorithm(self) -> str | None:
        known = [algo for algo in self._hashes if algo in ALGORITHM_STRENGTH]
        if not known:
            return next(iter(self._hashes), None)
        return max(known, key=ALGORITHM_STRENGTH.index)

    def check_bytes(self, data: bytes) -> bool:
        algorithm = self.pick_algorithm()
        if algorithm is None:
            return True
        try:
            hasher = hashlib.new(algorithm)
        except ValueError:
            return False
        hasher.update(data)
        actual = base64.b64encode(hasher.digest()).decode("ascii")
        return actual in self.digests(algorithm)


def parse_integrity(value: str | Integrity | None) -> Integrity:
    """Parse an SRI string. Malformed entries are skipped."""
    if value is None:
        return Integrity()
    if isinstance(value, Integrity):
        return value
    entries: list[IntegrityEntry] = []
    for token in str(value).split():
        match = _SRI_RE.match(token)
        if not match:
            continue
        options = tuple(item for item in (match.group(3) or "").split("?") if item)
        entries.append(IntegrityEntry(algorithm=match.group(1), digest=match.group(2), options=options))
    return Integrity(entries)


def integrity_from_hex(hex_digest: str, algorithm: str = LEGACY_ALGORITHM) -> Integrity:
    raw = bytes.fromhex(hex_digest.strip())
    digest = base64.b64encode(raw).decode("ascii")
    return Integrity([IntegrityEntry(algorithm=algorithm, digest=digest)])


def integrity_for_dist(dist: DistInfo, *, package: str | None = None) -> Integrity:
    if dist.integrity:
        return parse_integrity(dist.integrity)
    if dist.shasum:
        try:
            return integrity_from_hex(dist.shasum)
        except (ValueError, binascii.Error) as exc:
            raise InvalidManifestError(
                f"invalid dist.shasum {dist.shasum!r}",
                package=package,
            ) from exc
    return Integrity()


def reconcile(
    expected: Integrity | None,
    dist: DistInfo,
    *,
    package: str | None = None,
) -> Integrity:
    """Merge the caller's expected digest with what the registry declares.

    Only algorithms present on both sides are compared. A registry that only
    ships a legacy sha1 for a package we previously pinned by sha512 is
    accepted and unioned in.
    """
    dist_digest = integrity_for_dist(dist, package=package)
    if not expected:
        return dist_digest
    if not dist_digest:
        return expected
    for algorithm in expected.algorithms:
        if algorithm not in dist_digest:
            continue
        if expected.digests(algorithm).isdisjoint(dist_digest.digests(algorithm)):
            raise IntegrityConflictError(
                f"Integrity checksum failed when using {algorithm}: "
                f"wanted {expected} but got {dist_digest}.",
                package=package,
                algorithm=algorithm,
                expected=str(expected),
                actual=str(dist_digest),
            )
    return expected.merge(dist_digest)


def reconcile_all(digests: Iterable[Integrity | None], *, package: str | None = None) -> Integrity:
    merged: Integrity | None = None
    for digest in digests:
        if not digest:
            continue
        merged = reconcile(merged, DistInfo(integrity=str(digest)), package=package)
    return merged or Integrity()
