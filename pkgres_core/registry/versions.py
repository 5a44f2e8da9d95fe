"""Semver parsing, npm-style ranges and the default manifest picker.

The resolver treats manifest picking as a pluggable policy; ``pick_manifest``
is the implementation used when the caller does not supply one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Tuple

from .errors import NoMatchingVersionError
from .types import Packument, parse_timestamp

_VERSION_RE = re.compile(
    r"^\s*[v=]?\s*(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?(?:\+([0-9A-Za-z.-]+))?\s*$"
)
_PARTIAL_RE = re.compile(
    r"^[v=]?(\*|x|X|\d+)(?:\.(\*|x|X|\d+)(?:\.(\*|x|X|\d+)"
    r"(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?)?)?$"
)
_HYPHEN_RE = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")
_OPERATOR_RE = re.compile(r"^(<=|>=|<|>|=|\^|~>|~)?(.*)$")
_TAG_RE = re.compile(r"^[A-Za-z0-9._-]+$")

Identifier = Tuple[int, Any]
Partial = Tuple[Optional[int], Optional[int], Optional[int], Tuple[str, ...]]


def _identifiers(prerelease: Iterable[str]) -> tuple[Identifier, ...]:
    # numeric identifiers sort before alphanumeric ones
    return tuple((0, int(item)) if item.isdigit() else (1, item) for item in prerelease)


@dataclass(frozen=True, order=False)
class Version:
    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: str | None = field(default=None, compare=False)

    def key(self) -> tuple:
        release = (self.major, self.minor, self.patch)
        if not self.prerelease:
            return (release, 1, ())
        return (release, 0, _identifiers(self.prerelease))

    def __lt__(self, other: "Version") -> bool:
        return self.key() < other.key()

    def __le__(self, other: "Version") -> bool:
        return self.key() <= other.key()

    def __gt__(self, other: "Version") -> bool:
        return self.key() > other.key()

    def __ge__(self, other: "Version") -> bool:
        return self.key() >= other.key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        return text


def parse_version(value: str | None) -> Version | None:
    match = _VERSION_RE.match(value or "")
    if not match:
        return None
    prerelease = tuple(match.group(4).split(".")) if match.group(4) else ()
    return Version(
        major=int(match.group(1)),
        minor=int(match.group(2)),
        patch=int(match.group(3)),
        prerelease=prerelease,
        build=match.group(5),
    )


def clean(value: str | None) -> str | None:
    version = parse_version(value)
    return str(version) if version is not None else None


def version_key(value: str) -> tuple:
    version = parse_version(value)
    if version is None:
        return ((-1, -1, -1), 0, ())
    return version.key()


@dataclass(frozen=True)
class Comparator:
    operator: str
    version: Version

    def test(self, version: Version) -> bool:
        if self.operator == "<":
            return version < self.version
        if self.operator == "<=":
            return version <= self.version
        if self.operator == ">":
            return version > self.version
        if self.operator == ">=":
            return version >= self.version
        return version.key() == self.version.key()


def _parse_partial(text: str) -> Partial | None:
    if text in ("", "*", "x", "X"):
        return (None, None, None, ())
    match = _PARTIAL_RE.match(text)
    if not match:
        return None

    def _num(part: str | None) -> int | None:
        if part is None or part in ("*", "x", "X"):
            return None
        return int(part)

    major, minor, patch = _num(match.group(1)), _num(match.group(2)), _num(match.group(3))
    if major is None:
        minor = patch = None
    elif minor is None:
        patch = None
    prerelease = tuple(match.group(4).split(".")) if match.group(4) and patch is not None else ()
    return (major, minor, patch, prerelease)


def _floor(partial: Partial) -> Version:
    major, minor, patch, prerelease = partial
    return Version(major or 0, minor or 0, patch or 0, prerelease)


def _ceiling(major: int, minor: int = 0, patch: int = 0) -> Version:
    # "-0" keeps prereleases of the bound itself out of the range
    return Version(major, minor, patch, ("0",))


def _next_partial_bound(partial: Partial) -> Version | None:
    major, minor, _, _ = partial
    if major is None:
        return None
    if minor is None:
        return _ceiling(major + 1)
    return _ceiling(major, minor + 1)


def _desugar(operator: str, partial: Partial) -> list[Comparator] | None:
    major, minor, patch, _ = partial
    exact = patch is not None
    if major is None:
        if operator in ("<", ">"):
            return [Comparator("<", Version(0, 0, 0, ("0",)))]
        return [Comparator(">=", Version(0, 0, 0))]

    if operator in ("", "="):
        if exact:
            return [Comparator("=", _floor(partial))]
        return [Comparator(">=", _floor(partial)), Comparator("<", _next_partial_bound(partial))]

    if operator == "^":
        low = _floor(partial)
        if major > 0 or minor is None:
            high = _ceiling(major + 1)
        elif minor > 0 or patch is None:
            high = _ceiling(0, minor + 1)
        else:
            high = _ceiling(0, 0, patch + 1)
        return [Comparator(">=", low), Comparator("<", high)]

    if operator in ("~", "~>"):
        low = _floor(partial)
        high = _ceiling(major + 1) if minor is None else _ceiling(major, minor + 1)
        return [Comparator(">=", low), Comparator("<", high)]

    if operator == ">":
        if exact:
            return [Comparator(">", _floor(partial))]
        bound = _next_partial_bound(partial)
        return [Comparator(">=", Version(bound.major, bound.minor, bound.patch))]

    if operator == ">=":
        return [Comparator(">=", _floor(partial))]

    if operator == "<":
        if exact:
            return [Comparator("<", _floor(partial))]
        return [Comparator("<", _ceiling(major, minor or 0))]

    if operator == "<=":
        if exact:
            return [Comparator("<=", _floor(partial))]
        return [Comparator("<", _next_partial_bound(partial))]
    return None


def _parse_comparator_set(text: str) -> list[Comparator] | None:
    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        low = _parse_partial(hyphen.group(1))
        high = _parse_partial(hyphen.group(2))
        if low is None or high is None:
            return None
        comparators = [Comparator(">=", _floor(low))] if low[0] is not None else []
        if high[0] is None:
            return comparators or [Comparator(">=", Version(0, 0, 0))]
        if high[2] is not None:
            comparators.append(Comparator("<=", _floor(high)))
        else:
            comparators.append(Comparator("<", _next_partial_bound(high)))
        return comparators

    normalized = re.sub(r"(<=|>=|<|>|=|\^|~>|~)\s+", r"\1", text.strip())
    tokens = normalized.split()
    if not tokens:
        return [Comparator(">=", Version(0, 0, 0))]
    comparators: list[Comparator] = []
    for token in tokens:
        match = _OPERATOR_RE.match(token)
        operator = match.group(1) or ""
        partial = _parse_partial(match.group(2))
        if partial is None:
            return None
        desugared = _desugar(operator, partial)
        if desugared is None:
            return None
        comparators.extend(desugared)
    return comparators


def parse_range(text: str | None) -> list[list[Comparator]] | None:
    alternatives: list[list[Comparator]] = []
    for part in (text or "").split("||"):
        comparators = _parse_comparator_set(part)
        if comparators is None:
            return None
        alternatives.append(comparators)
    return alternatives


def valid_range(text: str | None) -> bool:
    return parse_range(text) is not None


def valid_tag(text: str | None) -> bool:
    return bool(text) and bool(_TAG_RE.match(text or "")) and parse_version(text) is None


def _set_allows_prerelease(comparators: list[Comparator], version: Version) -> bool:
    release = (version.major, version.minor, version.patch)
    return any(
        item.version.prerelease and (item.version.major, item.version.minor, item.version.patch) == release
        for item in comparators
    )


def satisfies(version: str | Version, range_text: str) -> bool:
    parsed = version if isinstance(version, Version) else parse_version(version)
    alternatives = parse_range(range_text)
    if parsed is None or alternatives is None:
        return False
    for comparators in alternatives:
        if not all(item.test(parsed) for item in comparators):
            continue
        if parsed.prerelease and not _set_allows_prerelease(comparators, parsed):
            continue
        return True
    return False


def _published_in_time(packument: Packument, version: str, cutoff: datetime | None) -> bool:
    if cutoff is None:
        return True
    stamp = packument.time.get(version)
    if not stamp:
        return True
    return parse_timestamp(stamp) <= cutoff


def _pick_from_range(
    packument: Packument,
    range_text: str,
    *,
    default_tag: str,
    before: datetime | None,
) -> Mapping[str, Any] | None:
    versions = packument.versions
    default_version = packument.dist_tags.get(default_tag)
    if default_version and (range_text == "*" or satisfies(default_version, range_text)):
        manifest = versions.get(default_version)
        if (
            manifest is not None
            and _published_in_time(packument, default_version, before)
            and not manifest.get("deprecated")
        ):
            return manifest

    candidates = [
        (version, manifest)
        for version, manifest in versions.items()
        if _published_in_time(packument, version, before) and satisfies(version, range_text)
    ]
    if not candidates:
        return None
    candidates.sort(key=lambda item: (not item[1].get("deprecated"), version_key(item[0])), reverse=True)
    return candidates[0][1]


def pick_manifest(
    packument: Packument,
    wanted: str | None,
    *,
    default_tag: str = "latest",
    before: datetime | None = None,
) -> Mapping[str, Any] | None:
    """Pick the best manifest for ``wanted`` (version, range or dist-tag)."""
    if not packument.versions:
        raise NoMatchingVersionError(
            f"No versions available for {packument.name}",
            package=packument.name,
            wanted=wanted,
        )
    selector = (wanted or "").strip()
    before = parse_timestamp(before)

    if selector and valid_tag(selector) and not valid_range(selector):
        tagged = packument.dist_tags.get(selector)
        if tagged is None:
            return None
        if _published_in_time(packument, tagged, before):
            return packument.versions.get(tagged)
        return _pick_from_range(packument, f"<={tagged}", default_tag=default_tag, before=before)

    exact = clean(selector) if selector else None
    if exact is not None:
        manifest = packument.versions.get(exact)
        if manifest is None or not _published_in_time(packument, exact, before):
            return None
        return manifest

    range_text = selector or "*"
    if not valid_range(range_text):
        return None
    return _pick_from_range(packument, range_text, default_tag=default_tag, before=before)
