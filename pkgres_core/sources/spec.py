"""Parse ``name@selector`` style package specs into typed requests."""

from __future__ import annotations

import re
from pathlib import Path

from pkgres_core.registry.errors import UnsupportedSpecError
from pkgres_core.registry.versions import clean, valid_range, valid_tag

from .models import PackageRequest, ResolveOptions

_NAME_RE = re.compile(r"^(?:@[a-z0-9][\w.~-]*/)?[a-z0-9][\w.~-]*$", re.IGNORECASE)
_HOSTED_SHORTCUTS = {
    "github:": "https://github.com/{path}.git",
    "gitlab:": "https://gitlab.com/{path}.git",
    "bitbucket:": "https://bitbucket.org/{path}.git",
}
_GITHUB_SHORTHAND_RE = re.compile(r"^[\w.-]+/[\w.-]+(?:#.*)?$")
_TARBALL_SUFFIXES = (".tgz", ".tar.gz", ".tar")


def _is_directory_spec(value: str) -> bool:
    return value.startswith(("file:", "./", "../", "/", "~/")) or value in (".", "..")


def _is_git_spec(value: str) -> bool:
    if value.startswith(("git+", "git://", "git@")) or value.startswith(tuple(_HOSTED_SHORTCUTS)):
        return True
    if value.startswith(("http://", "https://")):
        return value.split("#", 1)[0].endswith(".git")
    return False


def _expand_git(value: str) -> str:
    for prefix, template in _HOSTED_SHORTCUTS.items():
        if value.startswith(prefix):
            path, _, committish = value[len(prefix) :].partition("#")
            url = template.format(path=path)
            return f"git+{url}#{committish}" if committish else f"git+{url}"
    if _GITHUB_SHORTHAND_RE.match(value) and not value.startswith("git"):
        return _expand_git(f"github:{value}")
    return value


def _directory_path(value: str, where: Path) -> str:
    raw = value[len("file:") :] if value.startswith("file:") else value
    if raw.startswith("//"):
        raw = raw[2:]
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = where / path
    return str(path.resolve())


def _classify(name: str | None, rest: str, raw: str, options: ResolveOptions, where: Path) -> PackageRequest:
    if _is_git_spec(rest) or (name is None and _GITHUB_SHORTHAND_RE.match(rest)):
        return PackageRequest(raw=raw, kind="git", name=name, fetch_spec=_expand_git(rest), registry=options.registry, options=options)
    if rest.startswith(("http://", "https://")):
        return PackageRequest(raw=raw, kind="remote", name=name, fetch_spec=rest, registry=options.registry, options=options)
    if _is_directory_spec(rest):
        if rest.endswith(_TARBALL_SUFFIXES):
            raise UnsupportedSpecError(f"local tarball specs are not supported: {raw}", package=raw)
        return PackageRequest(
            raw=raw,
            kind="directory",
            name=name,
            fetch_spec=_directory_path(rest, where),
            registry=options.registry,
            options=options,
        )

    if not name:
        raise UnsupportedSpecError(f"unable to determine package name from {raw!r}", package=raw)
    registry = options.registry_for(name)
    selector = rest.strip()
    if not selector:
        # an implicit selector means the configured default tag
        return PackageRequest(raw=raw, kind="tag", name=name, fetch_spec=options.default_tag, registry=registry, options=options)
    exact = clean(selector)
    if exact is not None:
        return PackageRequest(raw=raw, kind="version", name=name, fetch_spec=exact, registry=registry, options=options)
    if valid_tag(selector) and not valid_range(selector):
        return PackageRequest(raw=raw, kind="tag", name=name, fetch_spec=selector, registry=registry, options=options)
    if valid_range(selector):
        return PackageRequest(raw=raw, kind="range", name=name, fetch_spec=selector, registry=registry, options=options)
    raise UnsupportedSpecError(f"invalid version selector {selector!r} for {name}", package=raw)


def parse_spec(raw: str, options: ResolveOptions | None = None, *, where: Path | None = None) -> PackageRequest:
    options = options or ResolveOptions()
    where = (where or Path.cwd()).resolve()
    value = raw.strip()
    if not value:
        raise UnsupportedSpecError("empty package spec", package=raw)

    if _is_git_spec(value) or value.startswith(("http://", "https://")) or _is_directory_spec(value):
        return _classify(None, value, value, options, where)

    at_index = value.find("@", 1) if value.startswith("@") else value.find("@")
    if at_index > 0:
        name, rest = value[:at_index], value[at_index + 1 :]
    else:
        name, rest = value, ""
    if not _NAME_RE.match(name):
        if not rest and _GITHUB_SHORTHAND_RE.match(value):
            return _classify(None, value, value, options, where)
        raise UnsupportedSpecError(f"invalid package name {name!r}", package=raw)
    return _classify(name, rest, value, options, where)
