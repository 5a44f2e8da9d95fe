from __future__ import annotations

from pathlib import Path

import pytest

from pkgres_core.registry.errors import UnsupportedSpecError
from pkgres_core.sources.models import ResolveOptions, escape_name
from pkgres_core.sources.spec import parse_spec


@pytest.mark.parametrize(
    ("raw", "kind", "name", "fetch_spec"),
    [
        ("demo", "tag", "demo", "latest"),
        ("demo@", "tag", "demo", "latest"),
        ("demo@1.2.3", "version", "demo", "1.2.3"),
        ("demo@v1.2.3", "version", "demo", "1.2.3"),
        ("demo@^1.2", "range", "demo", "^1.2"),
        ("demo@1.x || 2", "range", "demo", "1.x || 2"),
        ("demo@next", "tag", "demo", "next"),
        ("@scope/pkg@~2.0.0", "range", "@scope/pkg", "~2.0.0"),
    ],
)
def test_registry_specs(raw: str, kind: str, name: str, fetch_spec: str) -> None:
    request = parse_spec(raw)
    assert (request.kind, request.name, request.fetch_spec) == (kind, name, fetch_spec)
    assert request.registry == "https://registry.npmjs.org/"


def test_default_tag_comes_from_options() -> None:
    request = parse_spec("demo", ResolveOptions(default_tag="stable"))
    assert request.fetch_spec == "stable"
    assert request.spec == "demo@stable"


def test_scoped_registry_override() -> None:
    options = ResolveOptions(scoped_registries=(("@corp", "https://npm.corp.example/"),))
    assert parse_spec("@corp/tool@1.0.0", options).registry == "https://npm.corp.example/"
    assert parse_spec("@other/tool@1.0.0", options).registry == "https://registry.npmjs.org/"


@pytest.mark.parametrize(
    ("raw", "fetch_spec"),
    [
        ("github:user/repo#v1.0.0", "git+https://github.com/user/repo.git#v1.0.0"),
        ("gitlab:group/project", "git+https://gitlab.com/group/project.git"),
        ("user/repo", "git+https://github.com/user/repo.git"),
        ("git+ssh://git@example.org/repo.git#main", "git+ssh://git@example.org/repo.git#main"),
        ("https://example.org/repo.git", "https://example.org/repo.git"),
    ],
)
def test_git_specs(raw: str, fetch_spec: str) -> None:
    request = parse_spec(raw)
    assert request.kind == "git"
    assert request.fetch_spec == fetch_spec


def test_named_git_spec_keeps_name() -> None:
    request = parse_spec("demo@github:user/demo")
    assert request.kind == "git"
    assert request.name == "demo"


def test_remote_tarball_spec() -> None:
    request = parse_spec("https://example.org/demo-1.0.0.tgz")
    assert request.kind == "remote"
    assert request.name is None
    assert request.spec == "https://example.org/demo-1.0.0.tgz"


def test_directory_spec_is_resolved_against_where(tmp_path: Path) -> None:
    request = parse_spec("file:./pkg", where=tmp_path)
    assert request.kind == "directory"
    assert request.fetch_spec == str((tmp_path / "pkg").resolve())
    assert parse_spec("../sibling", where=tmp_path).fetch_spec == str((tmp_path.parent / "sibling").resolve())


@pytest.mark.parametrize("raw", ["", "   ", "file:./demo.tgz", "Not A Name!", "demo@>>>"])
def test_unsupported_specs(raw: str) -> None:
    with pytest.raises(UnsupportedSpecError) as excinfo:
        parse_spec(raw)
    assert excinfo.value.code == "EUNSUPPORTEDSPEC"


def test_escape_name_keeps_scope_marker() -> None:
    assert escape_name("@scope/pkg") == "@scope%2fpkg"
    assert escape_name("plain") == "plain"


def test_requests_are_hashable_and_equal_by_value() -> None:
    assert parse_spec("demo@1.0.0") == parse_spec("demo@1.0.0")
    assert len({parse_spec("demo@1.0.0"), parse_spec("demo@1.0.0")}) == 1
