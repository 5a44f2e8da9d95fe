from __future__ import annotations

import base64
import hashlib

import pytest

from pkgres_core.registry.errors import IntegrityConflictError, InvalidManifestError
from pkgres_core.registry.integrity import (
    Integrity,
    integrity_for_dist,
    parse_integrity,
    reconcile,
    reconcile_all,
)
from pkgres_core.registry.types import DistInfo


def _sri(algorithm: str, data: bytes) -> str:
    digest = hashlib.new(algorithm, data).digest()
    return f"{algorithm}-{base64.b64encode(digest).decode('ascii')}"


SHA512_A = _sri("sha512", b"tarball-a")
SHA512_B = _sri("sha512", b"tarball-b")
SHA1_A = _sri("sha1", b"tarball-a")


def test_parse_integrity_keeps_multiple_algorithms_and_skips_garbage() -> None:
    parsed = parse_integrity(f"{SHA512_A} not-an-entry {SHA1_A}?opt")
    assert parsed.algorithms == ("sha512", "sha1")
    assert str(parsed) == f"{SHA512_A} {SHA1_A}?opt"
    assert parsed.pick_algorithm() == "sha512"


def test_dist_integrity_prefers_integrity_field_over_shasum() -> None:
    dist = DistInfo(integrity=SHA512_A, shasum=hashlib.sha1(b"other").hexdigest())
    assert integrity_for_dist(dist) == parse_integrity(SHA512_A)


def test_dist_integrity_synthesizes_legacy_sha1_from_shasum() -> None:
    dist = DistInfo(shasum=hashlib.sha1(b"tarball-a").hexdigest())
    assert integrity_for_dist(dist) == parse_integrity(SHA1_A)


def test_dist_integrity_empty_when_registry_asserts_nothing() -> None:
    assert not integrity_for_dist(DistInfo())


def test_invalid_shasum_is_a_manifest_error() -> None:
    with pytest.raises(InvalidManifestError):
        integrity_for_dist(DistInfo(shasum="zz-not-hex"), package="demo@1.0.0")


def test_reconcile_without_expectation_returns_dist_digest() -> None:
    assert reconcile(None, DistInfo(integrity=SHA512_A)) == parse_integrity(SHA512_A)


def test_reconcile_unions_when_no_algorithm_overlaps() -> None:
    merged = reconcile(parse_integrity(SHA1_A), DistInfo(integrity=SHA512_B))
    assert merged.digests("sha1") == parse_integrity(SHA1_A).digests("sha1")
    assert merged.digests("sha512") == parse_integrity(SHA512_B).digests("sha512")
    assert merged.algorithms == ("sha1", "sha512")


def test_reconcile_fails_on_conflicting_overlap() -> None:
    with pytest.raises(IntegrityConflictError) as excinfo:
        reconcile(parse_integrity(SHA512_A), DistInfo(integrity=SHA512_B), package="demo@1.0.0")
    err = excinfo.value
    assert err.code == "EINTEGRITY"
    assert err.algorithm == "sha512"
    assert err.expected == SHA512_A
    assert err.actual == SHA512_B
    assert err.package == "demo@1.0.0"
    assert "sha512" in str(err)


def test_reconcile_ignores_non_overlapping_difference_when_overlap_matches() -> None:
    expected = parse_integrity(f"{SHA512_A} {_sri('sha256', b'x')}")
    merged = reconcile(expected, DistInfo(integrity=f"{SHA512_A} {SHA1_A}"))
    assert set(merged.algorithms) == {"sha512", "sha256", "sha1"}


def test_reconcile_keeps_expected_when_registry_is_silent() -> None:
    expected = parse_integrity(SHA512_A)
    assert reconcile(expected, DistInfo()) is expected


def test_reconcile_all_folds_pairwise() -> None:
    merged = reconcile_all([parse_integrity(SHA1_A), None, parse_integrity(SHA512_A)])
    assert set(merged.algorithms) == {"sha1", "sha512"}
    with pytest.raises(IntegrityConflictError):
        reconcile_all([merged, parse_integrity(SHA512_B)])


def test_check_bytes_uses_strongest_algorithm() -> None:
    integrity = parse_integrity(f"{SHA1_A} {SHA512_A}")
    assert integrity.check_bytes(b"tarball-a")
    assert not integrity.check_bytes(b"tarball-b")
    assert Integrity().check_bytes(b"anything")
