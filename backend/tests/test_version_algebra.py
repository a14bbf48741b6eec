from __future__ import annotations

import itertools

import pytest

from update_manager.services.version_algebra import (
    compare,
    gap_type,
    in_list,
    is_newer,
    parse,
    sort_versions,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1.2.3", (1, 2, 3)),
        ("1.2", (1, 2, 0)),
        ("7", (7, 0, 0)),
        ("2.0.0-beta.1", (2, 0, 0)),
        ("2.0.0+build.77", (2, 0, 0)),
        ("v3.1.4", (3, 1, 4)),
        ("1.x.2", (1, 0, 2)),
        ("", (0, 0, 0)),
        (None, (0, 0, 0)),
    ],
)
def test_parse_is_lenient(raw, expected) -> None:
    assert parse(raw) == expected


def test_compare_orders_numerically_not_lexically() -> None:
    assert compare("1.10.0", "1.9.0") == 1
    assert compare("1.0.0", "1.0.0") == 0
    assert compare("1.0", "1.0.0") == 0
    assert compare("0.9.9", "1.0.0") == -1


def test_prerelease_and_build_tags_do_not_affect_ordering() -> None:
    assert compare("2.0.0-rc.1", "2.0.0") == 0
    assert compare("2.0.0+abc", "2.0.0+xyz") == 0


def test_ordering_is_total_and_transitive() -> None:
    samples = ["0.1", "1.0.0", "1.0.1", "1.2", "1.10.0", "2.0.0-rc", "2.0.0", "10.0.0", "garbage"]
    for a, b in itertools.product(samples, repeat=2):
        assert compare(a, b) in (-1, 0, 1)
        assert compare(a, b) == -compare(b, a)
    for a, b, c in itertools.product(samples, repeat=3):
        if compare(a, b) < 0 and compare(b, c) < 0:
            assert compare(a, c) < 0


def test_sort_versions_ascending() -> None:
    assert sort_versions(["2.0.0", "1.10.0", "1.2.0", "1.9.9"]) == ["1.2.0", "1.9.9", "1.10.0", "2.0.0"]


@pytest.mark.parametrize(
    ("current", "latest", "expected"),
    [
        ("1.0.0", "2.0.0", "major"),
        ("1.0.0", "1.1.0", "minor"),
        ("1.0.0", "1.0.5", "patch"),
        ("1.9.9", "2.0.0", "major"),
        ("1.0.0", "1.0.0", "unknown"),
        ("2.0.0", "1.0.0", "unknown"),
    ],
)
def test_gap_type(current, latest, expected) -> None:
    assert gap_type(current, latest) == expected


def test_patch_gap_keeps_major_and_minor() -> None:
    for current, latest in [("1.2.0", "1.2.9"), ("3.4.1", "3.4.2")]:
        assert gap_type(current, latest) == "patch"
        assert parse(current)[:2] == parse(latest)[:2]
        assert is_newer(latest, current)


def test_in_list_matches_by_ordering() -> None:
    assert in_list("1.0", ["1.0.0", "2.0.0"])
    assert not in_list("1.0.1", ["1.0.0"])
    assert not in_list("1.0.0", None)
