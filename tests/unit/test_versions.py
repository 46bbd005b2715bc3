from __future__ import annotations

import pytest

from template_sync.utils.versions import (
    compare_versions,
    is_caret_version,
    is_strictly_newer,
    is_valid_version,
    strip_caret,
)


@pytest.mark.parametrize(
    ("left", "right", "expected"),
    [
        ("1.2.3", "1.2.3", 0),
        ("1.10.0", "1.9.9", 1),
        ("^2.0.0", "^1.9.0", 1),
        ("1.0.0-alpha", "1.0.0", -1),
        ("1.0.0-alpha.1", "1.0.0-alpha.beta", -1),
        ("v3", "2.9.9", 1),
    ],
)
def test_compare_versions(left: str, right: str, expected: int) -> None:
    assert compare_versions(left, right) == expected


def test_compare_versions_rejects_non_semver() -> None:
    with pytest.raises(ValueError):
        compare_versions("latest", "1.0.0")


def test_wildcard_is_newer_than_any_pinned_version() -> None:
    assert is_strictly_newer("*", "1.0.0")
    assert not is_strictly_newer("1.0.0", "*")
    assert not is_strictly_newer("*", "*")


def test_non_semver_values_never_compare_newer() -> None:
    assert not is_strictly_newer("latest", "1.0.0")
    assert not is_strictly_newer("file:../lib", "workspace:*")


def test_version_shapes() -> None:
    assert strip_caret("^1.0.0") == "1.0.0"
    assert is_valid_version(">=18")
    assert is_caret_version("^1.0.0")
    assert is_caret_version("1.0.0")
    assert not is_caret_version("~1.0.0")
    assert not is_caret_version("git+https://example.com/repo.git")
