"""版本解析、比较与约束求解测试"""

from __future__ import annotations

import pytest

from arm.core.exceptions import InvalidConstraintError, NoVersionSatisfiesError
from arm.core.version import (
    ConstraintKind,
    branch_version,
    compare_versions,
    is_semver,
    normalize_constraint,
    parse_constraint,
    resolve_version,
    sort_versions_desc,
    tagged_version,
)


def _tags(*tags: str):
    return [tagged_version(t, f"sha-{t}") for t in tags]


class TestSemver:
    def test_is_semver(self) -> None:
        assert is_semver("1.2.3")
        assert is_semver("v1.2.3")
        assert is_semver("1.0.0-rc.1+build.5")
        assert not is_semver("1.2")
        assert not is_semver("main")

    def test_prerelease_sorts_below_release(self) -> None:
        rc, final = _tags("1.0.0-rc.1", "1.0.0")
        assert compare_versions(rc, final) < 0

    def test_numeric_prerelease_identifiers(self) -> None:
        a, b = _tags("1.0.0-alpha.2", "1.0.0-alpha.10")
        assert compare_versions(a, b) < 0

    def test_build_metadata_ignored(self) -> None:
        a, b = _tags("1.0.0+a", "1.0.0+b")
        assert compare_versions(a, b) == 0

    def test_sort_desc_puts_branches_last(self) -> None:
        versions = _tags("1.0.0", "2.1.0", "1.10.0") + [branch_version("main", "abc")]
        ordered = [v.display for v in sort_versions_desc(versions)]
        assert ordered == ["2.1.0", "1.10.0", "1.0.0", "main"]

    def test_branch_versions_not_comparable(self) -> None:
        with pytest.raises(ValueError):
            compare_versions(branch_version("main", "a"), _tags("1.0.0")[0])


class TestParseConstraint:
    @pytest.mark.parametrize("text,expected", [
        ("", "latest"),
        ("latest", "latest"),
        ("1", "^1.0.0"),
        ("1.2", "~1.2.0"),
        ("v1.2.3", "1.2.3"),
        ("^1", "^1.0.0"),
        ("~1.2", "~1.2.0"),
        ("^1.2.3", "^1.2.3"),
        ("main", "main"),
        ("feature/x", "feature/x"),
    ])
    def test_normalize(self, text: str, expected: str) -> None:
        assert normalize_constraint(text) == expected

    def test_kinds(self) -> None:
        assert parse_constraint("1.0.0").kind == ConstraintKind.EXACT
        assert parse_constraint("^1.0.0").kind == ConstraintKind.CARET
        assert parse_constraint("~1.0.0").kind == ConstraintKind.TILDE
        assert parse_constraint("develop").kind == ConstraintKind.BRANCH
        assert parse_constraint("latest").kind == ConstraintKind.LATEST

    @pytest.mark.parametrize("text", ["^abc", "~1.x", "bad..ref", "-leading", "a b"])
    def test_invalid(self, text: str) -> None:
        with pytest.raises(InvalidConstraintError):
            parse_constraint(text)

    def test_caret_and_tilde_ranges(self) -> None:
        caret = parse_constraint("^1.2.0")
        tilde = parse_constraint("~1.2.0")
        v125, v130, v200 = _tags("1.2.5", "1.3.0", "2.0.0")
        assert caret.satisfied_by(v125) and caret.satisfied_by(v130)
        assert not caret.satisfied_by(v200)
        assert tilde.satisfied_by(v125)
        assert not tilde.satisfied_by(v130)

    def test_prerelease_only_when_requested(self) -> None:
        rc = _tags("1.3.0-rc.1")[0]
        assert not parse_constraint("^1.0.0").satisfied_by(rc)
        assert parse_constraint("^1.3.0-rc.0").satisfied_by(rc)


class TestResolveVersion:
    def test_latest_picks_greatest_stable(self) -> None:
        available = _tags("1.0.0", "2.0.0-rc.1", "1.5.0")
        assert resolve_version(parse_constraint("latest"), available).display == "1.5.0"

    def test_latest_falls_back_to_default_branch(self) -> None:
        available = [branch_version("main", "deadbeef")]
        v = resolve_version(parse_constraint("latest"), available)
        assert v.is_branch and v.resolved_id == "deadbeef"

    def test_caret_picks_highest_in_major(self) -> None:
        available = _tags("1.0.0", "1.4.2", "2.0.0")
        assert resolve_version(parse_constraint("1"), available).display == "1.4.2"

    def test_tilde_shorthand(self) -> None:
        available = _tags("1.2.0", "1.2.9", "1.3.0")
        assert resolve_version(parse_constraint("1.2"), available).display == "1.2.9"

    def test_exact(self) -> None:
        available = _tags("1.0.0", "1.0.1")
        v = resolve_version(parse_constraint("1.0.0"), available)
        assert v.resolved_id == "sha-1.0.0"

    def test_branch_by_name(self) -> None:
        available = _tags("1.0.0") + [branch_version("develop", "cafe")]
        v = resolve_version(parse_constraint("develop"), available)
        assert v.resolved_id == "cafe"

    def test_no_match(self) -> None:
        with pytest.raises(NoVersionSatisfiesError):
            resolve_version(parse_constraint("^3.0.0"), _tags("1.0.0", "2.0.0"))

    def test_missing_branch(self) -> None:
        with pytest.raises(NoVersionSatisfiesError):
            resolve_version(parse_constraint("release"), _tags("1.0.0"))

    def test_nothing_available(self) -> None:
        with pytest.raises(NoVersionSatisfiesError):
            resolve_version(parse_constraint("latest"), [])
