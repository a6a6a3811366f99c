"""本地编译服务测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from arm.core.exceptions import UnsupportedTargetError, ValidationError
from arm.services.compile_service import (
    CompileRequest,
    CompileService,
    discover_files,
    parse_targets,
)

RULESET = """\
apiVersion: v1
kind: Ruleset
metadata: {id: style, name: Style}
spec:
  rules:
    one: {name: One, body: First rule}
    two: {name: Two, body: Second rule}
"""


@pytest.fixture
def sources(tmp_path: Path) -> Path:
    src = tmp_path / "src"
    (src / "nested").mkdir(parents=True)
    (src / "style.yml").write_text(RULESET)
    (src / "nested" / "deep.yaml").write_text(RULESET.replace("id: style", "id: deep"))
    (src / "README.md").write_text("# docs")
    return src


class TestParseTargets:
    def test_split_and_strip(self) -> None:
        assert parse_targets("cursor, copilot,") == ["cursor", "copilot"]

    def test_duplicate(self) -> None:
        with pytest.raises(ValidationError):
            parse_targets("cursor,cursor")

    def test_unknown(self) -> None:
        with pytest.raises(UnsupportedTargetError):
            parse_targets("cursor,emacs")

    def test_empty(self) -> None:
        with pytest.raises(ValidationError):
            parse_targets(" , ")


class TestDiscoverFiles:
    def test_non_recursive(self, sources: Path) -> None:
        assert [p.name for p in discover_files([str(sources)])] == ["style.yml"]

    def test_recursive_with_exclude(self, sources: Path) -> None:
        found = discover_files([str(sources)], recursive=True, exclude=["nested/**"])
        assert [p.name for p in found] == ["style.yml"]
        assert len(discover_files([str(sources)], recursive=True)) == 2

    def test_missing_path(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError):
            discover_files([str(tmp_path / "nope")])


class TestCompileService:
    def test_single_target(self, sources: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        req = CompileRequest(paths=[str(sources / "style.yml")], targets=["cursor"], output_dir=str(out))
        result = CompileService().run(req)
        assert result.success and result.files_compiled == 1
        assert sorted(p.name for p in out.iterdir()) == ["style_one.mdc", "style_two.mdc"]
        assert "namespace: style" in (out / "style_one.mdc").read_text()

    def test_multiple_targets_use_subdirectories(self, sources: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        req = CompileRequest(paths=[str(sources)], targets=["cursor", "amazonq"], output_dir=str(out), namespace="team")
        CompileService().run(req)
        assert (out / "cursor" / "style_one.mdc").exists()
        assert (out / "amazonq" / "style_one.md").exists()
        assert "namespace: team" in (out / "amazonq" / "style_two.md").read_text()

    def test_existing_output_requires_force(self, sources: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        req = CompileRequest(paths=[str(sources / "style.yml")], targets=["cursor"], output_dir=str(out))
        CompileService().run(req)
        again = CompileService().run(req)
        assert not again.success
        req.force = True
        assert CompileService().run(req).success

    def test_dry_run_writes_nothing(self, sources: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        req = CompileRequest(paths=[str(sources)], targets=["copilot"], output_dir=str(out), dry_run=True)
        result = CompileService().run(req)
        assert len(result.outputs) == 2
        assert not out.exists()

    def test_validate_only_reports_errors(self, sources: Path, tmp_path: Path) -> None:
        (sources / "broken.yml").write_text("apiVersion: v1\nkind: Ruleset\nmetadata: {}\n")
        req = CompileRequest(paths=[str(sources)], targets=["cursor"], output_dir=str(tmp_path / "o"), validate_only=True)
        result = CompileService().run(req)
        assert result.files_processed == 2
        assert list(result.errors) == [str(sources / "broken.yml")]
        assert result.outputs == []

    def test_fail_fast_stops(self, sources: Path, tmp_path: Path) -> None:
        (sources / "a-broken.yml").write_text("kind: Nope\n")
        req = CompileRequest(paths=[str(sources)], targets=["cursor"], output_dir=str(tmp_path / "o"), fail_fast=True)
        result = CompileService().run(req)
        assert result.files_processed == 1 and len(result.errors) == 1

    def test_validate_only_conflicts(self, sources: Path) -> None:
        req = CompileRequest(paths=[str(sources)], targets=["cursor"], validate_only=True, force=True)
        with pytest.raises(ValidationError):
            CompileService().run(req)
