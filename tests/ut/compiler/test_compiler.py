"""编译器与各目标生成测试"""

from __future__ import annotations

import pytest

from arm.compiler import compile_file, get_emitter, is_compilable_path, supported_targets
from arm.core.exceptions import UnsupportedTargetError
from arm.core.models import File

SOURCE = b"""\
apiVersion: v1
kind: Ruleset
metadata:
  id: style
  name: Style
spec:
  rules:
    b-rule:
      name: Second
      description: Second rule
      enforcement: must
      scope:
        - files: ["**/*.ts"]
      body: Body B
    a-rule:
      name: First
      body: Body A
"""


def _by_name(outputs: list[File]) -> dict[str, str]:
    return {f.path: f.content.decode("utf-8") for f in outputs}


class TestCompileFile:
    def test_cursor_outputs_sorted_by_item_id(self) -> None:
        out = compile_file(File("rules/style.yml", SOURCE), "cursor", "ai-rules/style@1.0.0")
        assert [f.path for f in out] == ["rules/style_a-rule.mdc", "rules/style_b-rule.mdc"]

    def test_cursor_front_matter(self) -> None:
        out = _by_name(compile_file(File("style.yml", SOURCE), "cursor", "ns"))
        text = out["style_b-rule.mdc"]
        assert text.startswith('---\ndescription: "Second rule"\nglobs: **/*.ts\nalwaysApply: true\n---\n')
        assert "namespace: ns" in text
        assert "  enforcement: MUST" in text
        assert text.rstrip().endswith("Body B")

    def test_metadata_lists_all_rule_ids(self) -> None:
        text = _by_name(compile_file(File("style.yml", SOURCE), "amazonq", "ns"))["style_a-rule.md"]
        assert "  rules:\n    - a-rule\n    - b-rule\n" in text
        assert text.startswith("---\nnamespace: ns\n")

    def test_copilot_apply_to(self) -> None:
        out = _by_name(compile_file(File("style.yml", SOURCE), "copilot", "ns"))
        assert out["style_b-rule.instructions.md"].startswith('---\napplyTo: "**/*.ts"\n---\n')
        assert out["style_a-rule.instructions.md"].startswith("---\nnamespace: ns")

    def test_namespace_defaults_to_stem(self) -> None:
        text = _by_name(compile_file(File("style.yml", SOURCE), "markdown"))["style_a-rule.md"]
        assert "namespace: style\n" in text

    def test_promptset_body_only(self) -> None:
        src = b"apiVersion: v1\nkind: Promptset\nmetadata: {id: p}\nspec:\n  prompts:\n    ask: {name: Ask, body: Just ask}\n"
        out = compile_file(File("p.yml", src), "cursor", "ns")
        assert out == [File("p_ask.md", b"Just ask\n")]


class TestTargets:
    def test_supported(self) -> None:
        assert set(supported_targets()) == {"cursor", "copilot", "amazonq", "markdown"}
        assert get_emitter("md").name == "markdown"

    def test_unknown(self) -> None:
        with pytest.raises(UnsupportedTargetError):
            get_emitter("vim")

    def test_compilable_paths(self) -> None:
        assert is_compilable_path("a/b.yml")
        assert is_compilable_path("B.YAML")
        assert not is_compilable_path("a.md")
