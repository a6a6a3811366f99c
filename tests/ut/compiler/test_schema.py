"""资源文档解析与校验测试"""

from __future__ import annotations

import pytest

from arm.compiler.schema import looks_like_resource, parse_resource
from arm.core.exceptions import CompileError

RULESET = """\
apiVersion: v1
kind: Ruleset
metadata:
  id: clean-code
  name: Clean Code
spec:
  rules:
    naming:
      name: Meaningful names
      enforcement: MUST
      priority: 10
      scope:
        - files: ["**/*.py"]
      body: Use intention-revealing names.
    small-functions:
      name: Small functions
      body: Keep functions short.
"""

PROMPTSET = """\
apiVersion: v1
kind: Promptset
metadata:
  id: reviews
spec:
  prompts:
    review:
      name: Code review
      body: Review this diff.
"""


class TestParseResource:
    def test_ruleset(self) -> None:
        r = parse_resource(RULESET, "clean.yml")
        assert r.is_ruleset
        assert r.id == "clean-code"
        assert r.item_ids() == ["naming", "small-functions"]
        naming = next(x for x in r.rules if x.id == "naming")
        assert naming.enforcement == "must"
        assert naming.priority == 10
        assert naming.scope == ["**/*.py"]

    def test_promptset_name_defaults_to_id(self) -> None:
        r = parse_resource(PROMPTSET.encode("utf-8"), "p.yml")
        assert not r.is_ruleset
        assert r.name == "reviews"
        assert r.prompts[0].body == "Review this diff."

    def test_scope_as_mapping(self) -> None:
        text = RULESET.replace('        - files: ["**/*.py"]', '        files: "*.py"')
        r = parse_resource(text, "x.yml")
        assert next(x for x in r.rules if x.id == "naming").scope == ["*.py"]

    def test_collects_all_errors(self) -> None:
        bad = """\
apiVersion: v1
kind: Ruleset
metadata: {}
spec:
  rules:
    a: {enforcement: sometimes}
"""
        with pytest.raises(CompileError) as exc:
            parse_resource(bad, "bad.yml")
        err = exc.value
        assert err.path == "bad.yml"
        assert any("metadata.id" in d for d in err.details)
        assert any("name" in d for d in err.details)
        assert any("enforcement" in d for d in err.details)

    def test_unknown_kind(self) -> None:
        with pytest.raises(CompileError, match="kind 无效"):
            parse_resource("apiVersion: v1\nkind: Thing\nmetadata: {id: x}\nspec: {}\n", "t.yml")

    def test_invalid_yaml(self) -> None:
        with pytest.raises(CompileError, match="YAML 解析失败"):
            parse_resource("key: [unclosed", "broken.yml")


class TestLooksLikeResource:
    def test_detection(self) -> None:
        assert looks_like_resource(RULESET)
        assert not looks_like_resource("name: config\nvalues: [1]\n")
        assert not looks_like_resource("- a\n- b\n")
        assert not looks_like_resource(b"\xff\xfe")
