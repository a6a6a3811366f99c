"""Markdown → Ruleset 转换测试"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from arm.compiler import parse_resource
from arm.core.exceptions import ValidationError
from arm.services.converter import (
    RulesetConverter,
    convert_file,
    infer_enforcement,
    slugify,
    split_front_matter,
)

DOC = """\
# Team Rules

## Naming
- Always use descriptive names
- Prefer short functions
  keep them under 40 lines

### Testing Tips
- Consider property based tests
```python
def test_x(): ...
```
"""

MDC = """\
---
description: TypeScript conventions
globs: "**/*.ts, **/*.tsx"
alwaysApply: true
---
- Use strict mode
"""


class TestHelpers:
    def test_slugify(self) -> None:
        assert slugify("Testing Tips!") == "testing-tips"
        assert slugify("***") == "rule"

    @pytest.mark.parametrize("text,level", [
        ("Never commit secrets", "must"),
        ("Prefer composition", "should"),
        ("Consider caching", "may"),
        ("Use tabs", "should"),
    ])
    def test_infer_enforcement(self, text: str, level: str) -> None:
        assert infer_enforcement(text) == level

    def test_front_matter(self) -> None:
        meta, body = split_front_matter(MDC)
        assert meta["alwaysApply"] is True
        assert body.strip() == "- Use strict mode"
        assert split_front_matter("plain") == ({}, "plain")

    def test_unterminated_front_matter(self) -> None:
        with pytest.raises(ValidationError):
            split_front_matter("---\na: 1\n")

    def test_non_mapping_front_matter(self) -> None:
        with pytest.raises(ValidationError):
            split_front_matter("---\n- a\n---\nbody")


class TestRulesetConverter:
    def test_groups_and_bullets(self) -> None:
        doc = RulesetConverter().convert(DOC, "team", "Team")
        rules = doc["spec"]["rules"]
        assert list(rules) == [
            "naming-always-use-descriptive-names",
            "naming-prefer-short-functions",
            "testing-tips-consider-property-based-tests",
        ]
        assert rules["naming-always-use-descriptive-names"]["enforcement"] == "must"
        assert "keep them under 40 lines" in rules["naming-prefer-short-functions"]["body"]
        assert "def test_x(): ..." in rules["testing-tips-consider-property-based-tests"]["body"]
        assert doc["metadata"] == {"id": "team", "name": "Team", "description": ""}

    def test_mdc_front_matter(self) -> None:
        doc = RulesetConverter().convert(MDC, "ts", source="ts.mdc")
        (rule,) = doc["spec"]["rules"].values()
        assert rule["enforcement"] == "must"
        assert rule["scope"] == [{"files": ["**/*.ts", "**/*.tsx"]}]
        assert doc["metadata"]["description"] == "TypeScript conventions"

    def test_no_bullets_becomes_single_rule(self) -> None:
        doc = RulesetConverter().convert("Write clear commit messages.\n", "commits")
        assert list(doc["spec"]["rules"]) == ["general-write-clear-commit-messages"]

    def test_duplicate_titles_get_suffix(self) -> None:
        doc = RulesetConverter().convert("- Same\n- Same\n", "dup")
        assert list(doc["spec"]["rules"]) == ["general-same", "general-same-2"]

    def test_empty_document(self) -> None:
        with pytest.raises(ValidationError):
            RulesetConverter().convert("   \n", "x")


class TestConvertFile:
    def test_writes_valid_resource(self, tmp_path: Path) -> None:
        src = tmp_path / "Team Rules.md"
        src.write_text(DOC, encoding="utf-8")
        dest, text = convert_file(src)
        assert dest == tmp_path / "Team Rules.yml"
        loaded = yaml.safe_load(dest.read_text(encoding="utf-8"))
        assert loaded["metadata"]["id"] == "team-rules"
        assert parse_resource(text).id == "team-rules"

    def test_dry_run(self, tmp_path: Path) -> None:
        src = tmp_path / "r.mdc"
        src.write_text(MDC, encoding="utf-8")
        dest, text = convert_file(src, tmp_path / "out.yml", ruleset_id="ts", dry_run=True)
        assert not dest.exists()
        assert "kind: Ruleset" in text

    def test_unsupported_suffix(self, tmp_path: Path) -> None:
        src = tmp_path / "r.txt"
        src.write_text("- rule")
        with pytest.raises(ValidationError):
            convert_file(src)

    def test_missing_input(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError):
            convert_file(tmp_path / "nope.md")
