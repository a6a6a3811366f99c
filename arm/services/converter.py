"""convert 命令 — 把 Markdown / Cursor .mdc 规则文档转换为 Ruleset 资源

转换规则:
  - 可选的 YAML front-matter: alwaysApply: true → 全部规则 enforcement=must，
    globs → scope，description → 资源描述
  - ## / ### 标题开启一个规则分组，分组名进入规则 id 与描述
  - 每个列表项（- * +）是一条规则；其后的普通行与代码块并入该规则正文
  - 文档没有任何列表项时，整篇正文作为一条规则
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from arm.compiler.schema import KIND_RULESET, parse_resource
from arm.core.exceptions import ValidationError
from arm.utils.fileio import dump_yaml, save_yaml

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".md", ".markdown", ".mdc")
DEFAULT_GROUP = "general"

_HEADER_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*$")
_BULLET_RE = re.compile(r"^[-*+]\s+(.+)$")
_FENCE_RE = re.compile(r"^(```|~~~)")

# 关键词推断强制级别（先匹配先生效）
_ENFORCEMENT_HINTS = (
    ("must", ("must", "never", "always", "required", "critical")),
    ("should", ("should", "prefer", "recommend", "important")),
    ("may", ("may", "consider", "optional")),
)


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug or "rule"


def split_front_matter(text: str) -> tuple[dict[str, Any], str]:
    """拆出开头 --- ... --- 之间的 YAML；无 front-matter 时返回空字典"""
    lines = text.splitlines()
    if not lines or lines[0].strip() != "---":
        return {}, text
    for i in range(1, len(lines)):
        if lines[i].strip() == "---":
            raw = "\n".join(lines[1:i])
            try:
                meta = yaml.safe_load(raw) or {}
            except yaml.YAMLError as e:
                raise ValidationError(f"front-matter 解析失败: {e}") from e
            if not isinstance(meta, dict):
                raise ValidationError("front-matter 必须是 YAML 对象")
            return meta, "\n".join(lines[i + 1:])
    raise ValidationError("front-matter 缺少结束标记 ---")


def _globs(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [g.strip() for g in value.split(",") if g.strip()]
    return [str(g) for g in value]


def infer_enforcement(text: str) -> str:
    words = set(re.findall(r"[a-z]+", text.lower()))
    for level, hints in _ENFORCEMENT_HINTS:
        if words.intersection(hints):
            return level
    return "should"


@dataclass
class _Draft:
    group: str
    title: str
    lines: list[str] = field(default_factory=list)

    def body(self) -> str:
        extra = "\n".join(self.lines).strip("\n")
        return f"{self.title}\n\n{extra}" if extra else self.title


class RulesetConverter:
    """逐行扫描 Markdown，生成 Ruleset 文档（dict）"""

    def convert(
        self, text: str, ruleset_id: str, ruleset_name: str = "", source: str = "",
    ) -> dict[str, Any]:
        meta, body = split_front_matter(text)
        always = meta.get("alwaysApply") is True
        scope = _globs(meta.get("globs"))

        drafts = self._scan(body)
        if not drafts and body.strip():
            drafts = [_Draft(DEFAULT_GROUP, body.strip())]
        if not drafts:
            raise ValidationError(f"{source or '输入'} 中没有可转换的规则内容")

        rules: dict[str, dict[str, Any]] = {}
        for draft in drafts:
            rid = self._unique(f"{draft.group}-{slugify(draft.title)[:48]}".strip("-"), rules)
            rule: dict[str, Any] = {
                "name": draft.title.splitlines()[0][:120],
                "description": f"{draft.group} 分组",
                "enforcement": "must" if always else infer_enforcement(draft.title),
            }
            if scope:
                rule["scope"] = [{"files": scope}]
            rule["body"] = draft.body() + "\n"
            rules[rid] = rule

        description = str(meta.get("description") or "")
        if not description and source:
            description = f"由 {source} 转换"
        return {
            "apiVersion": "v1",
            "kind": KIND_RULESET,
            "metadata": {
                "id": ruleset_id,
                "name": ruleset_name or ruleset_id,
                "description": description,
            },
            "spec": {"rules": rules},
        }

    @staticmethod
    def _unique(base: str, taken: dict[str, Any]) -> str:
        if base not in taken:
            return base
        n = 2
        while f"{base}-{n}" in taken:
            n += 1
        return f"{base}-{n}"

    @staticmethod
    def _scan(body: str) -> list[_Draft]:
        drafts: list[_Draft] = []
        group = DEFAULT_GROUP
        current: _Draft | None = None
        in_code = False
        for line in body.splitlines():
            stripped = line.strip()
            if _FENCE_RE.match(stripped):
                in_code = not in_code
                if current is not None:
                    current.lines.append(stripped)
                continue
            if in_code:
                if current is not None:
                    current.lines.append(line)
                continue
            header = _HEADER_RE.match(stripped)
            if header:
                current = None
                if len(header.group(1)) in (2, 3):
                    group = slugify(header.group(2))
                continue
            bullet = _BULLET_RE.match(stripped)
            if bullet:
                current = _Draft(group, bullet.group(1).strip())
                drafts.append(current)
                continue
            if current is not None and stripped:
                current.lines.append(stripped)
        return drafts


def default_ruleset_id(path: Path) -> str:
    return slugify(path.stem)


def convert_file(
    input_path: str | Path,
    output: str | Path | None = None,
    ruleset_id: str = "",
    ruleset_name: str = "",
    dry_run: bool = False,
) -> tuple[Path, str]:
    """转换单个文件；返回 (输出路径, YAML 文本)。dry_run 时不写盘"""
    src = Path(input_path)
    if not src.is_file():
        raise ValidationError(f"输入文件不存在: {src}")
    if src.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise ValidationError(
            f"不支持的输入格式: {src.suffix}（可选: {', '.join(SUPPORTED_SUFFIXES)}）"
        )
    dest = Path(output) if output else src.with_suffix(".yml")
    rid = ruleset_id or default_ruleset_id(src)
    doc = RulesetConverter().convert(
        src.read_text(encoding="utf-8"), rid, ruleset_name, source=src.name,
    )
    text = dump_yaml(doc)
    # 生成结果必须能被编译器接受
    parse_resource(text, str(dest))
    if not dry_run:
        save_yaml(dest, doc)
        logger.info("已转换 %s → %s (%d 条规则)", src, dest, len(doc["spec"]["rules"]))
    return dest, text
