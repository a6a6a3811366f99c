"""编译目标 - Strategy Pattern

各目标只在三处不同：文件命名、front-matter、正文装饰。
公共的元数据块由 render_metadata 生成。

目标类型: cursor, copilot, amazonq, markdown
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from arm.compiler.schema import Prompt, Resource, Rule
from arm.core.exceptions import UnsupportedTargetError


def _quote_list(items: list[str]) -> str:
    return ", ".join(f'"{i}"' for i in items)


def render_metadata(resource: Resource, rule: Rule, namespace: str) -> str:
    """规则的元数据块，供工具与人工追溯来源"""
    lines = ["---", f"namespace: {namespace}", "ruleset:"]
    lines.append(f"  id: {resource.id}")
    lines.append(f"  name: {resource.name}")
    lines.append("  rules:")
    lines.extend(f"    - {rid}" for rid in resource.item_ids())
    lines.append("rule:")
    lines.append(f"  id: {rule.id}")
    lines.append(f"  name: {rule.name}")
    if rule.enforcement:
        lines.append(f"  enforcement: {rule.enforcement.upper()}")
    if rule.priority > 0:
        lines.append(f"  priority: {rule.priority}")
    if rule.scope:
        lines.append("  scope:")
        lines.append(f"    - files: [{_quote_list(rule.scope)}]")
    lines.append("---")
    return "\n".join(lines)


def _ensure_newline(text: str) -> str:
    return text if text.endswith("\n") else text + "\n"


# =========================================================================
# 编译目标抽象基类
# =========================================================================


class Emitter(ABC):
    """编译目标公共接口"""

    name: str = ""
    rule_extension: str = ".md"
    prompt_extension: str = ".md"

    def rule_filename(self, resource: Resource, rule: Rule) -> str:
        return f"{resource.id}_{rule.id}{self.rule_extension}"

    def prompt_filename(self, resource: Resource, prompt: Prompt) -> str:
        return f"{resource.id}_{prompt.id}{self.prompt_extension}"

    @abstractmethod
    def front_matter(self, resource: Resource, rule: Rule) -> str:
        """规则文件头部，无则返回空串"""

    def render_rule(self, resource: Resource, rule: Rule, namespace: str) -> str:
        parts = []
        head = self.front_matter(resource, rule)
        if head:
            parts.append(head)
        parts.append(render_metadata(resource, rule, namespace))
        parts.append(rule.body.strip("\n"))
        return _ensure_newline("\n\n".join(parts))

    def render_prompt(self, resource: Resource, prompt: Prompt, namespace: str) -> str:
        return _ensure_newline(prompt.body)


class CursorEmitter(Emitter):
    """Cursor: .mdc 规则，带 description/globs/alwaysApply 头"""

    name = "cursor"
    rule_extension = ".mdc"

    def front_matter(self, resource: Resource, rule: Rule) -> str:
        lines = ["---"]
        if rule.description:
            lines.append(f'description: "{rule.description}"')
        if rule.scope:
            lines.append(f"globs: {', '.join(rule.scope)}")
        if rule.enforcement == "must":
            lines.append("alwaysApply: true")
        lines.append("---")
        return "\n".join(lines)


class CopilotEmitter(Emitter):
    """GitHub Copilot: .instructions.md，作用范围写入 applyTo"""

    name = "copilot"
    rule_extension = ".instructions.md"

    def front_matter(self, resource: Resource, rule: Rule) -> str:
        if not rule.scope:
            return ""
        return "\n".join(["---", f'applyTo: "{",".join(rule.scope)}"', "---"])


class AmazonQEmitter(Emitter):
    name = "amazonq"

    def front_matter(self, resource: Resource, rule: Rule) -> str:
        return ""


class MarkdownEmitter(Emitter):
    name = "markdown"

    def front_matter(self, resource: Resource, rule: Rule) -> str:
        return ""


# =========================================================================
# 工厂
# =========================================================================

_EMITTERS: dict[str, type[Emitter]] = {
    "cursor": CursorEmitter,
    "copilot": CopilotEmitter,
    "amazonq": AmazonQEmitter,
    "markdown": MarkdownEmitter,
}

# 命令行常用别名
_ALIASES = {"md": "markdown"}


def supported_targets() -> list[str]:
    return list(_EMITTERS)


def get_emitter(target: str) -> Emitter:
    """按目标名获取编译器，未知目标抛 UnsupportedTargetError"""
    cls = _EMITTERS.get(_ALIASES.get(target, target))
    if cls is None:
        raise UnsupportedTargetError(
            f"不支持的编译目标: '{target}'（可选: {', '.join(_EMITTERS)}）"
        )
    return cls()
