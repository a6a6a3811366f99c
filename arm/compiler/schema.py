"""资源文档解析与校验

文档结构:
    apiVersion: v1
    kind: Ruleset | Promptset
    metadata: {id, name, description?}
    spec:
      rules:   {<id>: {name, description?, priority?, enforcement?, scope?, body}}
      prompts: {<id>: {name, description?, body}}

校验失败抛 CompileError，details 中逐条列出问题。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import yaml

from arm.core.exceptions import CompileError

KIND_RULESET = "Ruleset"
KIND_PROMPTSET = "Promptset"
KINDS = (KIND_RULESET, KIND_PROMPTSET)
ENFORCEMENTS = ("may", "should", "must")


@dataclass
class Rule:
    id: str
    name: str
    body: str
    description: str = ""
    priority: int = 0
    enforcement: str = ""
    scope: list[str] = field(default_factory=list)


@dataclass
class Prompt:
    id: str
    name: str
    body: str
    description: str = ""


@dataclass
class Resource:
    api_version: str
    kind: str
    id: str
    name: str
    description: str = ""
    rules: list[Rule] = field(default_factory=list)
    prompts: list[Prompt] = field(default_factory=list)

    @property
    def is_ruleset(self) -> bool:
        return self.kind == KIND_RULESET

    def item_ids(self) -> list[str]:
        items = self.rules if self.is_ruleset else self.prompts
        return sorted(i.id for i in items)


def load_document(content: bytes | str) -> Any:
    text = content.decode("utf-8") if isinstance(content, bytes) else content
    return yaml.safe_load(text)


def looks_like_resource(content: bytes | str) -> bool:
    """YAML 对象且带 apiVersion 与 kind 即视为资源文档（不做完整校验）"""
    try:
        doc = load_document(content)
    except (yaml.YAMLError, UnicodeDecodeError):
        return False
    return isinstance(doc, dict) and "apiVersion" in doc and "kind" in doc


def _scope_files(raw: Any, where: str, errors: list[str]) -> list[str]:
    # scope 允许 {files: [...]} 或 [{files: [...]}, ...]
    if raw is None:
        return []
    entries = raw if isinstance(raw, list) else [raw]
    files: list[str] = []
    for entry in entries:
        if not isinstance(entry, dict):
            errors.append(f"{where}.scope 条目必须是对象")
            continue
        globs = entry.get("files", [])
        if isinstance(globs, str):
            globs = [globs]
        if not isinstance(globs, list):
            errors.append(f"{where}.scope.files 必须是列表")
            continue
        files.extend(str(g) for g in globs)
    return files


def _parse_rule(rid: str, raw: Any, errors: list[str]) -> Rule | None:
    where = f"spec.rules.{rid}"
    if not isinstance(raw, dict):
        errors.append(f"{where} 必须是对象")
        return None
    if not raw.get("name"):
        errors.append(f"{where}.name 不能为空")
    if not raw.get("body"):
        errors.append(f"{where}.body 不能为空")
    enforcement = str(raw.get("enforcement", "") or "").lower()
    if enforcement and enforcement not in ENFORCEMENTS:
        errors.append(
            f"{where}.enforcement 无效: '{raw.get('enforcement')}'"
            f"（可选: {', '.join(ENFORCEMENTS)}）"
        )
    priority = raw.get("priority", 0)
    if not isinstance(priority, int) or isinstance(priority, bool):
        errors.append(f"{where}.priority 必须是整数")
        priority = 0
    return Rule(
        id=str(rid),
        name=str(raw.get("name", "")),
        body=str(raw.get("body", "")),
        description=str(raw.get("description", "") or ""),
        priority=priority,
        enforcement=enforcement,
        scope=_scope_files(raw.get("scope"), where, errors),
    )


def _parse_prompt(pid: str, raw: Any, errors: list[str]) -> Prompt | None:
    where = f"spec.prompts.{pid}"
    if not isinstance(raw, dict):
        errors.append(f"{where} 必须是对象")
        return None
    if not raw.get("name"):
        errors.append(f"{where}.name 不能为空")
    if not raw.get("body"):
        errors.append(f"{where}.body 不能为空")
    return Prompt(
        id=str(pid),
        name=str(raw.get("name", "")),
        body=str(raw.get("body", "")),
        description=str(raw.get("description", "") or ""),
    )


def parse_resource(content: bytes | str, path: str = "<input>") -> Resource:
    """解析并校验资源文档，失败抛 CompileError"""
    try:
        doc = load_document(content)
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise CompileError(path, f"YAML 解析失败: {e}") from e
    if not isinstance(doc, dict):
        raise CompileError(path, "文档顶层必须是对象")

    errors: list[str] = []
    if not doc.get("apiVersion"):
        errors.append("apiVersion 不能为空")
    kind = doc.get("kind")
    if kind not in KINDS:
        errors.append(f"kind 无效: '{kind}'（可选: {', '.join(KINDS)}）")

    metadata = doc.get("metadata")
    if not isinstance(metadata, dict):
        errors.append("metadata 必须是对象")
        metadata = {}
    if not metadata.get("id"):
        errors.append("metadata.id 不能为空")

    spec = doc.get("spec")
    if not isinstance(spec, dict):
        errors.append("spec 必须是对象")
        spec = {}

    resource = Resource(
        api_version=str(doc.get("apiVersion", "")),
        kind=str(kind),
        id=str(metadata.get("id", "")),
        name=str(metadata.get("name", "") or metadata.get("id", "")),
        description=str(metadata.get("description", "") or ""),
    )

    if kind == KIND_RULESET:
        rules = spec.get("rules")
        if not isinstance(rules, dict) or not rules:
            errors.append("spec.rules 必须是非空对象")
        else:
            for rid, raw in rules.items():
                rule = _parse_rule(str(rid), raw, errors)
                if rule is not None:
                    resource.rules.append(rule)
    elif kind == KIND_PROMPTSET:
        prompts = spec.get("prompts")
        if not isinstance(prompts, dict) or not prompts:
            errors.append("spec.prompts 必须是非空对象")
        else:
            for pid, raw in prompts.items():
                prompt = _parse_prompt(str(pid), raw, errors)
                if prompt is not None:
                    resource.prompts.append(prompt)

    if errors:
        raise CompileError(path, "资源校验失败: " + "; ".join(errors), errors)
    return resource
