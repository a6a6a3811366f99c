"""sink 安装器 - 把包内容以目标工具格式落地到输出目录

职责:
- 编译可编译的源文件（markdown 目标额外保留源文件）
- 分层布局: <sink>/arm/<registry>/<name>/<display>/<path>
- 扁平布局: <sink>/arm_<priority>_<pkghash>_<pathhash>_<path>
- 分阶段写入: 先写临时兄弟目录，再删除旧安装并 rename 到位
- 维护反向索引 <sink>/arm-index.json（包 → 版本 → 输出路径）
- 维护规则集优先级索引规则文件 arm_index.*
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import posixpath
import shutil
import uuid
from pathlib import Path
from typing import Any

from arm.compiler import compile_file, compile_resource, is_compilable_path
from arm.compiler.schema import KIND_RULESET, Resource, Rule, looks_like_resource
from arm.core.exceptions import InvalidConfigError
from arm.core.models import (
    DEFAULT_PRIORITY,
    LAYOUT_HIERARCHICAL,
    RULESET,
    File,
    Installation,
    PackageKey,
    SinkConfig,
    Version,
)
from arm.utils.fileio import load_json, save_json

logger = logging.getLogger(__name__)

INDEX_FILENAME = "arm-index.json"
ARM_DIR = "arm"
STAGING_PREFIX = ".arm-staging-"
INDEX_RULESET_ID = "arm"
INDEX_RULE_ID = "index"
INDEX_RULE_PRIORITY = 1000
MAX_FLAT_NAME = 100


def _hash4(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:4]


def _segment(value: str) -> str:
    return value.replace("/", "_").replace("\\", "_")


def flat_filename(key: PackageKey, path: str, priority: int | None = None) -> str:
    """扁平布局文件名: 包身份与路径的短哈希保证唯一，priority 前缀保证排序稳定"""
    prefix = "arm_"
    if priority is not None:
        prefix += f"{max(priority, 0):04d}_"
    prefix += f"{_hash4(str(key))}_{_hash4(path)}_"
    name = prefix + path.replace("/", "_")
    if len(name) <= MAX_FLAT_NAME:
        return name
    name = prefix + posixpath.basename(path)
    if len(name) <= MAX_FLAT_NAME:
        return name
    stem, ext = posixpath.splitext(name)
    return stem[: MAX_FLAT_NAME - len(ext)] + ext


def render_index_body(installations: list[Installation]) -> str:
    """规则集优先级索引正文，按优先级从高到低"""
    lines = [
        "# ARM Rulesets",
        "",
        "This file defines the installation priorities for rulesets managed by ARM.",
        "",
        "## Priority Rules",
        "",
        "**This index is the authoritative source of truth for ruleset priorities.** "
        "When conflicts arise between rulesets, follow this priority order:",
        "",
        "1. **Higher priority numbers take precedence** over lower priority numbers",
        "2. **Rules from higher priority rulesets override** conflicting rules from "
        "lower priority rulesets",
        "3. **Always consult this index** to resolve any ambiguity about which rules to follow",
        "",
        "## Installed Rulesets",
        "",
    ]
    ordered = sorted(installations, key=lambda i: (-i.priority, str(i.key)))
    for inst in ordered:
        lines.append(f"### {inst.key}@{inst.version}")
        lines.append(f"- **Priority:** {inst.priority}")
        lines.append("- **Rules:**")
        lines.extend(f"  - {f}" for f in inst.files)
        lines.append("")
    return "\n".join(lines)


class SinkInstaller:
    """单个 sink 的安装器"""

    def __init__(self, config: SinkConfig, base_dir: str | Path | None = None) -> None:
        self.config = config
        root = Path(config.directory).expanduser()
        if not root.is_absolute() and base_dir is not None:
            root = Path(base_dir) / root
        self.root = root
        self.index_path = self.root / INDEX_FILENAME

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def hierarchical(self) -> bool:
        return self.config.layout == LAYOUT_HIERARCHICAL

    # =====================================================================
    # 反向索引
    # =====================================================================

    def _load_index(self) -> dict[str, Any]:
        try:
            data = load_json(self.index_path)
        except (json.JSONDecodeError, ValueError) as e:
            raise InvalidConfigError(f"sink 索引解析失败 {self.index_path}: {e}") from e
        if data is None:
            data = {"version": 1, "packages": {}}
        data.setdefault("packages", {})
        return data

    def _save_index(self, data: dict[str, Any]) -> None:
        if not data["packages"]:
            if self.index_path.exists():
                self.index_path.unlink()
            return
        save_json(self.index_path, data)

    @staticmethod
    def _to_installation(key: str, entry: dict[str, Any]) -> Installation:
        return Installation(
            key=PackageKey.parse(key),
            kind=entry.get("kind", RULESET),
            version=str(entry.get("version", "")),
            resolved_id=str(entry.get("resolvedId", "")),
            checksum=str(entry.get("checksum", "")),
            priority=int(entry.get("priority", DEFAULT_PRIORITY)),
            files=list(entry.get("files", [])),
        )

    def list_installed(self) -> list[Installation]:
        packages = self._load_index()["packages"]
        return [self._to_installation(k, v) for k, v in sorted(packages.items())]

    def get(self, key: PackageKey | str) -> Installation | None:
        entry = self._load_index()["packages"].get(str(key))
        return self._to_installation(str(key), entry) if entry else None

    def is_installed(self, key: PackageKey | str) -> tuple[bool, str | None]:
        inst = self.get(key)
        return (True, inst.version) if inst else (False, None)

    def files_present(self, key: PackageKey | str) -> bool:
        """索引记录的所有文件是否都在磁盘上"""
        inst = self.get(key)
        if inst is None:
            return False
        return all((self.root / f).is_file() for f in inst.files)

    # =====================================================================
    # 编译与布局
    # =====================================================================

    def prepare(
        self,
        key: PackageKey,
        version: Version,
        files: list[File],
        kind: str = RULESET,
        priority: int = DEFAULT_PRIORITY,
    ) -> list[File]:
        """编译并映射到 sink 内相对路径（纯计算，不写盘）

        编译失败抛 CompileError，调用方据此放弃本次安装。
        """
        target = self.config.compile_target
        namespace = f"{key}@{version.display}"
        produced: list[File] = []
        for f in files:
            if is_compilable_path(f.path) and looks_like_resource(f.content):
                produced.extend(compile_file(f, target, namespace))
                if target == "markdown":
                    produced.append(f)
            else:
                produced.append(f)

        outputs: list[File] = []
        seen: set[str] = set()
        for f in produced:
            rel = self._layout_path(key, version, f.path, kind, priority)
            if rel in seen:
                raise InvalidConfigError(f"{key} 在 sink '{self.name}' 中产生重复输出: {rel}")
            seen.add(rel)
            outputs.append(File(path=rel, content=f.content))
        return outputs

    def _layout_path(
        self, key: PackageKey, version: Version, path: str, kind: str, priority: int,
    ) -> str:
        if self.hierarchical:
            return posixpath.join(
                ARM_DIR, key.registry, key.name, _segment(version.display), path,
            )
        return flat_filename(key, path, priority if kind == RULESET else None)

    def _package_dir(self, key: PackageKey) -> Path:
        return self.root / ARM_DIR / key.registry / key.name

    # =====================================================================
    # 安装 / 卸载
    # =====================================================================

    def install(
        self,
        key: PackageKey,
        version: Version,
        files: list[File],
        kind: str = RULESET,
        priority: int = DEFAULT_PRIORITY,
        checksum: str = "",
    ) -> list[str]:
        """编译并落地一个包，返回 sink 内相对输出路径"""
        outputs = self.prepare(key, version, files, kind, priority)
        return self.materialize(key, version, outputs, kind, priority, checksum)

    def materialize(
        self,
        key: PackageKey,
        version: Version,
        outputs: list[File],
        kind: str = RULESET,
        priority: int = DEFAULT_PRIORITY,
        checksum: str = "",
    ) -> list[str]:
        """写入 prepare() 的结果并更新索引"""
        index = self._load_index()
        previous = index["packages"].get(str(key))
        if self.hierarchical:
            self._swap_hierarchical(key, version, outputs, previous)
        else:
            self._swap_flat(outputs, previous)

        paths = sorted(f.path for f in outputs)
        entry: dict[str, Any] = {
            "kind": kind,
            "version": version.display,
            "resolvedId": version.resolved_id,
            "checksum": checksum,
            "files": paths,
        }
        if kind == RULESET:
            entry["priority"] = priority
        index["packages"][str(key)] = entry
        self._save_index(index)
        if kind == RULESET or (previous and previous.get("kind") == RULESET):
            self._write_index_rule(index)
        logger.info(
            "已安装 %s@%s 到 sink '%s' (%d 个文件)",
            key, version.display, self.name, len(paths),
        )
        return paths

    def _swap_hierarchical(
        self,
        key: PackageKey,
        version: Version,
        outputs: list[File],
        previous: dict[str, Any] | None,
    ) -> None:
        pkg_dir = self._package_dir(key)
        target = pkg_dir / _segment(version.display)
        prefix = posixpath.join(ARM_DIR, key.registry, key.name, _segment(version.display)) + "/"
        stage = pkg_dir / f"{STAGING_PREFIX}{uuid.uuid4().hex[:8]}"
        # 写入失败时保留 stage 供诊断，由 clean sinks 清理
        for f in outputs:
            dest = stage / f.path[len(prefix):]
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(f.content)
        stage.mkdir(parents=True, exist_ok=True)

        if previous:
            for rel in previous.get("files", []):
                _unlink(self.root / rel)
        for child in pkg_dir.iterdir():
            if child != stage and child.is_dir() and not child.name.startswith(STAGING_PREFIX):
                shutil.rmtree(child)
        os.replace(stage, target)

    def _swap_flat(self, outputs: list[File], previous: dict[str, Any] | None) -> None:
        stage = self.root / f"{STAGING_PREFIX}{uuid.uuid4().hex[:8]}"
        for f in outputs:
            dest = stage / f.path
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(f.content)
        stage.mkdir(parents=True, exist_ok=True)

        if previous:
            for rel in previous.get("files", []):
                _unlink(self.root / rel)
        for f in outputs:
            os.replace(stage / f.path, self.root / f.path)
        shutil.rmtree(stage, ignore_errors=True)

    def uninstall(self, key: PackageKey | str) -> bool:
        """删除包的所有输出并修剪空目录；未安装返回 False"""
        index = self._load_index()
        entry = index["packages"].pop(str(key), None)
        if entry is None:
            return False
        for rel in entry.get("files", []):
            path = self.root / rel
            _unlink(path)
            self._prune(path.parent)
        if self.hierarchical:
            pkg_key = PackageKey.parse(str(key))
            pkg_dir = self._package_dir(pkg_key)
            if pkg_dir.exists():
                shutil.rmtree(pkg_dir)
            self._prune(pkg_dir.parent)
        self._save_index(index)
        if entry.get("kind", RULESET) == RULESET:
            self._write_index_rule(index)
        logger.info("已从 sink '%s' 卸载 %s", self.name, key)
        return True

    def _prune(self, directory: Path) -> None:
        """自下而上删除空目录，止于 sink 根目录（不含）"""
        root = self.root.resolve()
        current = directory
        while True:
            try:
                resolved = current.resolve()
            except OSError:
                return
            if resolved == root or root not in resolved.parents:
                return
            if not current.is_dir() or any(current.iterdir()):
                return
            current.rmdir()
            current = current.parent

    # =====================================================================
    # 规则集索引规则文件
    # =====================================================================

    def index_rule_path(self) -> str:
        files = compile_resource(
            self._index_resource([]), self.config.compile_target, INDEX_RULESET_ID,
            ARM_DIR if self.hierarchical else "",
        )
        return files[0].path

    @staticmethod
    def _index_resource(rulesets: list[Installation]) -> Resource:
        return Resource(
            api_version="v1",
            kind=KIND_RULESET,
            id=INDEX_RULESET_ID,
            name="ARM Rulesets Index",
            rules=[Rule(
                id=INDEX_RULE_ID,
                name="ARM Rulesets Index",
                body=render_index_body(rulesets),
                enforcement="must",
                priority=INDEX_RULE_PRIORITY,
            )],
        )

    def _write_index_rule(self, index: dict[str, Any]) -> None:
        rulesets = [
            self._to_installation(k, v)
            for k, v in index["packages"].items()
            if v.get("kind", RULESET) == RULESET
        ]
        rel = self.index_rule_path()
        path = self.root / rel
        if not rulesets:
            _unlink(path)
            self._prune(path.parent)
            return
        out = compile_resource(
            self._index_resource(rulesets), self.config.compile_target,
            INDEX_RULESET_ID, posixpath.dirname(rel),
        )[0]
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(out.content)

    # =====================================================================
    # 清理
    # =====================================================================

    def owned_paths(self) -> set[str]:
        index = self._load_index()
        owned: set[str] = set()
        has_rulesets = False
        for entry in index["packages"].values():
            owned.update(entry.get("files", []))
            has_rulesets = has_rulesets or entry.get("kind", RULESET) == RULESET
        if index["packages"]:
            owned.add(INDEX_FILENAME)
        if has_rulesets:
            owned.add(self.index_rule_path())
        return owned

    def clean(self, nuke: bool = False) -> list[str]:
        """删除未被索引认领的文件（nuke 时删除全部 arm 产物），返回删除的相对路径"""
        if not self.root.is_dir():
            return []
        if nuke:
            return self._nuke()
        owned = self.owned_paths()
        removed: list[str] = []
        for p in sorted(self.root.rglob("*"), reverse=True):
            rel = p.relative_to(self.root).as_posix()
            if p.is_file() or p.is_symlink():
                if rel not in owned:
                    p.unlink()
                    removed.append(rel)
            elif p.is_dir() and not any(p.iterdir()):
                p.rmdir()
        logger.info("sink '%s' 清理完成: 删除 %d 个文件", self.name, len(removed))
        return removed

    def _nuke(self) -> list[str]:
        removed = sorted(self.owned_paths())
        for rel in removed:
            path = self.root / rel
            _unlink(path)
            self._prune(path.parent)
        for stage in self.root.glob(f"{STAGING_PREFIX}*"):
            shutil.rmtree(stage, ignore_errors=True)
        arm_dir = self.root / ARM_DIR
        if arm_dir.is_dir():
            shutil.rmtree(arm_dir)
        _unlink(self.index_path)
        logger.info("sink '%s' 已彻底清理", self.name)
        return removed


def _unlink(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
