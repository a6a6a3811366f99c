"""数据契约 - 各组件之间传递的不可变值

Version / File 贯穿 注册表 → 缓存 → 锁文件 → sink 全流程；
配置条目由清单原始字典解析得到，原始字典本身由清单存储持有（保留未知字段）。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from arm.core.exceptions import InvalidConfigError

RULESET = "ruleset"
PROMPTSET = "promptset"
PACKAGE_KINDS = (RULESET, PROMPTSET)

DEFAULT_PRIORITY = 100

LAYOUT_HIERARCHICAL = "hierarchical"
LAYOUT_FLAT = "flat"
LAYOUTS = (LAYOUT_HIERARCHICAL, LAYOUT_FLAT)

COMPILE_TARGETS = ("cursor", "amazonq", "copilot", "markdown")

REGISTRY_TYPES = ("git", "gitlab", "cloudsmith")


@dataclass(frozen=True)
class Version:
    """某个包在某一时刻的快照标识

    resolved_id 为不透明且稳定的标识（git SHA / 发布 id / 版本号），
    display 用于目录命名（semver 字符串或分支名）。
    只有带 major/minor/patch 的版本之间可比较；分支头版本无序。
    """

    resolved_id: str
    display: str
    major: int | None = None
    minor: int | None = None
    patch: int | None = None
    prerelease: str = ""
    build: str = ""
    is_branch: bool = False

    @property
    def is_semver(self) -> bool:
        return self.major is not None

    def __str__(self) -> str:
        return self.display


@dataclass(frozen=True)
class File:
    """包内一个字节精确的文件，path 为相对包根目录的 / 分隔路径"""

    path: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class PackageKey:
    """包的身份标识 <registry>/<name>"""

    registry: str
    name: str

    @classmethod
    def parse(cls, key: str) -> PackageKey:
        registry, sep, name = key.partition("/")
        if not sep or not registry or not name:
            raise InvalidConfigError(
                f"包标识格式无效: '{key}'（应为 <registry>/<name>）"
            )
        return cls(registry=registry, name=name)

    def __str__(self) -> str:
        return f"{self.registry}/{self.name}"


@dataclass(frozen=True)
class PackageRef:
    """命令行上的包引用 <registry>/<name>[@<constraint>]"""

    key: PackageKey
    constraint: str = ""

    @classmethod
    def parse(cls, text: str) -> PackageRef:
        body, _, constraint = text.partition("@")
        return cls(key=PackageKey.parse(body), constraint=constraint)


@dataclass
class SinkConfig:
    """输出目的地配置"""

    name: str
    directory: str
    layout: str = LAYOUT_HIERARCHICAL
    compile_target: str = "cursor"

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> SinkConfig:
        if "tool" in data:
            raise InvalidConfigError(
                f"sink '{name}' 使用了不支持的 'tool' 字段，"
                "请改用 layout + compileTarget"
            )
        directory = data.get("directory", "")
        if not directory:
            raise InvalidConfigError(f"sink '{name}' 缺少 directory")
        layout = data.get("layout", LAYOUT_HIERARCHICAL)
        if layout not in LAYOUTS:
            raise InvalidConfigError(f"sink '{name}' 的 layout 无效: {layout}")
        target = data.get("compileTarget", "")
        if target not in COMPILE_TARGETS:
            raise InvalidConfigError(
                f"sink '{name}' 的 compileTarget 无效: '{target}'"
                f"（可选: {', '.join(COMPILE_TARGETS)}）"
            )
        return cls(name=name, directory=directory, layout=layout, compile_target=target)

    def to_dict(self) -> dict[str, Any]:
        return {
            "directory": self.directory,
            "layout": self.layout,
            "compileTarget": self.compile_target,
        }


@dataclass
class DependencyConfig:
    """清单中的包条目"""

    key: PackageKey
    kind: str
    constraint: str
    sinks: list[str] = field(default_factory=list)
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    priority: int = DEFAULT_PRIORITY

    @classmethod
    def from_dict(cls, key: str, data: dict[str, Any]) -> DependencyConfig:
        kind = data.get("type", RULESET)
        if kind not in PACKAGE_KINDS:
            raise InvalidConfigError(f"依赖 '{key}' 的 type 无效: {kind}")
        priority = data.get("priority", DEFAULT_PRIORITY)
        if not isinstance(priority, int) or isinstance(priority, bool):
            raise InvalidConfigError(f"依赖 '{key}' 的 priority 必须是整数")
        return cls(
            key=PackageKey.parse(key),
            kind=kind,
            constraint=str(data.get("version", "")),
            sinks=list(data.get("sinks", [])),
            include=list(data.get("include", [])),
            exclude=list(data.get("exclude", [])),
            priority=priority,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.kind, "version": self.constraint}
        if self.kind == RULESET:
            d["priority"] = self.priority
        d["sinks"] = list(self.sinks)
        if self.include:
            d["include"] = list(self.include)
        if self.exclude:
            d["exclude"] = list(self.exclude)
        return d


@dataclass
class LockEntry:
    """锁文件条目：精确解析结果 + 内容校验和"""

    key: PackageKey
    resolved_id: str
    display: str
    checksum: str

    @classmethod
    def from_dict(cls, key: str, data: dict[str, Any]) -> LockEntry:
        return cls(
            key=PackageKey.parse(key),
            resolved_id=str(data.get("version", "")),
            display=str(data.get("display", "")),
            checksum=str(data.get("checksum", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.resolved_id,
            "display": self.display,
            "checksum": self.checksum,
        }


@dataclass
class Installation:
    """sink 中一个已落地的包"""

    key: PackageKey
    kind: str
    version: str
    resolved_id: str = ""
    checksum: str = ""
    priority: int = DEFAULT_PRIORITY
    files: list[str] = field(default_factory=list)
