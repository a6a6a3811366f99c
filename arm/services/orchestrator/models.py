"""编排器数据模型

数据类:
- ItemResult: 单个包的处理结果
- BatchResult: 批量命令的逐项结果与汇总
- OutdatedInfo: outdated 命令的一行
- Fetched: 已解析并拉取、待提交的包内容
- Snapshot: 批量提交前单个包的已安装状态，fail-fast 回滚时恢复
"""

from __future__ import annotations

from dataclasses import dataclass, field

from arm.core.models import DependencyConfig, File, LockEntry, Version

STATUS_INSTALLED = "installed"
STATUS_UPDATED = "updated"
STATUS_UNCHANGED = "unchanged"
STATUS_REMOVED = "removed"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"
STATUS_ROLLED_BACK = "rolled-back"


@dataclass
class ItemResult:
    key: str
    status: str
    version: str = ""
    error: Exception | None = None

    @property
    def failed(self) -> bool:
        return self.status == STATUS_FAILED

    def describe(self) -> str:
        if self.error is not None:
            code = getattr(self.error, "code", type(self.error).__name__)
            return f"{self.key}: {self.status} [{code}] {self.error}"
        suffix = f"@{self.version}" if self.version else ""
        return f"{self.key}{suffix}: {self.status}"


@dataclass
class BatchResult:
    items: list[ItemResult] = field(default_factory=list)

    def add(self, item: ItemResult) -> None:
        self.items.append(item)

    @property
    def failed(self) -> list[ItemResult]:
        return [i for i in self.items if i.failed]

    @property
    def success(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        counts: dict[str, int] = {}
        for i in self.items:
            counts[i.status] = counts.get(i.status, 0) + 1
        return ", ".join(f"{k}={v}" for k, v in sorted(counts.items())) or "无操作"


@dataclass
class OutdatedInfo:
    key: str
    kind: str
    constraint: str
    current: str
    wanted: str
    latest: str
    current_id: str = ""
    wanted_id: str = ""
    latest_id: str = ""
    error: Exception | None = None

    @property
    def is_outdated(self) -> bool:
        if self.error is not None:
            return False
        # 分支头版本 display 不变但 SHA 会前进，按解析 id 比较
        return self.current_id != self.wanted_id or self.current_id != self.latest_id

    def to_dict(self) -> dict[str, str]:
        return {
            "package": self.key,
            "type": self.kind,
            "constraint": self.constraint,
            "current": self.current,
            "wanted": self.wanted,
            "latest": self.latest,
        }


@dataclass
class Fetched:
    dep: DependencyConfig
    version: Version
    files: list[File]
    checksum: str
    changed: bool = True


@dataclass
class Snapshot:
    key: str
    dependency: DependencyConfig | None
    lock: LockEntry | None
    sinks: list[str] = field(default_factory=list)
