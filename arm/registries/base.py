"""注册表驱动抽象基类

三种驱动 (git / gitlab / cloudsmith) 实现同一契约:
    list_versions(package)                   → [Version]
    resolve_version(package, constraint)     → Version
    get_content(package, version, selector)  → [File]

get_content 的公共流程在基类中完成：缓存命中 → 否则远端拉取 → 展开压缩包
→ 入缓存 → 按 include/exclude 过滤（过滤发生在缓存之后，缓存保存原始内容）。
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from arm.core.archive import expand_archives
from arm.core.models import File, Version
from arm.core.pattern import filter_files
from arm.core.version import Constraint, parse_constraint, resolve_version
from arm.services.cache import ContentCache, registry_key

logger = logging.getLogger(__name__)


@dataclass
class ContentSelector:
    """内容过滤条件"""

    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)


class Registry(ABC):
    """注册表驱动公共接口"""

    kind: str = ""

    def __init__(
        self, name: str, config: dict[str, Any], cache: ContentCache | None = None,
    ) -> None:
        self.name = name
        self.config = dict(config)
        self.cache = cache

    @property
    def key(self) -> str:
        return registry_key(self.config)

    def metadata(self) -> dict[str, Any]:
        return {"name": self.name, **self.config}

    @abstractmethod
    def list_versions(self, package: str) -> list[Version]:
        """列出包的所有可用版本（每次都查询远端）"""

    @abstractmethod
    def _fetch(self, package: str, version: Version) -> list[File]:
        """从远端拉取指定版本的原始文件"""

    def resolve_version(self, package: str, constraint: str | Constraint) -> Version:
        c = parse_constraint(constraint) if isinstance(constraint, str) else constraint
        versions = self.list_versions(package)
        version = resolve_version(c, versions)
        logger.info(
            "版本已解析: %s/%s %s -> %s (%s)",
            self.name, package, c, version.display, version.resolved_id,
        )
        return version

    def fetch_raw(self, package: str, version: Version) -> list[File]:
        """缓存优先获取未过滤的内容"""
        if self.cache is not None:
            cached = self.cache.get(self.key, package, version)
            if cached is not None:
                return cached
        logger.info("缓存未命中，远端拉取: %s/%s@%s", self.name, package, version.display)
        files = expand_archives(self._fetch(package, version))
        if self.cache is not None:
            self.cache.store(self.key, self.metadata(), package, version, files)
        return files

    def get_content(
        self,
        package: str,
        version: Version,
        selector: ContentSelector | None = None,
    ) -> list[File]:
        selector = selector or ContentSelector()
        files = self.fetch_raw(package, version)
        selected = filter_files(files, selector.include, selector.exclude)
        logger.debug(
            "内容过滤: %s/%s@%s %d/%d 个文件",
            self.name, package, version.display, len(selected), len(files),
        )
        return selected
