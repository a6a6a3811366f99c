"""服务容器 — 统一依赖注入，CLI 通过 click 上下文持有一个实例

同一容器内的实例共享状态（清单、锁文件、缓存、注册表驱动）。
不提供进程级全局容器，测试可直接构造并注入替身执行器 / HTTP 客户端。

依赖关系:
  service → manifest, lockfile, cache, registry_factory
  registry_factory → cache, executor, http client

用法:
    container = ServiceContainer(config=Config.from_file(), manifest_path="arm.json")
    container.service.install("ai-rules/python-rules@^1", sinks=["cursor"])
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from arm.core.config import Config, lockfile_path_for, resolve_manifest_path

if TYPE_CHECKING:
    from arm.core.lockfile import Lockfile
    from arm.core.manifest import Manifest
    from arm.registries.base import Registry
    from arm.services.cache import ContentCache
    from arm.services.orchestrator import ArmService
    from arm.utils.net import HttpClient
    from arm.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器

    manifest_path 缺省时按 ARM_MANIFEST_PATH → ./arm.json → ./arm-manifest.json 解析；
    sink 的相对目录以清单所在目录为基准。
    """

    def __init__(
        self,
        config: Config | None = None,
        manifest_path: str | Path | None = None,
        *,
        executor: CommandExecutor | None = None,
        client: HttpClient | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        self._config = config or Config()
        self._manifest_path = Path(manifest_path) if manifest_path else resolve_manifest_path()
        self._executor = executor
        self._client = client

    @property
    def config(self) -> Config:
        return self._config

    @property
    def manifest_path(self) -> Path:
        return self._manifest_path

    @property
    def manifest(self) -> Manifest:
        if "manifest" not in self._instances:
            from arm.core.manifest import Manifest
            self._instances["manifest"] = Manifest(self._manifest_path)
        return self._instances["manifest"]  # type: ignore[return-value]

    @property
    def lockfile(self) -> Lockfile:
        if "lockfile" not in self._instances:
            from arm.core.lockfile import Lockfile
            self._instances["lockfile"] = Lockfile(
                lockfile_path_for(self._manifest_path), self.manifest,
            )
        return self._instances["lockfile"]  # type: ignore[return-value]

    @property
    def cache(self) -> ContentCache:
        if "cache" not in self._instances:
            from arm.services.cache import ContentCache
            self._instances["cache"] = ContentCache(
                self._config.cache_dir, lock_timeout=self._config.lock_timeout,
            )
        return self._instances["cache"]  # type: ignore[return-value]

    @property
    def http(self) -> HttpClient:
        if self._client is None:
            from arm.utils.net import HttpClient
            self._client = HttpClient(timeout=self._config.http_timeout)
        return self._client

    def create_registry(self, name: str, config: dict[str, Any]) -> Registry:
        from arm.registries import create_registry
        return create_registry(
            name, config, self.cache,
            executor=self._executor,
            client=self.http,
            git_binary=self._config.git_binary,
        )

    @property
    def service(self) -> ArmService:
        if "service" not in self._instances:
            from arm.services.orchestrator import ArmService
            self._instances["service"] = ArmService(
                manifest=self.manifest,
                lockfile=self.lockfile,
                cache=self.cache,
                registry_factory=self.create_registry,
                max_workers=self._config.max_workers,
                base_dir=self._manifest_path.parent,
            )
        return self._instances["service"]  # type: ignore[return-value]
