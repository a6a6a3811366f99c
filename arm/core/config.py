"""集中配置管理

提供进程级配置（缓存目录、超时、并发度）与清单/锁文件路径解析。
支持从 YAML 文件加载 + 环境变量覆盖；由服务容器显式传递，不设全局实例。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from arm.utils.fileio import load_yaml

logger = logging.getLogger(__name__)

MANIFEST_ENV = "ARM_MANIFEST_PATH"
CONFIG_ENV = "ARM_CONFIG"
CACHE_DIR_ENV = "ARM_CACHE_DIR"

MANIFEST_FILENAME = "arm.json"
LEGACY_MANIFEST_FILENAME = "arm-manifest.json"


def _default_cache_dir() -> str:
    return str(Path.home() / ".arm" / "cache")


def default_config_path() -> str:
    return os.getenv(CONFIG_ENV) or str(Path.home() / ".arm" / "config.yml")


@dataclass
class Config:
    """全局配置"""

    # 目录
    cache_dir: str = field(default_factory=_default_cache_dir)

    # 远端访问
    http_timeout: int = 30
    git_binary: str = "git"

    # 执行
    max_workers: int = 4
    lock_timeout: float = 10.0

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str | None = None) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认；ARM_CACHE_DIR 覆盖缓存目录"""
        data = load_yaml(path or default_config_path())
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        env_cache = os.getenv(CACHE_DIR_ENV)
        if env_cache:
            cfg.cache_dir = env_cache
        cfg.cache_dir = os.path.expanduser(cfg.cache_dir)
        return cfg


# ---- 路径解析 ----

def resolve_manifest_path(cwd: str | Path = ".") -> Path:
    """清单路径: ARM_MANIFEST_PATH → ./arm.json → 旧版 ./arm-manifest.json

    旧版文件名只在新文件名不存在而旧文件存在时使用。
    """
    env_path = os.getenv(MANIFEST_ENV)
    if env_path:
        return Path(env_path)
    base = Path(cwd)
    current = base / MANIFEST_FILENAME
    legacy = base / LEGACY_MANIFEST_FILENAME
    if not current.exists() and legacy.exists():
        logger.info("使用旧版清单文件名: %s", legacy)
        return legacy
    return current


def lockfile_path_for(manifest_path: str | Path) -> Path:
    """在清单扩展名之前插入 -lock: arm.json → arm-lock.json"""
    p = Path(manifest_path)
    if p.suffix:
        return p.with_name(f"{p.stem}-lock{p.suffix}")
    return p.with_name(f"{p.name}-lock")
