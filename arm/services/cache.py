"""内容缓存 - 按 (注册表键, 包, 解析 id) 寻址的本地存储

目录布局:
    <root>/registries/<key>/metadata.json
    <root>/registries/<key>/<package>/<resolved-id>/files/...
    <root>/registries/<key>/<package>/<resolved-id>/index.json
    <root>/registries/.locks/<key>.lock

并发策略:
  - 写入方持有按注册表的 flock 写锁后才修改该注册表子树
  - 读取方不加锁；index.json 存在即视为版本目录完整且不可变
  - 无法解析的注册表子树整体删除，下次访问视为空
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import logging
import os
import shutil
import time
import uuid
from pathlib import Path
from typing import Any, Callable

from arm.core.exceptions import CacheLockTimeoutError
from arm.core.models import File, Version
from arm.utils.fileio import load_json, save_json

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"
METADATA_FILE = "metadata.json"
FILES_DIR = "files"
LOCKS_DIR = ".locks"
_TMP_PREFIX = ".tmp-"

# 决定注册表身份的配置字段；其余字段（如 branches）不影响缓存内容
_KEY_FIELDS = (
    "type", "url", "projectId", "groupId", "apiVersion", "owner", "repository",
)


def registry_key(config: dict[str, Any]) -> str:
    """注册表配置的稳定短哈希，作为缓存目录名"""
    ident = {k: config[k] for k in _KEY_FIELDS if config.get(k)}
    raw = json.dumps(ident, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


def _segment(value: str) -> str:
    return value.replace("/", "_").replace("\\", "_") or "_"


class RegistryLock:
    """按注册表的排他写锁（fcntl.flock），超时抛 CacheLockTimeoutError"""

    def __init__(self, lock_path: Path, timeout: float = 10.0) -> None:
        self.lock_path = lock_path
        self.timeout = timeout
        self._fd: Any = None

    def __enter__(self) -> RegistryLock:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        self._fd = open(self.lock_path, "a+")
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                fcntl.flock(self._fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                return self
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    self._fd.close()
                    self._fd = None
                    raise CacheLockTimeoutError(
                        f"等待缓存锁超时 ({self.timeout}s): {self.lock_path}"
                    ) from None
                time.sleep(0.05)

    def __exit__(self, *args: object) -> None:
        if self._fd:
            fcntl.flock(self._fd.fileno(), fcntl.LOCK_UN)
            self._fd.close()
            self._fd = None


class ContentCache:
    """内容缓存管理器"""

    def __init__(
        self,
        root: str | Path,
        lock_timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.root = Path(root)
        self.registries_dir = self.root / "registries"
        self.lock_timeout = lock_timeout
        self._clock = clock

    # ---- 路径 ----

    def registry_dir(self, key: str) -> Path:
        return self.registries_dir / key

    def version_dir(self, key: str, package: str, resolved_id: str) -> Path:
        return self.registry_dir(key) / _segment(package) / _segment(resolved_id)

    def lock(self, key: str) -> RegistryLock:
        return RegistryLock(
            self.registries_dir / LOCKS_DIR / f"{key}.lock", self.lock_timeout,
        )

    # ---- 读 ----

    def get(self, key: str, package: str, version: Version) -> list[File] | None:
        """读取缓存内容并刷新访问时间；未命中返回 None"""
        if not self._registry_ok(key):
            return None
        vdir = self.version_dir(key, package, version.resolved_id)
        index_path = vdir / INDEX_FILE
        if not index_path.exists():
            return None
        try:
            index = load_json(index_path) or {}
            files = _read_tree(vdir / FILES_DIR)
        except (json.JSONDecodeError, ValueError, OSError) as e:
            logger.warning("缓存损坏，删除注册表子树 %s: %s", key, e)
            self._wipe_registry(key)
            return None
        self._touch(index_path, index)
        logger.info("缓存命中: %s@%s (%s)", package, version.display, version.resolved_id)
        return files

    # ---- 写 ----

    def store(
        self,
        key: str,
        registry_meta: dict[str, Any],
        package: str,
        version: Version,
        files: list[File],
    ) -> None:
        """写入一个版本：先写临时目录，完整后 rename 到位"""
        with self.lock(key):
            self._ensure_registry(key, registry_meta)
            vdir = self.version_dir(key, package, version.resolved_id)
            tmp = vdir.parent / f"{_TMP_PREFIX}{uuid.uuid4().hex[:8]}"
            try:
                for f in files:
                    target = _safe_join(tmp / FILES_DIR, f.path)
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_bytes(f.content)
                (tmp / FILES_DIR).mkdir(parents=True, exist_ok=True)
                now = self._clock()
                save_json(tmp / INDEX_FILE, {
                    "registry": registry_meta,
                    "package": package,
                    "version": {"id": version.resolved_id, "display": version.display},
                    "createdAt": now,
                    "lastAccess": now,
                })
                if vdir.exists():
                    shutil.rmtree(vdir)
                os.replace(tmp, vdir)
            except Exception:
                shutil.rmtree(tmp, ignore_errors=True)
                raise
        logger.info(
            "已缓存: %s@%s (%s, %d 个文件)",
            package, version.display, version.resolved_id, len(files),
        )

    def clean(self, max_age: float) -> int:
        """删除最后访问早于 max_age 秒前的版本目录，返回删除数量"""
        if not self.registries_dir.is_dir():
            return 0
        now = self._clock()
        removed = 0
        for rdir in sorted(self.registries_dir.iterdir()):
            if not rdir.is_dir() or rdir.name == LOCKS_DIR:
                continue
            with self.lock(rdir.name):
                removed += self._clean_registry(rdir, now, max_age)
        logger.info("缓存清理完成: 删除 %d 个版本", removed)
        return removed

    def nuke(self) -> None:
        """删除整个缓存根目录"""
        if self.root.exists():
            shutil.rmtree(self.root)
        logger.info("缓存已清空: %s", self.root)

    # ---- 内部 ----

    def _clean_registry(self, rdir: Path, now: float, max_age: float) -> int:
        removed = 0
        for pdir in [p for p in rdir.iterdir() if p.is_dir()]:
            for vdir in [v for v in pdir.iterdir() if v.is_dir()]:
                if vdir.name.startswith(_TMP_PREFIX):
                    stamp = vdir.stat().st_mtime
                else:
                    index = _try_load(vdir / INDEX_FILE)
                    stamp = float(index.get("lastAccess", 0)) if index else 0.0
                if now - stamp > max_age:
                    shutil.rmtree(vdir, ignore_errors=True)
                    removed += 1
                    logger.debug("删除过期缓存: %s", vdir)
            if not any(pdir.iterdir()):
                pdir.rmdir()
        return removed

    def _registry_ok(self, key: str) -> bool:
        rdir = self.registry_dir(key)
        if not rdir.exists():
            return False
        meta = rdir / METADATA_FILE
        if meta.exists() and _try_load(meta) is None:
            logger.warning("缓存元数据损坏，删除注册表子树: %s", key)
            self._wipe_registry(key)
            return False
        return True

    def _ensure_registry(self, key: str, registry_meta: dict[str, Any]) -> None:
        meta = self.registry_dir(key) / METADATA_FILE
        if meta.exists() and _try_load(meta) is None:
            logger.warning("缓存元数据损坏，重建注册表子树: %s", key)
            shutil.rmtree(self.registry_dir(key), ignore_errors=True)
        if not meta.exists():
            save_json(meta, registry_meta)

    def _wipe_registry(self, key: str) -> None:
        with self.lock(key):
            shutil.rmtree(self.registry_dir(key), ignore_errors=True)

    def _touch(self, index_path: Path, index: dict[str, Any]) -> None:
        previous = float(index.get("lastAccess", 0))
        index["lastAccess"] = max(self._clock(), previous)
        try:
            save_json(index_path, index)
        except OSError as e:
            logger.warning("更新缓存访问时间失败 %s: %s", index_path, e)


def _try_load(path: Path) -> dict[str, Any] | None:
    try:
        return load_json(path)
    except (json.JSONDecodeError, ValueError, OSError):
        return None


def _safe_join(base: Path, rel: str) -> Path:
    target = (base / rel).resolve()
    if not str(target).startswith(str(base.resolve())):
        raise ValueError(f"非法的相对路径: {rel}")
    return base / rel


def _read_tree(base: Path) -> list[File]:
    files: list[File] = []
    if not base.is_dir():
        raise OSError(f"缓存内容目录缺失: {base}")
    for p in sorted(base.rglob("*")):
        if p.is_file():
            files.append(File(path=p.relative_to(base).as_posix(), content=p.read_bytes()))
    return files
