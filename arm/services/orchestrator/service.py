"""编排服务 - 串联 注册表 → 缓存 → 过滤 → 清单 → 锁文件 → sink

单个包的安装路径:
    absent → resolving → fetching → caching → filtered →
    manifest-updated → lockfile-updated → staging → installed

清单与锁文件只在拉取与过滤成功、且各 sink 的编译结果就绪后才写入；
sink 写入本身是分阶段替换。批量命令先并行拉取，再按包标识顺序串行提交。
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Callable

from arm.core.checksum import generate_checksum
from arm.core.exceptions import (
    ArmError,
    ChecksumMismatchError,
    InvalidConfigError,
    ManifestMissingError,
    NoConfigurationError,
    NotFoundError,
)
from arm.core.lockfile import Lockfile
from arm.core.manifest import Manifest
from arm.core.models import (
    DEFAULT_PRIORITY,
    PACKAGE_KINDS,
    RULESET,
    DependencyConfig,
    LockEntry,
    PackageKey,
    PackageRef,
    SinkConfig,
    Version,
)
from arm.core.version import (
    LATEST,
    branch_version,
    is_semver,
    normalize_constraint,
    parse_constraint,
    resolve_version,
    tagged_version,
)
from arm.registries.base import ContentSelector, Registry
from arm.services.cache import ContentCache
from arm.services.compile_service import CompileRequest, CompileResult, CompileService
from arm.services.converter import convert_file
from arm.services.orchestrator.models import (
    STATUS_FAILED,
    STATUS_INSTALLED,
    STATUS_REMOVED,
    STATUS_ROLLED_BACK,
    STATUS_SKIPPED,
    STATUS_UNCHANGED,
    STATUS_UPDATED,
    BatchResult,
    Fetched,
    ItemResult,
    OutdatedInfo,
    Snapshot,
)
from arm.services.sink import SinkInstaller

logger = logging.getLogger(__name__)

RegistryFactory = Callable[[str, dict[str, Any]], Registry]

# 单包失败时记录并继续的异常类型
_ITEM_ERRORS = (ArmError, OSError)


def pinned_version(lock: LockEntry) -> Version:
    """由锁文件条目重建版本（semver display 视为标签，其余视为分支头）"""
    if is_semver(lock.display):
        return tagged_version(lock.display, lock.resolved_id)
    return branch_version(lock.display, lock.resolved_id)


class ArmService:
    """包生命周期编排"""

    def __init__(
        self,
        manifest: Manifest,
        lockfile: Lockfile,
        cache: ContentCache,
        registry_factory: RegistryFactory,
        max_workers: int = 4,
        base_dir: str | Path | None = None,
    ) -> None:
        self.manifest = manifest
        self.lockfile = lockfile
        self.cache = cache
        self._registry_factory = registry_factory
        self.max_workers = max(1, max_workers)
        self.base_dir = base_dir
        self._registries: dict[str, Registry] = {}
        self._lock = threading.Lock()

    # =====================================================================
    # 组件获取
    # =====================================================================

    def registry(self, name: str) -> Registry:
        with self._lock:
            if name not in self._registries:
                cfg = self.manifest.get_registry(name)
                self._registries[name] = self._registry_factory(name, cfg)
            return self._registries[name]

    def sink(self, name: str) -> SinkInstaller:
        return SinkInstaller(self.manifest.get_sink(name), self.base_dir)

    def _all_sinks(self) -> list[SinkInstaller]:
        return [
            SinkInstaller(cfg, self.base_dir)
            for _, cfg in sorted(self.manifest.sinks().items())
        ]

    # =====================================================================
    # 注册表 / sink 配置
    # =====================================================================

    def add_registry(self, name: str, config: dict[str, Any], force: bool = False) -> None:
        self.manifest.add_registry(name, config, force=force)
        self._registries.pop(name, None)

    def remove_registry(self, name: str) -> None:
        self.manifest.remove_registry(name)
        self._registries.pop(name, None)

    def set_registry(self, name: str, field: str, value: Any) -> None:
        """修改注册表字段；重命名时同步锁文件并把已安装包迁移到新标识下"""
        if field != "name":
            self.manifest.update_registry(name, field, value)
            self._registries.pop(name, None)
            return
        new = str(value)
        moved = [
            key for key in self.manifest.dependencies()
            if PackageKey.parse(key).registry == name
        ]
        for installer in self._all_sinks():
            for key in moved:
                installer.uninstall(key)
        self.manifest.update_registry(name, field, new)
        self.lockfile.rename_registry(name, new)
        self._registries.pop(name, None)
        for key in moved:
            self._reinstall_from_lock(f"{new}/{PackageKey.parse(key).name}")

    def list_registries(self) -> dict[str, dict[str, Any]]:
        return self.manifest.registries()

    def add_sink(self, sink: SinkConfig, force: bool = False) -> None:
        self.manifest.add_sink(sink, force=force)

    def remove_sink(self, name: str) -> list[str]:
        """级联卸载该 sink 上的所有包，然后删除 sink 配置"""
        installer = self.sink(name)
        removed = []
        for inst in installer.list_installed():
            installer.uninstall(inst.key)
            removed.append(str(inst.key))
        self.manifest.remove_sink(name)
        logger.info("sink '%s' 已删除，级联卸载 %d 个包", name, len(removed))
        return removed

    def set_sink(self, name: str, field: str, value: Any) -> None:
        """修改 sink 字段；目录/布局/编译目标变化时把已安装包迁移过去"""
        if field not in ("directory", "layout", "compileTarget"):
            self.manifest.update_sink(name, field, value)
            return
        old = self.sink(name)
        installed = [str(i.key) for i in old.list_installed()]
        # 先校验新值，避免卸载后才发现配置无效
        SinkConfig.from_dict(name, {**old.config.to_dict(), field: value})
        for key in installed:
            old.uninstall(key)
        self.manifest.update_sink(name, field, value)
        for key in installed:
            self._reinstall_from_lock(key, only_sinks=[name])

    def list_sinks(self) -> dict[str, SinkConfig]:
        return self.manifest.sinks()

    # =====================================================================
    # 依赖配置
    # =====================================================================

    def list_dependencies(
        self, kind: str | None = None, sort_priority: bool = False,
    ) -> list[DependencyConfig]:
        deps = [
            d for _, d in sorted(self.manifest.dependencies().items())
            if kind is None or d.kind == kind
        ]
        if sort_priority:
            deps.sort(key=lambda d: -d.priority)
        return deps

    def info_dependency(self, key: str) -> dict[str, Any]:
        dep = self.manifest.get_dependency(key)
        if dep is None:
            raise NotFoundError(f"清单中不存在依赖: {key}")
        lock = self.lockfile.get(key)
        installs = {}
        for installer in self._all_sinks():
            inst = installer.get(key)
            if inst is not None:
                installs[installer.name] = inst
        return {"dependency": dep, "lock": lock, "installations": installs}

    def set_dependency(self, key: str, field: str, value: Any) -> ItemResult:
        """修改依赖字段并对账已安装状态"""
        if self.manifest.get_dependency(key) is None:
            raise NotFoundError(f"清单中不存在依赖: {key}")
        if field == "version":
            value = normalize_constraint(str(value))
        if field == "sinks":
            names = value if isinstance(value, list) else [
                s.strip() for s in str(value).split(",") if s.strip()
            ]
            for s in names:
                self.manifest.get_sink(s)
            value = names
        self.manifest.update_dependency(key, field, value)

        if self.lockfile.get(key) is None:
            return ItemResult(key, STATUS_UNCHANGED)
        if field == "version":
            return self.update([key]).items[0]
        if field in ("include", "exclude"):
            fetched = self._resolve_and_fetch(self.manifest.get_dependency(key), verify=False)
            self._commit(fetched, write_manifest=False)
            return ItemResult(key, STATUS_UPDATED, fetched.version.display)
        self._reinstall_from_lock(key)
        return ItemResult(key, STATUS_UPDATED)

    # =====================================================================
    # 解析与拉取
    # =====================================================================

    def _resolve_and_fetch(
        self, dep: DependencyConfig, constraint: str | None = None, verify: bool = True,
    ) -> Fetched:
        """解析并拉取；解析 id 与锁文件相同时校验内容（verify=False 用于过滤条件已变化）"""
        registry = self.registry(dep.key.registry)
        version = registry.resolve_version(
            dep.key.name, dep.constraint if constraint is None else constraint,
        )
        files = registry.get_content(
            dep.key.name, version, ContentSelector(dep.include, dep.exclude),
        )
        if not files:
            logger.warning("%s@%s 过滤后没有任何文件", dep.key, version.display)
        checksum = generate_checksum(files)
        lock = self.lockfile.get(dep.key)
        if verify and lock is not None and lock.resolved_id == version.resolved_id:
            _verify_checksum(dep, lock, checksum)
        return Fetched(dep, version, files, checksum)

    def _fetch_pinned(self, dep: DependencyConfig, lock: LockEntry) -> Fetched:
        """按锁文件拉取并校验内容；不一致抛 ChecksumMismatchError"""
        registry = self.registry(dep.key.registry)
        version = pinned_version(lock)
        files = registry.get_content(
            dep.key.name, version, ContentSelector(dep.include, dep.exclude),
        )
        checksum = generate_checksum(files)
        _verify_checksum(dep, lock, checksum)
        return Fetched(dep, version, files, checksum)

    @staticmethod
    def _lock_agrees(dep: DependencyConfig, lock: LockEntry | None) -> bool:
        if lock is None or not lock.resolved_id:
            return False
        return parse_constraint(dep.constraint).satisfied_by(pinned_version(lock))

    def _in_sync(self, fetched: Fetched, lock: LockEntry | None) -> bool:
        """解析 id 与锁文件一致、内容校验和一致、且每个 sink 都完整落地"""
        if lock is None or lock.resolved_id != fetched.version.resolved_id:
            return False
        if lock.checksum != fetched.checksum:
            return False
        for name in fetched.dep.sinks:
            installer = self.sink(name)
            inst = installer.get(fetched.dep.key)
            if inst is None or inst.resolved_id != lock.resolved_id:
                return False
            if inst.checksum and inst.checksum != lock.checksum:
                return False
            if not installer.files_present(fetched.dep.key):
                return False
        return True

    def _fetch_many(
        self, jobs: list[tuple[str, Callable[[], Fetched]]], fail_fast: bool,
    ) -> dict[str, Fetched | Exception]:
        """并行执行拉取任务；fail_fast 时首个失败后取消未开始的任务"""
        results: dict[str, Fetched | Exception] = {}
        if not jobs:
            return results
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {pool.submit(fn): key for key, fn in jobs}
            for fut in as_completed(futures):
                if fut.cancelled():
                    continue
                key = futures[fut]
                try:
                    results[key] = fut.result()
                except _ITEM_ERRORS as e:
                    logger.error("%s 拉取失败: %s", key, e)
                    results[key] = e
                    if fail_fast:
                        for other in futures:
                            other.cancel()
        return results

    # =====================================================================
    # 提交
    # =====================================================================

    def _commit(self, fetched: Fetched, write_manifest: bool = True) -> None:
        """编译 → 写清单 → 写锁文件 → 落地各 sink → 清理已移出的 sink"""
        dep = fetched.dep
        prepared = []
        for name in dep.sinks:
            installer = self.sink(name)
            outputs = installer.prepare(
                dep.key, fetched.version, fetched.files, dep.kind, dep.priority,
            )
            prepared.append((installer, outputs))

        if write_manifest:
            self.manifest.upsert_dependency(dep)
        self.lockfile.upsert(LockEntry(
            key=dep.key,
            resolved_id=fetched.version.resolved_id,
            display=fetched.version.display,
            checksum=fetched.checksum,
        ))
        for installer, outputs in prepared:
            installer.materialize(
                dep.key, fetched.version, outputs, dep.kind, dep.priority, fetched.checksum,
            )
        for installer in self._all_sinks():
            if installer.name not in dep.sinks and installer.get(dep.key) is not None:
                installer.uninstall(dep.key)

    def _reinstall_from_lock(self, key: str, only_sinks: list[str] | None = None) -> None:
        dep = self.manifest.get_dependency(key)
        lock = self.lockfile.get(key)
        if dep is None or lock is None:
            return
        fetched = self._fetch_pinned(dep, lock)
        if only_sinks is None:
            self._commit(fetched, write_manifest=False)
            return
        for name in only_sinks:
            if name in dep.sinks:
                self.sink(name).install(
                    dep.key, fetched.version, fetched.files, dep.kind, dep.priority,
                    fetched.checksum,
                )

    # =====================================================================
    # install
    # =====================================================================

    def install(
        self,
        ref: str,
        kind: str = RULESET,
        sinks: list[str] | None = None,
        include: list[str] | None = None,
        exclude: list[str] | None = None,
        priority: int | None = None,
    ) -> ItemResult:
        """安装单个包 <registry>/<name>[@constraint] 并写入清单与锁文件

        未给出 sinks / priority 时沿用清单中已有的配置。
        """
        if kind not in PACKAGE_KINDS:
            raise InvalidConfigError(f"包类型无效: {kind}")
        if priority is not None and priority < 1:
            raise InvalidConfigError(f"priority 必须是正整数: {priority}")
        pref = PackageRef.parse(ref)
        self.manifest.get_registry(pref.key.registry)

        existing = self.manifest.get_dependency(pref.key)
        if not sinks and existing is not None:
            sinks = existing.sinks
        if priority is None:
            priority = existing.priority if existing is not None else DEFAULT_PRIORITY
        if not sinks:
            raise InvalidConfigError(f"安装 {pref.key} 需要指定至少一个 sink")
        for name in sinks:
            self.manifest.get_sink(name)

        dep = DependencyConfig(
            key=pref.key,
            kind=kind,
            constraint=normalize_constraint(pref.constraint or LATEST),
            sinks=list(sinks),
            include=list(include or []),
            exclude=list(exclude or []),
            priority=priority,
        )
        same_filter = existing is None or (
            existing.include == dep.include and existing.exclude == dep.exclude
        )
        fetched = self._resolve_and_fetch(dep, verify=same_filter)
        self._commit(fetched)
        return ItemResult(str(dep.key), STATUS_INSTALLED, fetched.version.display)

    def install_all(self, fail_fast: bool = False) -> BatchResult:
        """按清单 + 锁文件安装全部包

        两者都在: 锁文件一致的包按锁定版本安装并校验；其余重新解析
        只有清单: 全部重新解析并写新锁文件
        只有锁文件: ManifestMissingError；都没有: NoConfigurationError
        """
        has_manifest = self.manifest.exists()
        has_lock = self.lockfile.exists()
        if not has_manifest:
            if has_lock:
                raise ManifestMissingError(
                    f"存在锁文件 {self.lockfile.path} 但缺少清单 {self.manifest.path}"
                )
            raise NoConfigurationError(
                f"未找到清单 {self.manifest.path} 或锁文件 {self.lockfile.path}"
            )

        deps = self.manifest.dependencies()
        locks = self.lockfile.entries() if has_lock else {}
        for key in sorted(set(locks) - set(deps)):
            logger.warning("锁文件条目 %s 不在清单中，已移除", key)
            self.lockfile.remove(key)

        jobs: list[tuple[str, Callable[[], Fetched]]] = []
        for key, dep in sorted(deps.items()):
            lock = locks.get(key)
            if self._lock_agrees(dep, lock):
                jobs.append((key, _bind(self._fetch_pinned, dep, lock)))
            else:
                jobs.append((key, _bind(self._resolve_and_fetch, dep)))
        return self._commit_batch(jobs, fail_fast, STATUS_INSTALLED)

    def _commit_batch(
        self,
        jobs: list[tuple[str, Callable[[], Fetched]]],
        fail_fast: bool,
        done_status: str,
        write_manifest: bool = True,
    ) -> BatchResult:
        """按包标识顺序提交；fail_fast 时首个失败后跳过其余并回滚本批已提交的包"""
        fetched = self._fetch_many(jobs, fail_fast)
        batch = BatchResult()
        committed: list[Snapshot] = []
        stop = False
        for key, _ in jobs:
            outcome = fetched.get(key)
            if stop or outcome is None:
                batch.add(ItemResult(key, STATUS_SKIPPED))
                continue
            if isinstance(outcome, Exception):
                batch.add(ItemResult(key, STATUS_FAILED, error=outcome))
                stop = fail_fast
                continue
            if not outcome.changed:
                batch.add(ItemResult(key, STATUS_UNCHANGED, outcome.version.display))
                continue
            if fail_fast:
                committed.append(self._snapshot(key))
            try:
                self._commit(outcome, write_manifest=write_manifest)
                batch.add(ItemResult(key, done_status, outcome.version.display))
            except _ITEM_ERRORS as e:
                logger.error("%s 安装失败: %s", key, e)
                batch.add(ItemResult(key, STATUS_FAILED, outcome.version.display, e))
                stop = fail_fast
        if stop and committed:
            self._rollback(committed, batch)
        if batch.failed:
            logger.warning("批量操作完成，存在失败项: %s", batch.summary())
        else:
            logger.info("批量操作完成: %s", batch.summary())
        return batch

    def _snapshot(self, key: str) -> Snapshot:
        return Snapshot(
            key=key,
            dependency=self.manifest.get_dependency(key),
            lock=self.lockfile.get(key),
            sinks=[s.name for s in self._all_sinks() if s.get(key) is not None],
        )

    def _rollback(self, snapshots: list[Snapshot], batch: BatchResult) -> None:
        """把本批已提交的包恢复到提交前的清单 / 锁文件 / sink 状态"""
        for snap in reversed(snapshots):
            try:
                self._restore(snap)
            except _ITEM_ERRORS as e:
                logger.error("%s 回滚失败: %s", snap.key, e)
                continue
            for item in batch.items:
                if item.key == snap.key and not item.failed:
                    item.status = STATUS_ROLLED_BACK
        logger.warning("fail-fast: 已回滚 %d 个包", len(snapshots))

    def _restore(self, snap: Snapshot) -> None:
        for installer in self._all_sinks():
            if installer.get(snap.key) is not None:
                installer.uninstall(snap.key)
        if snap.dependency is not None:
            self.manifest.upsert_dependency(snap.dependency)
        if snap.lock is None:
            self.lockfile.remove(snap.key)
            return
        self.lockfile.upsert(snap.lock)
        if snap.dependency is None or not snap.sinks:
            return
        fetched = self._fetch_pinned(snap.dependency, snap.lock)
        dep = snap.dependency
        for name in snap.sinks:
            self.sink(name).install(
                dep.key, fetched.version, fetched.files, dep.kind, dep.priority,
                fetched.checksum,
            )

    # =====================================================================
    # update / upgrade
    # =====================================================================

    def _select(self, keys: list[str] | None, kind: str | None = None) -> list[DependencyConfig]:
        deps = self.manifest.dependencies()
        if keys:
            missing = [k for k in keys if k not in deps]
            if missing:
                raise NotFoundError(f"清单中不存在依赖: {', '.join(missing)}")
            selected = [deps[k] for k in keys]
        else:
            selected = [d for _, d in sorted(deps.items())]
        return [d for d in selected if kind is None or d.kind == kind]

    def _refresh_job(self, dep: DependencyConfig, constraint: str | None) -> Fetched:
        fetched = self._resolve_and_fetch(dep, constraint)
        fetched.changed = not self._in_sync(fetched, self.lockfile.get(dep.key))
        return fetched

    def update(
        self, keys: list[str] | None = None, kind: str | None = None, fail_fast: bool = False,
    ) -> BatchResult:
        """在清单约束内重新解析；解析 id 变化或落地状态漂移时重装"""
        jobs = [
            (str(d.key), _bind(self._refresh_job, d, None))
            for d in self._select(keys, kind)
        ]
        return self._commit_batch(jobs, fail_fast, STATUS_UPDATED, write_manifest=False)

    def upgrade(
        self, keys: list[str] | None = None, kind: str | None = None, fail_fast: bool = False,
    ) -> BatchResult:
        """忽略清单约束解析 latest；清单中的约束保持不变"""
        jobs = [
            (str(d.key), _bind(self._refresh_job, d, LATEST))
            for d in self._select(keys, kind)
        ]
        return self._commit_batch(jobs, fail_fast, STATUS_UPDATED, write_manifest=False)

    def outdated(self, kind: str | None = None) -> list[OutdatedInfo]:
        locks = self.lockfile.entries()
        rows: list[OutdatedInfo] = []
        for dep in self._select(None, kind):
            key = str(dep.key)
            lock = locks.get(key)
            current = lock.display if lock else ""
            current_id = lock.resolved_id if lock else ""
            try:
                registry = self.registry(dep.key.registry)
                versions = registry.list_versions(dep.key.name)
                wanted = resolve_version(parse_constraint(dep.constraint), versions)
                latest = resolve_version(parse_constraint(LATEST), versions)
            except _ITEM_ERRORS as e:
                rows.append(OutdatedInfo(
                    key, dep.kind, dep.constraint, current, "", "",
                    current_id=current_id, error=e,
                ))
                continue
            rows.append(OutdatedInfo(
                key, dep.kind, dep.constraint, current, wanted.display, latest.display,
                current_id=current_id,
                wanted_id=wanted.resolved_id,
                latest_id=latest.resolved_id,
            ))
        return rows

    # =====================================================================
    # uninstall
    # =====================================================================

    def uninstall(self, key: str) -> ItemResult:
        """从所有 sink、锁文件、清单中依次移除；哪里都没有时抛 NotFoundError"""
        PackageKey.parse(key)
        in_manifest = self.manifest.exists() and self.manifest.get_dependency(key) is not None
        in_lock = self.lockfile.get(key) is not None
        occupied = [s for s in self._all_sinks() if s.get(key) is not None]
        if not (in_manifest or in_lock or occupied):
            raise NotFoundError(f"未安装: {key}")
        for installer in occupied:
            installer.uninstall(key)
        if in_lock:
            self.lockfile.remove(key)
        if in_manifest:
            self.manifest.remove_dependency(key)
        return ItemResult(key, STATUS_REMOVED)

    def uninstall_all(self, kind: str | None = None) -> BatchResult:
        keys = set(self.manifest.dependencies())
        keys.update(self.lockfile.entries())
        batch = BatchResult()
        for key in sorted(keys):
            dep = self.manifest.get_dependency(key)
            if kind is not None and dep is not None and dep.kind != kind:
                continue
            try:
                batch.add(self.uninstall(key))
            except _ITEM_ERRORS as e:
                batch.add(ItemResult(key, STATUS_FAILED, error=e))
        return batch

    # =====================================================================
    # 清理
    # =====================================================================

    def clean_cache(self, max_age: float | None = None, nuke: bool = False) -> int:
        if nuke:
            self.cache.nuke()
            return 0
        if max_age is None:
            raise InvalidConfigError("clean cache 需要 --max-age 或 --nuke")
        return self.cache.clean(max_age)

    def clean_sinks(self, nuke: bool = False) -> dict[str, list[str]]:
        return {s.name: s.clean(nuke=nuke) for s in self._all_sinks()}

    # =====================================================================
    # 本地工具（不读写清单）
    # =====================================================================

    @staticmethod
    def compile_paths(req: CompileRequest) -> CompileResult:
        return CompileService().run(req)

    @staticmethod
    def convert(
        input_path: str,
        output: str | None = None,
        ruleset_id: str = "",
        ruleset_name: str = "",
        dry_run: bool = False,
    ) -> tuple[Path, str]:
        return convert_file(input_path, output, ruleset_id, ruleset_name, dry_run)


def _verify_checksum(dep: DependencyConfig, lock: LockEntry, checksum: str) -> None:
    if lock.checksum and checksum != lock.checksum:
        raise ChecksumMismatchError(
            f"{dep.key}@{lock.display} 校验和不一致: "
            f"锁文件 {lock.checksum}, 实际 {checksum}"
        )


def _bind(fn: Callable[..., Fetched], *args: Any) -> Callable[[], Fetched]:
    return lambda: fn(*args)
