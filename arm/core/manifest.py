"""清单存储 - 注册表 / sink / 期望安装包 的权威声明

文档结构:
    {
      "version": 1,
      "registries":   {name: {"type", "url", ...}},
      "sinks":        {name: {"directory", "layout", "compileTarget"}},
      "dependencies": {"<registry>/<name>": {"type", "version", "priority",
                                             "sinks", "include", "exclude"}}
    }

修改安装相关字段只改清单本身，已安装状态的对账由编排层负责。
"""

from __future__ import annotations

import logging
from typing import Any

from arm.core.document import JsonDocument
from arm.core.exceptions import (
    AlreadyExistsError,
    InvalidConfigError,
    NotFoundError,
)
from arm.core.models import (
    COMPILE_TARGETS,
    LAYOUTS,
    REGISTRY_TYPES,
    DependencyConfig,
    PackageKey,
    SinkConfig,
)

logger = logging.getLogger(__name__)

# 各注册表类型允许通过 set 修改的字段
REGISTRY_FIELDS: dict[str, tuple[str, ...]] = {
    "git": ("url", "branches"),
    "gitlab": ("url", "projectId", "groupId", "apiVersion"),
    "cloudsmith": ("url", "owner", "repository"),
}
SINK_FIELDS = ("directory", "layout", "compileTarget")
DEPENDENCY_FIELDS = ("version", "priority", "sinks", "include", "exclude")


def _split_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    return [s.strip() for s in str(value).split(",") if s.strip()]


def validate_registry(name: str, cfg: dict[str, Any]) -> None:
    rtype = cfg.get("type")
    if rtype not in REGISTRY_TYPES:
        raise InvalidConfigError(
            f"注册表 '{name}' 的 type 无效: {rtype}（可选: {', '.join(REGISTRY_TYPES)}）"
        )
    if rtype == "git" and not cfg.get("url"):
        raise InvalidConfigError(f"git 注册表 '{name}' 缺少 url")
    if rtype == "gitlab" and not (cfg.get("projectId") or cfg.get("groupId")):
        raise InvalidConfigError(f"gitlab 注册表 '{name}' 需要 projectId 或 groupId")
    if rtype == "cloudsmith" and not (cfg.get("owner") and cfg.get("repository")):
        raise InvalidConfigError(f"cloudsmith 注册表 '{name}' 需要 owner 与 repository")


class Manifest(JsonDocument):
    """清单存储"""

    sections = ("registries", "sinks", "dependencies")
    label = "清单"

    def validate(self, data: dict[str, Any]) -> None:
        registries = data.get("registries", {})
        for name, cfg in registries.items():
            if not isinstance(cfg, dict):
                raise InvalidConfigError(f"注册表 '{name}' 必须是对象")
            validate_registry(name, cfg)
        sinks = data.get("sinks", {})
        for name, cfg in sinks.items():
            if not isinstance(cfg, dict):
                raise InvalidConfigError(f"sink '{name}' 必须是对象")
            SinkConfig.from_dict(name, cfg)
        for key, entry in data.get("dependencies", {}).items():
            if not isinstance(entry, dict):
                raise InvalidConfigError(f"依赖 '{key}' 必须是对象")
            dep = DependencyConfig.from_dict(key, entry)
            if dep.key.registry not in registries:
                raise InvalidConfigError(
                    f"依赖 '{key}' 引用了未定义的注册表 '{dep.key.registry}'"
                )
            for sink in dep.sinks:
                if sink not in sinks:
                    raise InvalidConfigError(f"依赖 '{key}' 引用了未定义的 sink '{sink}'")

    # ---- 注册表 ----

    def registries(self) -> dict[str, dict[str, Any]]:
        return dict(self.read()["registries"])

    def get_registry(self, name: str) -> dict[str, Any]:
        cfg = self.read()["registries"].get(name)
        if cfg is None:
            raise NotFoundError(f"注册表不存在: {name}")
        return dict(cfg)

    def add_registry(self, name: str, cfg: dict[str, Any], force: bool = False) -> None:
        validate_registry(name, cfg)

        def _add(data: dict[str, Any]) -> None:
            section = self._section(data, "registries")
            if name in section and not force:
                raise AlreadyExistsError(f"注册表已存在: {name}（使用 --force 覆盖）")
            section[name] = cfg

        self._mutate(_add)
        logger.info("注册表已添加: %s (%s)", name, cfg.get("type"))

    def remove_registry(self, name: str) -> None:
        def _remove(data: dict[str, Any]) -> None:
            section = self._section(data, "registries")
            if name not in section:
                raise NotFoundError(f"注册表不存在: {name}")
            users = [
                k for k in data.get("dependencies", {})
                if k.partition("/")[0] == name
            ]
            if users:
                raise InvalidConfigError(
                    f"注册表 '{name}' 仍被依赖引用: {', '.join(sorted(users))}"
                )
            del section[name]

        self._mutate(_remove)
        logger.info("注册表已删除: %s", name)

    def update_registry(self, name: str, field: str, value: Any) -> None:
        """修改注册表字段；field 为 name 时重命名并改写依赖的键"""

        def _update(data: dict[str, Any]) -> None:
            section = self._section(data, "registries")
            if name not in section:
                raise NotFoundError(f"注册表不存在: {name}")
            if field == "name":
                new = str(value)
                if new in section:
                    raise AlreadyExistsError(f"注册表已存在: {new}")
                section[new] = section.pop(name)
                deps = self._section(data, "dependencies")
                for key in list(deps):
                    reg, _, pkg = key.partition("/")
                    if reg == name:
                        deps[f"{new}/{pkg}"] = deps.pop(key)
                return
            cfg = section[name]
            allowed = REGISTRY_FIELDS.get(cfg.get("type", ""), ())
            if field not in allowed:
                raise InvalidConfigError(
                    f"注册表 '{name}' 不支持字段 '{field}'（可选: name, {', '.join(allowed)}）"
                )
            cfg[field] = _split_list(value) if field == "branches" else str(value)
            validate_registry(name, cfg)

        self._mutate(_update)

    # ---- sink ----

    def sinks(self) -> dict[str, SinkConfig]:
        return {
            name: SinkConfig.from_dict(name, cfg)
            for name, cfg in self.read()["sinks"].items()
        }

    def get_sink(self, name: str) -> SinkConfig:
        cfg = self.read()["sinks"].get(name)
        if cfg is None:
            raise NotFoundError(f"sink 不存在: {name}")
        return SinkConfig.from_dict(name, cfg)

    def add_sink(self, sink: SinkConfig, force: bool = False) -> None:
        SinkConfig.from_dict(sink.name, sink.to_dict())

        def _add(data: dict[str, Any]) -> None:
            section = self._section(data, "sinks")
            if sink.name in section and not force:
                raise AlreadyExistsError(f"sink 已存在: {sink.name}（使用 --force 覆盖）")
            existing = section.get(sink.name, {})
            existing.update(sink.to_dict())
            section[sink.name] = existing

        self._mutate(_add)
        logger.info("sink 已添加: %s -> %s", sink.name, sink.directory)

    def remove_sink(self, name: str) -> None:
        """删除 sink 配置，并从所有依赖的 sinks 列表中移除它"""

        def _remove(data: dict[str, Any]) -> None:
            section = self._section(data, "sinks")
            if name not in section:
                raise NotFoundError(f"sink 不存在: {name}")
            del section[name]
            for entry in self._section(data, "dependencies").values():
                if name in entry.get("sinks", []):
                    entry["sinks"] = [s for s in entry["sinks"] if s != name]

        self._mutate(_remove)
        logger.info("sink 已删除: %s", name)

    def update_sink(self, name: str, field: str, value: Any) -> None:
        def _update(data: dict[str, Any]) -> None:
            section = self._section(data, "sinks")
            if name not in section:
                raise NotFoundError(f"sink 不存在: {name}")
            if field == "name":
                new = str(value)
                if new in section:
                    raise AlreadyExistsError(f"sink 已存在: {new}")
                section[new] = section.pop(name)
                for entry in self._section(data, "dependencies").values():
                    entry["sinks"] = [
                        new if s == name else s for s in entry.get("sinks", [])
                    ]
                return
            if field not in SINK_FIELDS:
                raise InvalidConfigError(
                    f"sink 不支持字段 '{field}'（可选: name, {', '.join(SINK_FIELDS)}）"
                )
            if field == "layout" and value not in LAYOUTS:
                raise InvalidConfigError(f"layout 无效: {value}")
            if field == "compileTarget" and value not in COMPILE_TARGETS:
                raise InvalidConfigError(f"compileTarget 无效: {value}")
            section[name][field] = str(value)

        self._mutate(_update)

    # ---- 依赖 ----

    def dependencies(self) -> dict[str, DependencyConfig]:
        return {
            key: DependencyConfig.from_dict(key, entry)
            for key, entry in self.read()["dependencies"].items()
        }

    def get_dependency(self, key: PackageKey | str) -> DependencyConfig | None:
        entry = self.read()["dependencies"].get(str(key))
        if entry is None:
            return None
        return DependencyConfig.from_dict(str(key), entry)

    def upsert_dependency(self, dep: DependencyConfig) -> None:
        """插入或更新依赖；已有条目的未知字段保留"""

        def _upsert(data: dict[str, Any]) -> None:
            section = self._section(data, "dependencies")
            entry = section.get(str(dep.key), {})
            entry.update(dep.to_dict())
            if not dep.include:
                entry.pop("include", None)
            if not dep.exclude:
                entry.pop("exclude", None)
            section[str(dep.key)] = entry

        self._mutate(_upsert)
        logger.info("清单已更新: %s@%s", dep.key, dep.constraint)

    def remove_dependency(self, key: PackageKey | str) -> None:
        def _remove(data: dict[str, Any]) -> None:
            section = self._section(data, "dependencies")
            if str(key) not in section:
                raise NotFoundError(f"清单中不存在依赖: {key}")
            del section[str(key)]

        self._mutate(_remove)

    def update_dependency(self, key: PackageKey | str, field: str, value: Any) -> None:
        """修改依赖字段（version 会被规范化由调用方负责）"""

        def _update(data: dict[str, Any]) -> None:
            section = self._section(data, "dependencies")
            entry = section.get(str(key))
            if entry is None:
                raise NotFoundError(f"清单中不存在依赖: {key}")
            if field not in DEPENDENCY_FIELDS:
                raise InvalidConfigError(
                    f"依赖不支持字段 '{field}'（可选: {', '.join(DEPENDENCY_FIELDS)}）"
                )
            if field == "priority":
                if entry.get("type") == "promptset":
                    raise InvalidConfigError("promptset 没有 priority 字段")
                try:
                    entry[field] = int(value)
                except (TypeError, ValueError) as e:
                    raise InvalidConfigError(f"priority 必须是整数: {value}") from e
            elif field in ("sinks", "include", "exclude"):
                entry[field] = _split_list(value)
            else:
                entry[field] = str(value)

        self._mutate(_update)
