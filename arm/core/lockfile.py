"""锁文件存储 - 每个已安装包的精确解析版本与内容校验和

文档结构:
    {"version": 1, "dependencies": {"<registry>/<name>":
        {"version": <不透明 id>, "display": <展示名>, "checksum": "sha256:..."}}}

文件不存在等价于空文档；拒绝记录清单中不存在的包。
"""

from __future__ import annotations

import logging
from typing import Any

from arm.core.checksum import is_valid_checksum
from arm.core.document import JsonDocument
from arm.core.exceptions import InvalidConfigError, NotFoundError
from arm.core.manifest import Manifest
from arm.core.models import LockEntry, PackageKey

logger = logging.getLogger(__name__)


class Lockfile(JsonDocument):
    """锁文件存储"""

    sections = ("dependencies",)
    label = "锁文件"

    def __init__(self, path: Any, manifest: Manifest) -> None:
        super().__init__(path)
        self._manifest = manifest

    def validate(self, data: dict[str, Any]) -> None:
        for key, entry in data.get("dependencies", {}).items():
            if not isinstance(entry, dict):
                raise InvalidConfigError(f"锁文件条目 '{key}' 必须是对象")
            PackageKey.parse(key)
            checksum = entry.get("checksum", "")
            if checksum and not is_valid_checksum(checksum):
                raise InvalidConfigError(f"锁文件条目 '{key}' 的 checksum 格式无效")

    def entries(self) -> dict[str, LockEntry]:
        return {
            key: LockEntry.from_dict(key, entry)
            for key, entry in self.read()["dependencies"].items()
        }

    def get(self, key: PackageKey | str) -> LockEntry | None:
        entry = self.read()["dependencies"].get(str(key))
        return LockEntry.from_dict(str(key), entry) if entry is not None else None

    def upsert(self, entry: LockEntry) -> None:
        if self._manifest.get_dependency(entry.key) is None:
            raise NotFoundError(f"清单中不存在 {entry.key}，拒绝写入锁文件")

        def _upsert(data: dict[str, Any]) -> None:
            section = self._section(data, "dependencies")
            current = section.get(str(entry.key), {})
            current.update(entry.to_dict())
            section[str(entry.key)] = current

        self._mutate(_upsert)
        logger.info("锁文件已更新: %s -> %s (%s)", entry.key, entry.display, entry.resolved_id)

    def remove(self, key: PackageKey | str) -> bool:
        if not self.exists():
            return False

        def _remove(data: dict[str, Any]) -> bool:
            return self._section(data, "dependencies").pop(str(key), None) is not None

        return bool(self._mutate(_remove))

    def rename_registry(self, old: str, new: str) -> None:
        if not self.exists():
            return

        def _rename(data: dict[str, Any]) -> None:
            section = self._section(data, "dependencies")
            for key in list(section):
                reg, _, pkg = key.partition("/")
                if reg == old:
                    section[f"{new}/{pkg}"] = section.pop(key)

        self._mutate(_rename)
