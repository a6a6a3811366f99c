"""JSON 文档存储基类 - 清单与锁文件共享的 读取/校验/原子写入 模式

每次变更都是一次完整的 读 → 改 → 校验 → 原子写，调用方之间不共享内存态，
未知字段原样保留。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable

from arm.core.exceptions import InvalidConfigError
from arm.utils.fileio import load_json, save_json

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class JsonDocument:
    """JSON 文档基类

    子类用法:
        class MyStore(JsonDocument):
            sections = ("entries",)
            label = "我的文档"
    """

    sections: tuple[str, ...] = ()
    label: str = "文档"

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def _empty(self) -> dict[str, Any]:
        data: dict[str, Any] = {"version": SCHEMA_VERSION}
        for key in self.sections:
            data[key] = {}
        return data

    def read(self) -> dict[str, Any]:
        """读取完整文档；不存在返回空文档，格式错误抛 InvalidConfigError"""
        try:
            data = load_json(self.path)
        except (json.JSONDecodeError, ValueError, UnicodeDecodeError) as e:
            raise InvalidConfigError(f"{self.label}解析失败 {self.path}: {e}") from e
        if data is None:
            return self._empty()
        for key in self.sections:
            section = data.setdefault(key, {})
            if not isinstance(section, dict):
                raise InvalidConfigError(
                    f"{self.label} {self.path} 中 '{key}' 必须是对象"
                )
        self.validate(data)
        return data

    def write(self, data: dict[str, Any]) -> None:
        self.validate(data)
        save_json(self.path, data)
        logger.debug("%s已写入: %s", self.label, self.path)

    def validate(self, data: dict[str, Any]) -> None:
        """子类覆盖：结构校验"""

    def _mutate(self, fn: Callable[[dict[str, Any]], Any]) -> Any:
        """读 → 改 → 写，返回 fn 的结果"""
        data = self.read()
        result = fn(data)
        self.write(data)
        return result

    @staticmethod
    def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
        result: dict[str, Any] = data.setdefault(key, {})
        return result
