"""glob 匹配与内容过滤

规则:
- 不含通配符的模式按完整路径字面匹配
- 单个 * 匹配任意字符（包括 /），? 匹配单个字符
- **/x 匹配路径本身或任意 / 后缀；p/** 匹配 p 及其下所有路径；
  a/**/b 要求前缀 a/，其后任意深度匹配 b
- 排除优先于包含
"""

from __future__ import annotations

import fnmatch
import re
from functools import lru_cache
from typing import Iterable, TypeVar

DEFAULT_INCLUDE = ["*.yml", "*.yaml"]

T = TypeVar("T")


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    # fnmatch 的 * 本身就跨越 /，与上面约定一致
    return re.compile(fnmatch.translate(pattern))


def _simple_match(pattern: str, path: str) -> bool:
    if not any(c in pattern for c in "*?["):
        return pattern == path
    return _compile(pattern).match(path) is not None


def _suffixes(path: str) -> list[str]:
    parts = path.split("/")
    return ["/".join(parts[i:]) for i in range(len(parts))]


def match_pattern(pattern: str, path: str) -> bool:
    """判断相对路径是否匹配 glob 模式"""
    path = path.replace("\\", "/").lstrip("/")
    pattern = pattern.replace("\\", "/").lstrip("/")
    if pattern.startswith("./"):
        pattern = pattern[2:]

    if "**" not in pattern:
        return _simple_match(pattern, path)

    if pattern == "**":
        return True

    if pattern.startswith("**/"):
        rest = pattern[3:]
        return any(match_pattern(rest, s) for s in _suffixes(path))

    if pattern.endswith("/**"):
        prefix = pattern[:-3]
        if "*" in prefix or "?" in prefix:
            parts = path.split("/")
            return any(
                _simple_match(prefix, "/".join(parts[:i]))
                for i in range(1, len(parts) + 1)
            )
        return path == prefix or path.startswith(prefix + "/")

    head, _, tail = pattern.partition("/**/")
    if not tail:
        # 形如 a**b：退化为普通通配
        return _simple_match(pattern.replace("**", "*"), path)
    parts = path.split("/")
    for i in range(1, len(parts)):
        if _simple_match(head, "/".join(parts[:i])):
            rest = "/".join(parts[i:])
            if any(match_pattern(tail, s) for s in _suffixes(rest)):
                return True
    return False


def matches_any(patterns: Iterable[str], path: str) -> bool:
    return any(match_pattern(p, path) for p in patterns)


def should_include(
    path: str, include: list[str] | None, exclude: list[str] | None,
) -> bool:
    """排除优先；未提供包含模式时使用默认 YAML 模式"""
    if exclude and matches_any(exclude, path):
        return False
    return matches_any(include or DEFAULT_INCLUDE, path)


def filter_files(
    files: Iterable[T],
    include: list[str] | None = None,
    exclude: list[str] | None = None,
) -> list[T]:
    """保留匹配至少一个包含模式且不匹配任何排除模式的文件（需有 path 属性）"""
    return [
        f for f in files
        if should_include(f.path, include, exclude)  # type: ignore[attr-defined]
    ]
