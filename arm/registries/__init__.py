"""注册表驱动 - 枚举远端包版本并拉取原始内容

拆分说明:
- base.py: 公共契约与缓存/过滤流程
- git.py: Git 仓库（标签 + 分支头）
- gitlab.py: GitLab generic packages
- cloudsmith.py: Cloudsmith raw packages
"""

from __future__ import annotations

from typing import Any

from arm.core.exceptions import InvalidConfigError
from arm.registries.base import ContentSelector, Registry
from arm.registries.cloudsmith import CloudsmithRegistry
from arm.registries.git import GitRegistry
from arm.registries.gitlab import GitLabRegistry
from arm.services.cache import ContentCache
from arm.utils.net import HttpClient
from arm.utils.shell import CommandExecutor


def create_registry(
    name: str,
    config: dict[str, Any],
    cache: ContentCache | None = None,
    *,
    executor: CommandExecutor | None = None,
    client: HttpClient | None = None,
    git_binary: str = "git",
) -> Registry:
    """按 type 构造驱动，未知类型抛 InvalidConfigError"""
    rtype = config.get("type")
    if rtype == "git":
        return GitRegistry(name, config, cache, executor=executor, git_binary=git_binary)
    if rtype == "gitlab":
        return GitLabRegistry(name, config, cache, client=client)
    if rtype == "cloudsmith":
        return CloudsmithRegistry(name, config, cache, client=client)
    raise InvalidConfigError(f"注册表 '{name}' 的类型不受支持: {rtype}")


__all__ = [
    "ContentSelector",
    "Registry",
    "GitRegistry",
    "GitLabRegistry",
    "CloudsmithRegistry",
    "create_registry",
]
