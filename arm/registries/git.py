"""Git 注册表驱动

- 版本列表: git ls-remote 直接查询远端，semver 标签为 tag 版本，
  配置中的分支（支持 fnmatch 通配）为分支头版本，解析 id 为当前 tip SHA
- 未配置分支时暴露远端默认分支，供 latest 在无标签时回退
- 拉取: 按 display 浅克隆，校验 HEAD 与解析 id 一致，不一致时按 SHA fetch
"""

from __future__ import annotations

import fnmatch
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

from arm.core.exceptions import (
    AuthFailedError,
    RegistryUnreachableError,
    ValidationError,
)
from arm.core.models import File, Version
from arm.core.version import branch_version, is_semver, sort_versions_desc, tagged_version
from arm.registries.base import Registry
from arm.services.cache import ContentCache
from arm.utils.shell import CommandExecutor, CommandResult, LocalExecutor

logger = logging.getLogger(__name__)

_SAFE_REF_RE = re.compile(r"^[a-zA-Z0-9_./@+\-]+$")
_SHA_RE = re.compile(r"^[0-9a-f]{7,64}$")
_AUTH_MARKERS = (
    "authentication failed",
    "could not read username",
    "permission denied",
    "terminal prompts disabled",
    "403",
)

DEFAULT_GIT_TIMEOUT = 300


class GitRegistry(Registry):
    """Git 仓库注册表"""

    kind = "git"

    def __init__(
        self,
        name: str,
        config: dict[str, Any],
        cache: ContentCache | None = None,
        executor: CommandExecutor | None = None,
        git_binary: str = "git",
        timeout: int = DEFAULT_GIT_TIMEOUT,
    ) -> None:
        super().__init__(name, config, cache)
        self.url = str(config.get("url", ""))
        self.branches = list(config.get("branches", []))
        self._executor = executor or LocalExecutor()
        self._git_binary = git_binary
        self._timeout = timeout

    # ---- git 调用 ----

    def _git(self, *args: str, cwd: str = ".") -> CommandResult:
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        r = self._executor.execute(
            [self._git_binary, *args], cwd=cwd, env=env, timeout=self._timeout,
        )
        if not r.success:
            stderr = r.stderr.strip()
            label = f"git {args[0]} 失败 ({self.name}: {self.url}, rc={r.returncode})"
            if any(m in stderr.lower() for m in _AUTH_MARKERS):
                raise AuthFailedError(f"{label}: {stderr[:300]}")
            raise RegistryUnreachableError(f"{label}: {stderr[:300]}")
        return r

    def _remote_refs(self) -> tuple[dict[str, str], dict[str, str]]:
        """返回 (tags, heads)，值为提交 SHA；附注标签取 ^{} 剥离后的提交"""
        r = self._git("ls-remote", "--tags", "--heads", self.url)
        tags: dict[str, str] = {}
        heads: dict[str, str] = {}
        for line in r.stdout.splitlines():
            sha, _, ref = line.strip().partition("\t")
            if not sha or not ref:
                continue
            if ref.startswith("refs/heads/"):
                heads[ref[len("refs/heads/"):]] = sha
            elif ref.startswith("refs/tags/"):
                tag = ref[len("refs/tags/"):]
                if tag.endswith("^{}"):
                    tags[tag[:-3]] = sha
                else:
                    tags.setdefault(tag, sha)
        return tags, heads

    def _default_branch(self) -> str:
        r = self._git("ls-remote", "--symref", self.url, "HEAD")
        for line in r.stdout.splitlines():
            if line.startswith("ref: refs/heads/"):
                return line[len("ref: refs/heads/"):].split("\t")[0].strip()
        return ""

    # ---- 契约实现 ----

    def list_versions(self, package: str) -> list[Version]:
        tags, heads = self._remote_refs()
        versions = [
            tagged_version(tag, sha) for tag, sha in tags.items() if is_semver(tag)
        ]
        versions = sort_versions_desc(versions)

        seen: set[str] = set()
        patterns = self.branches
        if not patterns:
            default = self._default_branch()
            patterns = [default] if default else []
        for pattern in patterns:
            for branch in sorted(heads):
                if branch in seen or not fnmatch.fnmatchcase(branch, pattern):
                    continue
                seen.add(branch)
                versions.append(branch_version(branch, heads[branch]))
        logger.debug(
            "git 版本列表 %s: %d 个标签, %d 个分支",
            self.name, len(versions) - len(seen), len(seen),
        )
        return versions

    def _fetch(self, package: str, version: Version) -> list[File]:
        ref = version.display
        if not _SAFE_REF_RE.match(ref):
            raise ValidationError(f"ref 包含非法字符: {ref}")
        if not _SHA_RE.match(version.resolved_id):
            raise ValidationError(f"解析 id 不是合法的提交 SHA: {version.resolved_id}")

        with tempfile.TemporaryDirectory(prefix="arm-git-") as tmp:
            workspace = str(Path(tmp) / "repo")
            self._checkout(ref, version.resolved_id, workspace)
            return _read_worktree(Path(workspace))

    def _checkout(self, ref: str, sha: str, workspace: str) -> None:
        """浅克隆 ref，HEAD 不是期望提交时按 SHA 回退拉取"""
        self._git("clone", "--depth", "1", "--branch", ref, self.url, workspace)
        head = self._git("rev-parse", "HEAD", cwd=workspace).stdout.strip()
        if head == sha:
            return
        logger.info("%s 已移动 (%s != %s)，按提交拉取", ref, head[:12], sha[:12])
        self._git("fetch", "--depth", "1", "origin", sha, cwd=workspace)
        self._git("checkout", "--detach", "FETCH_HEAD", cwd=workspace)
        head = self._git("rev-parse", "HEAD", cwd=workspace).stdout.strip()
        if head != sha:
            raise RegistryUnreachableError(
                f"无法检出提交 {sha} ({self.name}: {self.url})"
            )


def _read_worktree(root: Path) -> list[File]:
    files: list[File] = []
    for p in sorted(root.rglob("*")):
        rel = p.relative_to(root)
        if rel.parts and rel.parts[0] == ".git":
            continue
        if p.is_file() and not p.is_symlink():
            files.append(File(path=rel.as_posix(), content=p.read_bytes()))
    return files
