"""Git 注册表驱动测试（注入 fake 执行器，不访问网络）"""

from __future__ import annotations

from pathlib import Path

import pytest

from arm.core.exceptions import (
    AuthFailedError,
    InvalidConfigError,
    RegistryUnreachableError,
    ValidationError,
)
from arm.core.models import Version
from arm.core.version import branch_version, tagged_version
from arm.registries import ContentSelector, create_registry
from arm.registries.git import GitRegistry
from arm.services.cache import ContentCache
from arm.utils.shell import CommandResult

SHA_A = "a" * 40
SHA_B = "b" * 40
SHA_C = "c" * 40
SHA_MAIN = "d" * 40

LS_REMOTE = "\n".join([
    f"{SHA_A}\trefs/tags/v1.0.0",
    f"{'e' * 40}\trefs/tags/v1.1.0",
    f"{SHA_B}\trefs/tags/v1.1.0^{{}}",
    f"{SHA_C}\trefs/tags/not-a-version",
    f"{SHA_MAIN}\trefs/heads/main",
    f"{'f' * 40}\trefs/heads/feature/x",
    f"{'9' * 40}\trefs/heads/feature/y",
])


class FakeGit:
    """按子命令返回预设输出；clone 时向目标目录写入文件"""

    def __init__(self, files: dict[str, str] | None = None, head: str = SHA_A) -> None:
        self.calls: list[list[str]] = []
        self.files = files or {"rules/a.yml": "a", "README.md": "readme"}
        self.head = head
        self.after_fetch = head
        self.fail: dict[str, CommandResult] = {}
        self.symref = "ref: refs/heads/main\tHEAD\n"

    def execute(self, cmd, *, cwd=".", env=None, timeout=None):  # type: ignore[no-untyped-def]
        self.calls.append(list(cmd))
        sub = cmd[1]
        if sub in self.fail:
            return self.fail[sub]
        if sub == "ls-remote":
            if "--symref" in cmd:
                return CommandResult(0, self.symref + f"{SHA_MAIN}\tHEAD\n", "")
            return CommandResult(0, LS_REMOTE, "")
        if sub == "clone":
            root = Path(cmd[-1])
            for rel, text in self.files.items():
                p = root / rel
                p.parent.mkdir(parents=True, exist_ok=True)
                p.write_text(text)
            (root / ".git").mkdir(parents=True, exist_ok=True)
            (root / ".git" / "HEAD").write_text("ref")
            return CommandResult(0, "", "")
        if sub == "rev-parse":
            return CommandResult(0, self.head + "\n", "")
        if sub == "fetch":
            self.head = self.after_fetch
            return CommandResult(0, "", "")
        return CommandResult(0, "", "")


def _registry(fake: FakeGit, **config: object) -> GitRegistry:
    cfg = {"type": "git", "url": "https://example.com/rules.git", **config}
    return GitRegistry("ai-rules", cfg, executor=fake)


class TestListVersions:
    def test_semver_tags_and_default_branch(self) -> None:
        versions = _registry(FakeGit()).list_versions("any")
        assert [v.display for v in versions] == ["v1.1.0", "v1.0.0", "main"]
        assert versions[0].resolved_id == SHA_B
        assert versions[-1].is_branch and versions[-1].resolved_id == SHA_MAIN

    def test_branch_patterns(self) -> None:
        versions = _registry(FakeGit(), branches=["feature/*", "main"]).list_versions("x")
        branches = [v.display for v in versions if v.is_branch]
        assert branches == ["feature/x", "feature/y", "main"]

    def test_no_default_branch(self) -> None:
        fake = FakeGit()
        fake.symref = ""
        versions = _registry(fake).list_versions("x")
        assert not any(v.is_branch for v in versions)

    def test_resolve_latest_picks_highest_tag(self) -> None:
        v = _registry(FakeGit()).resolve_version("x", "latest")
        assert v.display == "v1.1.0"

    def test_auth_failure(self) -> None:
        fake = FakeGit()
        fake.fail["ls-remote"] = CommandResult(128, "", "fatal: Authentication failed for url")
        with pytest.raises(AuthFailedError):
            _registry(fake).list_versions("x")

    def test_unreachable(self) -> None:
        fake = FakeGit()
        fake.fail["ls-remote"] = CommandResult(128, "", "fatal: unable to access host")
        with pytest.raises(RegistryUnreachableError):
            _registry(fake).list_versions("x")


class TestGetContent:
    def test_clone_and_filter(self) -> None:
        fake = FakeGit()
        reg = _registry(fake)
        files = reg.get_content("x", tagged_version("v1.0.0", SHA_A), ContentSelector(include=["rules/**"]))
        assert [f.path for f in files] == ["rules/a.yml"]
        clone = next(c for c in fake.calls if c[1] == "clone")
        assert clone[2:6] == ["--depth", "1", "--branch", "v1.0.0"]

    def test_git_directory_skipped(self) -> None:
        files = _registry(FakeGit()).get_content("x", tagged_version("v1.0.0", SHA_A))
        assert all(not f.path.startswith(".git") for f in files)

    def test_moved_branch_fetches_by_sha(self) -> None:
        fake = FakeGit(head=SHA_B)
        fake.after_fetch = SHA_MAIN
        _registry(fake).get_content("x", branch_version("main", SHA_MAIN))
        subs = [c[1] for c in fake.calls]
        assert "fetch" in subs and "checkout" in subs

    def test_sha_unavailable(self) -> None:
        fake = FakeGit(head=SHA_B)
        fake.after_fetch = SHA_B
        with pytest.raises(RegistryUnreachableError):
            _registry(fake).get_content("x", branch_version("main", SHA_MAIN))

    def test_rejects_unsafe_ref(self) -> None:
        with pytest.raises(ValidationError):
            _registry(FakeGit()).get_content("x", Version(resolved_id=SHA_A, display="a;rm"))

    def test_build_metadata_tag_checks_out(self) -> None:
        fake = FakeGit()
        _registry(fake).get_content("x", tagged_version("v1.0.0+build.7", SHA_A))
        clone = next(c for c in fake.calls if c[1] == "clone")
        assert clone[5] == "v1.0.0+build.7"

    def test_second_fetch_served_from_cache(self, tmp_path: Path) -> None:
        fake = FakeGit()
        cfg = {"type": "git", "url": "https://example.com/rules.git"}
        reg = GitRegistry("ai-rules", cfg, ContentCache(tmp_path), executor=fake)
        version = tagged_version("v1.0.0", SHA_A)
        first = reg.get_content("x", version)
        clones = sum(1 for c in fake.calls if c[1] == "clone")
        second = reg.get_content("x", version)
        assert first == second
        assert sum(1 for c in fake.calls if c[1] == "clone") == clones


class TestCreateRegistry:
    def test_dispatch(self) -> None:
        reg = create_registry("r", {"type": "git", "url": "u"}, executor=FakeGit())
        assert isinstance(reg, GitRegistry)
        assert create_registry("g", {"type": "gitlab", "projectId": "1"}, client=object()).kind == "gitlab"
        assert create_registry("c", {"type": "cloudsmith", "owner": "o", "repository": "r"}, client=object()).kind == "cloudsmith"

    def test_unknown_type(self) -> None:
        with pytest.raises(InvalidConfigError):
            create_registry("x", {"type": "svn"})
