"""真实 git 仓库上的端到端场景（需要本机 git）"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from arm.core.config import Config
from arm.core.models import SinkConfig
from arm.services.container import ServiceContainer

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="需要 git")

RULESET = """\
apiVersion: v1
kind: Ruleset
metadata: {{id: team, name: Team}}
spec:
  rules:
    style: {{name: Style, enforcement: must, body: "{body}"}}
"""


def git(repo: Path, *args: str) -> str:
    r = subprocess.run(
        ["git", "-c", "user.name=t", "-c", "user.email=t@example.com",
         "-c", "commit.gpgsign=false", *args],
        cwd=repo, capture_output=True, text=True, check=True,
    )
    return r.stdout.strip()


def commit(repo: Path, body: str, tag: str = "") -> str:
    (repo / "rules").mkdir(exist_ok=True)
    (repo / "rules" / "team.yml").write_text(RULESET.format(body=body))
    git(repo, "add", "-A")
    git(repo, "commit", "-q", "-m", body)
    if tag:
        git(repo, "tag", tag)
    return git(repo, "rev-parse", "HEAD")


@pytest.fixture
def remote(tmp_path: Path) -> Path:
    repo = tmp_path / "remote"
    repo.mkdir()
    git(repo, "init", "-q", "-b", "main")
    commit(repo, "First", "v1.0.0")
    commit(repo, "Second", "v1.1.0")
    return repo


@pytest.fixture
def container(tmp_path: Path, remote: Path) -> ServiceContainer:
    c = ServiceContainer(Config(cache_dir=str(tmp_path / "cache")), tmp_path / "project" / "arm.json")
    c.service.add_registry("team", {"type": "git", "url": remote.as_uri()})
    c.service.add_sink(SinkConfig("cursor", ".cursor/rules", "hierarchical", "cursor"))
    return c


def rule_file(c: ServiceContainer, version: str) -> Path:
    return c.manifest_path.parent / ".cursor/rules/arm/team/rules" / version / "rules" / "team_style.mdc"


class TestGitScenarios:
    def test_exact_tag(self, container: ServiceContainer) -> None:
        item = container.service.install("team/rules@1.0.0", sinks=["cursor"])
        assert item.version == "v1.0.0"
        text = rule_file(container, "v1.0.0").read_text()
        assert text.startswith("---\nalwaysApply: true\n---")
        assert "First" in text

    def test_branch_head_moves(self, container: ServiceContainer, remote: Path) -> None:
        container.service.install("team/rules@main", sinks=["cursor"])
        assert "Second" in rule_file(container, "main").read_text()
        sha = commit(remote, "Third")
        (item,) = container.service.update().items
        assert item.status == "updated"
        assert container.lockfile.get("team/rules").resolved_id == sha
        assert "Third" in rule_file(container, "main").read_text()

    def test_reinstall_from_lock_uses_cache(self, container: ServiceContainer, remote: Path) -> None:
        container.service.install("team/rules@^1", sinks=["cursor"])
        commit(remote, "Fourth", "v1.2.0")
        shutil.rmtree(container.manifest_path.parent / ".cursor")
        batch = container.service.install_all()
        assert batch.items[0].version == "v1.1.0"
        assert rule_file(container, "v1.1.0").exists()
