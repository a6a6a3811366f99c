"""锁文件存储测试"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from arm.core.exceptions import InvalidConfigError, NotFoundError
from arm.core.lockfile import Lockfile
from arm.core.manifest import Manifest
from arm.core.models import DependencyConfig, LockEntry, PackageKey, SinkConfig

CHECKSUM = "sha256:" + "a" * 64


@pytest.fixture
def stores(tmp_path: Path) -> tuple[Manifest, Lockfile]:
    m = Manifest(tmp_path / "arm.json")
    m.add_registry("r", {"type": "git", "url": "https://example.com/x.git"})
    m.add_sink(SinkConfig("s", "out", compile_target="cursor"))
    m.upsert_dependency(DependencyConfig(PackageKey("r", "p"), "ruleset", "1.0.0", ["s"]))
    return m, Lockfile(tmp_path / "arm-lock.json", m)


class TestLockfile:
    def test_upsert_and_get(self, stores) -> None:
        _, lock = stores
        lock.upsert(LockEntry(PackageKey("r", "p"), "abc123", "1.0.0", CHECKSUM))
        entry = lock.get("r/p")
        assert entry is not None
        assert (entry.resolved_id, entry.display, entry.checksum) == ("abc123", "1.0.0", CHECKSUM)

    def test_on_disk_format(self, stores, tmp_path: Path) -> None:
        _, lock = stores
        lock.upsert(LockEntry(PackageKey("r", "p"), "abc123", "1.0.0", CHECKSUM))
        data = json.loads((tmp_path / "arm-lock.json").read_text(encoding="utf-8"))
        assert data == {
            "version": 1,
            "dependencies": {"r/p": {"version": "abc123", "display": "1.0.0", "checksum": CHECKSUM}},
        }

    def test_rejects_package_not_in_manifest(self, stores) -> None:
        _, lock = stores
        with pytest.raises(NotFoundError):
            lock.upsert(LockEntry(PackageKey("r", "other"), "x", "1.0.0", CHECKSUM))

    def test_remove(self, stores) -> None:
        _, lock = stores
        assert lock.remove("r/p") is False
        lock.upsert(LockEntry(PackageKey("r", "p"), "abc", "1.0.0", CHECKSUM))
        assert lock.remove("r/p") is True
        assert lock.get("r/p") is None

    def test_bad_checksum_rejected(self, stores, tmp_path: Path) -> None:
        _, lock = stores
        (tmp_path / "arm-lock.json").write_text(json.dumps({
            "version": 1, "dependencies": {"r/p": {"version": "a", "checksum": "md5:x"}},
        }), encoding="utf-8")
        with pytest.raises(InvalidConfigError, match="checksum"):
            lock.entries()

    def test_rename_registry(self, stores) -> None:
        m, lock = stores
        lock.upsert(LockEntry(PackageKey("r", "p"), "abc", "1.0.0", CHECKSUM))
        lock.rename_registry("r", "team")
        assert list(lock.entries()) == ["team/p"]
