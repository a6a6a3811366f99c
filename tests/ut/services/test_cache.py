"""内容缓存测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from arm.core.exceptions import CacheLockTimeoutError
from arm.core.models import File
from arm.core.version import tagged_version
from arm.services.cache import ContentCache, registry_key

META = {"type": "git", "url": "https://example.com/r.git"}
KEY = registry_key(META)
V1 = tagged_version("1.0.0", "sha1")


class Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRegistryKey:
    def test_ignores_non_identity_fields(self) -> None:
        assert registry_key(META) == registry_key({**META, "branches": ["main"]})
        assert registry_key(META) != registry_key({**META, "url": "https://other"})
        assert len(KEY) == 16


class TestContentCache:
    def test_miss_then_hit(self, tmp_path: Path) -> None:
        cache = ContentCache(tmp_path)
        assert cache.get(KEY, "pkg", V1) is None
        files = [File("a.yml", b"a"), File("dir/b.yml", b"b")]
        cache.store(KEY, META, "pkg", V1, files)
        assert (cache.version_dir(KEY, "pkg", "sha1") / "index.json").exists()
        assert cache.get(KEY, "pkg", V1) == files
        assert (tmp_path / "registries" / KEY / "metadata.json").exists()

    def test_package_names_with_slash(self, tmp_path: Path) -> None:
        cache = ContentCache(tmp_path)
        cache.store(KEY, META, "team/pkg", V1, [File("x.yml", b"x")])
        assert (tmp_path / "registries" / KEY / "team_pkg" / "sha1" / "index.json").exists()

    def test_corrupt_index_wipes_registry(self, tmp_path: Path) -> None:
        cache = ContentCache(tmp_path)
        cache.store(KEY, META, "pkg", V1, [File("a.yml", b"a")])
        (cache.version_dir(KEY, "pkg", "sha1") / "index.json").write_text("{broken")
        assert cache.get(KEY, "pkg", V1) is None
        assert not cache.registry_dir(KEY).exists()

    def test_corrupt_metadata_wipes_registry(self, tmp_path: Path) -> None:
        cache = ContentCache(tmp_path)
        cache.store(KEY, META, "pkg", V1, [File("a.yml", b"a")])
        (cache.registry_dir(KEY) / "metadata.json").write_text("not json")
        assert cache.get(KEY, "pkg", V1) is None

    def test_clean_by_last_access(self, tmp_path: Path) -> None:
        clock = Clock(1000.0)
        cache = ContentCache(tmp_path, clock=clock)
        v2 = tagged_version("2.0.0", "sha2")
        cache.store(KEY, META, "pkg", V1, [File("a.yml", b"a")])
        cache.store(KEY, META, "pkg", v2, [File("a.yml", b"b")])
        clock.now = 5000.0
        cache.get(KEY, "pkg", v2)
        clock.now = 6000.0
        assert cache.clean(max_age=3600) == 1
        assert not cache.version_dir(KEY, "pkg", "sha1").exists()
        assert cache.version_dir(KEY, "pkg", "sha2").exists()

    def test_clean_empty_cache(self, tmp_path: Path) -> None:
        assert ContentCache(tmp_path / "missing").clean(10) == 0

    def test_nuke(self, tmp_path: Path) -> None:
        root = tmp_path / "cache"
        cache = ContentCache(root)
        cache.store(KEY, META, "pkg", V1, [File("a.yml", b"a")])
        cache.nuke()
        assert not root.exists()

    def test_lock_timeout(self, tmp_path: Path) -> None:
        cache = ContentCache(tmp_path, lock_timeout=0.1)
        other = ContentCache(tmp_path, lock_timeout=0.1)
        with cache.lock(KEY):
            with pytest.raises(CacheLockTimeoutError):
                with other.lock(KEY):
                    pass
