"""命令执行器测试"""

from __future__ import annotations

import sys
from pathlib import Path

from arm.utils.shell import CommandResult, LocalExecutor


class TestLocalExecutor:
    def test_success(self, tmp_path: Path) -> None:
        r = LocalExecutor().execute([sys.executable, "-c", "print('hi')"], cwd=str(tmp_path))
        assert r.success
        assert r.stdout.strip() == "hi"

    def test_nonzero_exit(self, tmp_path: Path) -> None:
        r = LocalExecutor().execute(
            [sys.executable, "-c", "import sys; sys.stderr.write('bad'); sys.exit(3)"],
            cwd=str(tmp_path),
        )
        assert r.returncode == 3
        assert "bad" in r.stderr

    def test_missing_binary(self) -> None:
        r = LocalExecutor().execute(["definitely-not-a-real-binary-xyz"])
        assert r.returncode == 127

    def test_timeout(self) -> None:
        r = LocalExecutor().execute(
            [sys.executable, "-c", "import time; time.sleep(5)"], timeout=1,
        )
        assert r.returncode == 124

    def test_string_command_is_split(self, tmp_path: Path) -> None:
        r = LocalExecutor().execute(f"{sys.executable} -c 'print(1)'", cwd=str(tmp_path))
        assert r.stdout.strip() == "1"
