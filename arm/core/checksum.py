"""内容校验和

sha256:<64 位十六进制>，对按路径字典序排列的 (path, \0, content, \0) 序列计算。
校验和相同 ⇔ 文件集合逐字节相同。
"""

from __future__ import annotations

import hashlib
import re
from typing import Iterable

from arm.core.models import File

PREFIX = "sha256:"

_CHECKSUM_RE = re.compile(r"^sha256:[0-9a-f]{64}$")


def generate_checksum(files: Iterable[File]) -> str:
    h = hashlib.sha256()
    for f in sorted(files, key=lambda x: x.path):
        h.update(f.path.encode("utf-8"))
        h.update(b"\0")
        h.update(f.content)
        h.update(b"\0")
    return PREFIX + h.hexdigest()


def verify_checksum(files: Iterable[File], expected: str) -> bool:
    return generate_checksum(files) == expected


def is_valid_checksum(value: str) -> bool:
    return bool(_CHECKSUM_RE.match(value))
