"""时长解析: 30m / 2h / 7d / 45s → 秒"""

from __future__ import annotations

import re

from arm.core.exceptions import ValidationError

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd])\s*$", re.IGNORECASE)
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(text: str) -> int:
    m = _DURATION_RE.match(text or "")
    if not m:
        raise ValidationError(f"无效的时长 '{text}'（示例: 30m, 2h, 7d）")
    return int(m.group(1)) * _UNIT_SECONDS[m.group(2).lower()]
