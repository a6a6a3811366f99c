"""语义化版本与版本约束

职责:
- 解析 semver 标签、比较优先级
- 解析用户约束（精确 / ^ / ~ / 分支 / latest）并规范化简写
- 从候选版本集合中选出唯一版本（纯函数）
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from functools import cmp_to_key

from arm.core.exceptions import InvalidConstraintError, NoVersionSatisfiesError
from arm.core.models import Version

_SEMVER_RE = re.compile(
    r"^v?(\d+)\.(\d+)\.(\d+)"
    r"(?:-([0-9A-Za-z.-]+))?"
    r"(?:\+([0-9A-Za-z.-]+))?$"
)
_MAJOR_RE = re.compile(r"^v?(\d+)$")
_MINOR_RE = re.compile(r"^v?(\d+)\.(\d+)$")
# git check-ref-format 的常用子集
_BRANCH_RE = re.compile(r"^(?!-)(?!.*\.\.)(?!.*//)[A-Za-z0-9._/\-]+(?<![./])$")

LATEST = "latest"


# ---- semver ----

def parse_semver(text: str) -> tuple[int, int, int, str, str] | None:
    """返回 (major, minor, patch, prerelease, build)，非 semver 返回 None"""
    m = _SEMVER_RE.match(text.strip())
    if not m:
        return None
    return (
        int(m.group(1)), int(m.group(2)), int(m.group(3)),
        m.group(4) or "", m.group(5) or "",
    )


def is_semver(text: str) -> bool:
    return parse_semver(text) is not None


def tagged_version(tag: str, resolved_id: str) -> Version:
    """由 semver 标签构造版本；标签不合法时抛 ValueError"""
    parsed = parse_semver(tag)
    if parsed is None:
        raise ValueError(f"不是 semver 标签: {tag}")
    major, minor, patch, pre, build = parsed
    return Version(
        resolved_id=resolved_id, display=tag,
        major=major, minor=minor, patch=patch,
        prerelease=pre, build=build,
    )


def branch_version(branch: str, sha: str) -> Version:
    return Version(resolved_id=sha, display=branch, is_branch=True)


def _compare_prerelease(a: str, b: str) -> int:
    if a == b:
        return 0
    # 无预发布标识的版本优先级更高
    if not a:
        return 1
    if not b:
        return -1
    pa, pb = a.split("."), b.split(".")
    for x, y in zip(pa, pb):
        if x == y:
            continue
        xd, yd = x.isdigit(), y.isdigit()
        if xd and yd:
            return -1 if int(x) < int(y) else 1
        if xd:
            return -1
        if yd:
            return 1
        return -1 if x < y else 1
    if len(pa) == len(pb):
        return 0
    return -1 if len(pa) < len(pb) else 1


def compare_versions(a: Version, b: Version) -> int:
    """semver 优先级比较，忽略 build 元数据；只接受带数字分量的版本"""
    if not (a.is_semver and b.is_semver):
        raise ValueError("只有 semver 版本之间可以比较")
    ka = (a.major, a.minor, a.patch)
    kb = (b.major, b.minor, b.patch)
    if ka != kb:
        return -1 if ka < kb else 1
    return _compare_prerelease(a.prerelease, b.prerelease)


def sort_versions_desc(versions: list[Version]) -> list[Version]:
    """semver 版本降序；分支版本保持原顺序排在最后"""
    tagged = [v for v in versions if v.is_semver]
    branches = [v for v in versions if not v.is_semver]
    tagged.sort(key=cmp_to_key(compare_versions), reverse=True)
    return tagged + branches


# ---- 约束 ----

class ConstraintKind(str, Enum):
    EXACT = "exact"
    CARET = "caret"
    TILDE = "tilde"
    BRANCH = "branch"
    LATEST = "latest"


@dataclass(frozen=True)
class Constraint:
    """用户对版本的意图"""

    kind: ConstraintKind
    base: Version | None = None
    branch: str = ""

    def __str__(self) -> str:
        if self.kind == ConstraintKind.LATEST:
            return LATEST
        if self.kind == ConstraintKind.BRANCH:
            return self.branch
        assert self.base is not None
        prefix = {ConstraintKind.CARET: "^", ConstraintKind.TILDE: "~"}.get(self.kind, "")
        return prefix + _format(self.base)

    @property
    def allows_prerelease(self) -> bool:
        return self.base is not None and bool(self.base.prerelease)

    def satisfied_by(self, v: Version) -> bool:
        if self.kind == ConstraintKind.LATEST:
            return True
        if self.kind == ConstraintKind.BRANCH:
            return v.is_branch and v.display == self.branch
        if not v.is_semver or v.is_branch:
            return False
        base = self.base
        assert base is not None
        if v.prerelease and not self.allows_prerelease:
            return False
        if self.kind == ConstraintKind.EXACT:
            return compare_versions(v, base) == 0
        if compare_versions(v, base) < 0:
            return False
        if self.kind == ConstraintKind.CARET:
            return v.major == base.major
        return v.major == base.major and v.minor == base.minor


def _format(v: Version) -> str:
    text = f"{v.major}.{v.minor}.{v.patch}"
    if v.prerelease:
        text += f"-{v.prerelease}"
    return text


def _base(text: str, original: str) -> Version:
    parsed = parse_semver(text)
    if parsed is None:
        raise InvalidConstraintError(f"无法解析的版本约束: '{original}'")
    return tagged_version(text, "")


def parse_constraint(text: str) -> Constraint:
    """解析约束字符串

    "" / latest → latest；^X.Y.Z / ~X.Y.Z；X.Y.Z 精确；
    简写 X → ^X.0.0，X.Y → ~X.Y.0；其他合法分支名 → 分支头。
    """
    raw = (text or "").strip()
    if raw in ("", LATEST):
        return Constraint(ConstraintKind.LATEST)

    if raw[0] in "^~":
        kind = ConstraintKind.CARET if raw[0] == "^" else ConstraintKind.TILDE
        rest = raw[1:]
        m = _MAJOR_RE.match(rest)
        if m:
            return Constraint(kind, _base(f"{m.group(1)}.0.0", raw))
        m = _MINOR_RE.match(rest)
        if m:
            return Constraint(kind, _base(f"{m.group(1)}.{m.group(2)}.0", raw))
        return Constraint(kind, _base(rest, raw))

    m = _MAJOR_RE.match(raw)
    if m:
        return Constraint(ConstraintKind.CARET, _base(f"{m.group(1)}.0.0", raw))
    m = _MINOR_RE.match(raw)
    if m:
        return Constraint(
            ConstraintKind.TILDE, _base(f"{m.group(1)}.{m.group(2)}.0", raw),
        )
    if is_semver(raw):
        return Constraint(ConstraintKind.EXACT, _base(raw, raw))

    if _BRANCH_RE.match(raw) and not raw.endswith(".lock"):
        return Constraint(ConstraintKind.BRANCH, branch=raw)
    raise InvalidConstraintError(f"无法解析的版本约束: '{raw}'")


def normalize_constraint(text: str) -> str:
    """返回写入清单的规范形式（简写展开，去掉 v 前缀）"""
    return str(parse_constraint(text))


# ---- 版本选择 ----

def resolve_version(constraint: Constraint, available: list[Version]) -> Version:
    """(约束, 可用版本) → 唯一版本

    tag 候选中取 semver 最大者；latest 无 tag 时回退到默认分支头
    （列表中第一个分支版本）。
    """
    if constraint.kind == ConstraintKind.BRANCH:
        for v in available:
            if constraint.satisfied_by(v):
                return v
        raise NoVersionSatisfiesError(f"分支不存在: {constraint.branch}")

    candidates = [v for v in available if v.is_semver and not v.is_branch]
    if constraint.kind == ConstraintKind.LATEST:
        stable = [v for v in candidates if not v.prerelease]
        if stable:
            return max(stable, key=cmp_to_key(compare_versions))
        branches = [v for v in available if v.is_branch]
        if branches:
            return branches[0]
        raise NoVersionSatisfiesError("没有可用的标签或分支")

    matched = [v for v in candidates if constraint.satisfied_by(v)]
    if not matched:
        raise NoVersionSatisfiesError(f"没有满足约束 '{constraint}' 的版本")
    return max(matched, key=cmp_to_key(compare_versions))
