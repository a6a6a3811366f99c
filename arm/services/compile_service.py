"""compile 命令 — 把本地资源文件编译为一个或多个目标格式

流程: 发现文件 → 逐文件解析 → 逐目标生成 → 写入输出目录
  - 目录参数只取 .yml/.yaml，recursive 时递归；include/exclude 作用于发现的相对路径
  - 多个目标时每个目标写到 <output>/<target>/ 下
  - 已存在的输出文件只有 force 才覆盖
  - dry_run 只记录将写入的路径；validate_only 只解析不生成
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from arm.compiler import compile_file, get_emitter, is_compilable_path, parse_resource
from arm.core.exceptions import AlreadyExistsError, CompileError, ValidationError
from arm.core.models import File
from arm.core.pattern import should_include
from arm.utils.fileio import atomic_write

logger = logging.getLogger(__name__)


@dataclass
class CompileRequest:
    paths: list[str]
    targets: list[str]
    output_dir: str = "."
    namespace: str = ""
    recursive: bool = False
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    force: bool = False
    dry_run: bool = False
    validate_only: bool = False
    fail_fast: bool = False


@dataclass
class CompileResult:
    files_processed: int = 0
    files_compiled: int = 0
    outputs: list[str] = field(default_factory=list)
    errors: dict[str, CompileError] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors


def parse_targets(text: str) -> list[str]:
    """逗号分隔的目标列表，去空、拒绝重复与未知目标"""
    targets: list[str] = []
    for part in text.split(","):
        target = part.strip()
        if not target:
            continue
        if target in targets:
            raise ValidationError(f"重复的编译目标: {target}")
        get_emitter(target)
        targets.append(target)
    if not targets:
        raise ValidationError("至少需要一个编译目标")
    return targets


def discover_files(
    paths: list[str], recursive: bool = False,
    include: list[str] | None = None, exclude: list[str] | None = None,
) -> list[Path]:
    """展开文件/目录参数；显式给出的文件只要求是 YAML"""
    found: list[Path] = []
    for raw in paths:
        p = Path(raw)
        if not p.exists():
            raise ValidationError(f"路径不存在: {raw}")
        if p.is_file():
            if is_compilable_path(p.name):
                found.append(p)
            continue
        candidates = p.rglob("*") if recursive else p.iterdir()
        for c in sorted(candidates):
            if not c.is_file() or not is_compilable_path(c.name):
                continue
            rel = c.relative_to(p).as_posix()
            if should_include(rel, include or None, exclude or None):
                found.append(c)
    return found


class CompileService:
    """本地资源文件编译"""

    def run(self, req: CompileRequest) -> CompileResult:
        if req.validate_only and (req.dry_run or req.force):
            raise ValidationError("--validate-only 不能与 --dry-run 或 --force 同时使用")
        for target in req.targets:
            get_emitter(target)

        result = CompileResult()
        files = discover_files(req.paths, req.recursive, req.include, req.exclude)
        if not files:
            logger.warning("没有找到匹配的资源文件")
            return result

        for path in files:
            result.files_processed += 1
            try:
                if req.validate_only:
                    parse_resource(path.read_bytes(), str(path))
                    continue
                result.outputs.extend(self._compile_one(path, req))
                result.files_compiled += 1
            except CompileError as e:
                logger.error("编译失败: %s", e)
                result.errors[str(path)] = e
                if req.fail_fast:
                    break
            except (AlreadyExistsError, OSError) as e:
                logger.error("写入失败: %s: %s", path, e)
                result.errors[str(path)] = CompileError(str(path), str(e))
                if req.fail_fast:
                    break
        logger.info(
            "编译完成: 处理 %d, 成功 %d, 失败 %d",
            result.files_processed, result.files_compiled, len(result.errors),
        )
        return result

    def _compile_one(self, path: Path, req: CompileRequest) -> list[str]:
        # 输出不保留源目录结构，直接落在输出目录
        source = File(path=path.name, content=path.read_bytes())
        namespace = req.namespace or path.stem
        planned: list[tuple[Path, File]] = []
        for target in req.targets:
            out_dir = Path(req.output_dir)
            if len(req.targets) > 1:
                out_dir = out_dir / target
            for f in compile_file(source, target, namespace):
                dest = out_dir / f.path
                if dest.exists() and not req.force and not req.dry_run:
                    raise AlreadyExistsError(f"输出文件已存在: {dest}（使用 --force 覆盖）")
                planned.append((dest, f))

        written: list[str] = []
        for dest, f in planned:
            if req.dry_run:
                logger.info("[dry-run] 将写入 %s", dest)
            else:
                atomic_write(dest, f.content)
            written.append(str(dest))
        return written
