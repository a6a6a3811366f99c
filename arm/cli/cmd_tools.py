"""CLI — 本地工具命令（compile / convert / version）"""

from __future__ import annotations

import click

from arm import __version__
from arm.cli import _split, _svc
from arm.services.compile_service import CompileRequest, parse_targets


def register(group: click.Group) -> None:
    group.add_command(compile_cmd)
    group.add_command(convert_cmd)
    group.add_command(version_cmd)


@click.command(name="compile")
@click.argument("paths", nargs=-1, required=True)
@click.option("-t", "--target", "targets", required=True, help="目标格式，逗号分隔（cursor, amazonq, copilot, markdown）")
@click.option("-o", "--output", "output_dir", default=".", help="输出目录")
@click.option("-n", "--namespace", default="", help="元数据中的命名空间（默认取文件名）")
@click.option("-r", "--recursive", is_flag=True, help="递归查找目录中的资源文件")
@click.option("--include", default="", help="包含模式，逗号分隔")
@click.option("--exclude", default="", help="排除模式，逗号分隔")
@click.option("-f", "--force", is_flag=True, help="覆盖已存在的输出文件")
@click.option("--dry-run", is_flag=True, help="只显示将写入的文件")
@click.option("--validate-only", is_flag=True, help="只校验不编译")
@click.option("--fail-fast", is_flag=True, help="首个错误后停止")
def compile_cmd(paths: tuple[str, ...], targets: str, **kwargs: object) -> None:
    """把资源文件编译为各 AI 工具的原生格式"""
    req = CompileRequest(
        paths=list(paths),
        targets=parse_targets(targets),
        output_dir=str(kwargs["output_dir"]),
        namespace=str(kwargs["namespace"]),
        recursive=bool(kwargs["recursive"]),
        include=_split(str(kwargs["include"])),
        exclude=_split(str(kwargs["exclude"])),
        force=bool(kwargs["force"]),
        dry_run=bool(kwargs["dry_run"]),
        validate_only=bool(kwargs["validate_only"]),
        fail_fast=bool(kwargs["fail_fast"]),
    )
    result = _svc().compile_paths(req)
    prefix = "[dry-run] " if req.dry_run else ""
    for path in result.outputs:
        click.echo(f"  {prefix}{path}")
    for path, err in result.errors.items():
        click.echo(f"  ✗ {path}: {err.reason}", err=True)
        for detail in err.details:
            click.echo(f"      - {detail}", err=True)
    verb = "校验" if req.validate_only else "编译"
    click.echo(
        f"{verb}完成: 处理 {result.files_processed} 个文件，"
        f"生成 {len(result.outputs)} 个输出，失败 {len(result.errors)}"
    )
    if not result.success:
        raise click.ClickException(f"{len(result.errors)} 个文件{verb}失败")


@click.command(name="convert")
@click.argument("input_file")
@click.option("-o", "--output", default=None, help="输出 YAML 路径（默认与输入同名 .yml）")
@click.option("--ruleset-id", default="", help="规则集 id（默认取文件名）")
@click.option("--ruleset-name", default="", help="规则集名称（默认同 id）")
@click.option("--dry-run", is_flag=True, help="只打印转换结果")
def convert_cmd(
    input_file: str, output: str | None, ruleset_id: str, ruleset_name: str, dry_run: bool,
) -> None:
    """把 Markdown / Cursor .mdc 规则转换为规则集资源文件"""
    dest, text = _svc().convert(input_file, output, ruleset_id, ruleset_name, dry_run)
    if dry_run:
        click.echo(text, nl=False)
        return
    click.echo(f"已生成: {dest}")


@click.command(name="version")
def version_cmd() -> None:
    """显示版本"""
    click.echo(f"arm {__version__}")
