"""CLI — 包生命周期命令（install / uninstall / update / upgrade / outdated）

install / uninstall / update / upgrade 不带子命令时作用于清单中的全部包。
"""

from __future__ import annotations

import json

import click

from arm.cli import _split, _svc
from arm.core.models import PROMPTSET, RULESET


def register(group: click.Group) -> None:
    group.add_command(install_group)
    group.add_command(uninstall_group)
    group.add_command(update_group)
    group.add_command(upgrade_group)
    group.add_command(outdated)


def _report(batch) -> None:
    """逐项输出批量结果；存在失败项时以非零码退出"""
    if not batch.items:
        click.echo("没有需要处理的包。")
        return
    for item in batch.items:
        click.echo(f"  {item.describe()}")
    click.echo(batch.summary())
    if not batch.success:
        raise click.ClickException(f"{len(batch.failed)} 个包处理失败")


# ---- install ----

@click.group(name="install", invoke_without_command=True)
@click.option("--fail-fast", is_flag=True, help="首个失败后停止")
@click.pass_context
def install_group(ctx: click.Context, fail_fast: bool) -> None:
    """安装包；不带子命令时按清单 + 锁文件安装全部"""
    if ctx.invoked_subcommand is None:
        _report(_svc().install_all(fail_fast=fail_fast))


def _install(
    kind: str, refs: tuple[str, ...], sinks: str, priority: int | None,
    include: tuple[str, ...], exclude: tuple[str, ...],
) -> None:
    svc = _svc()
    for ref in refs:
        item = svc.install(
            ref, kind=kind, sinks=_split(sinks),
            include=list(include), exclude=list(exclude), priority=priority,
        )
        click.echo(f"  {item.describe()}")


@install_group.command(name="ruleset")
@click.argument("refs", nargs=-1, required=True)
@click.option("--sinks", default="", help="目标 sink，逗号分隔（已安装的包可省略）")
@click.option("--priority", default=None, type=click.IntRange(min=1), help="优先级（默认沿用已安装的值，否则 100）")
@click.option("--include", multiple=True, help="包含模式（可多次）")
@click.option("--exclude", multiple=True, help="排除模式（可多次）")
def install_ruleset(
    refs: tuple[str, ...], sinks: str, priority: int | None,
    include: tuple[str, ...], exclude: tuple[str, ...],
) -> None:
    """安装规则集 REGISTRY/NAME[@VERSION]"""
    _install(RULESET, refs, sinks, priority, include, exclude)


@install_group.command(name="promptset")
@click.argument("refs", nargs=-1, required=True)
@click.option("--sinks", default="", help="目标 sink，逗号分隔（已安装的包可省略）")
@click.option("--include", multiple=True, help="包含模式（可多次）")
@click.option("--exclude", multiple=True, help="排除模式（可多次）")
def install_promptset(
    refs: tuple[str, ...], sinks: str, include: tuple[str, ...], exclude: tuple[str, ...],
) -> None:
    """安装提示词集 REGISTRY/NAME[@VERSION]"""
    _install(PROMPTSET, refs, sinks, None, include, exclude)


# ---- uninstall ----

@click.group(name="uninstall", invoke_without_command=True)
@click.pass_context
def uninstall_group(ctx: click.Context) -> None:
    """卸载包；不带子命令时卸载全部"""
    if ctx.invoked_subcommand is None:
        _report(_svc().uninstall_all())


def _uninstall(keys: tuple[str, ...]) -> None:
    svc = _svc()
    for key in keys:
        click.echo(f"  {svc.uninstall(key).describe()}")


@uninstall_group.command(name="ruleset")
@click.argument("keys", nargs=-1, required=True)
def uninstall_ruleset(keys: tuple[str, ...]) -> None:
    """卸载规则集 REGISTRY/NAME"""
    _uninstall(keys)


@uninstall_group.command(name="promptset")
@click.argument("keys", nargs=-1, required=True)
def uninstall_promptset(keys: tuple[str, ...]) -> None:
    """卸载提示词集 REGISTRY/NAME"""
    _uninstall(keys)


# ---- update / upgrade ----

@click.group(name="update", invoke_without_command=True)
@click.option("--fail-fast", is_flag=True, help="首个失败后停止")
@click.pass_context
def update_group(ctx: click.Context, fail_fast: bool) -> None:
    """在版本约束内更新；不带子命令时更新全部"""
    ctx.meta["arm.fail_fast"] = fail_fast
    if ctx.invoked_subcommand is None:
        _report(_svc().update(fail_fast=fail_fast))


@update_group.command(name="ruleset")
@click.argument("keys", nargs=-1)
@click.pass_context
def update_ruleset(ctx: click.Context, keys: tuple[str, ...]) -> None:
    """更新规则集（不指定则更新全部规则集）"""
    _report(_svc().update(
        list(keys) or None, kind=RULESET, fail_fast=ctx.meta.get("arm.fail_fast", False),
    ))


@update_group.command(name="promptset")
@click.argument("keys", nargs=-1)
@click.pass_context
def update_promptset(ctx: click.Context, keys: tuple[str, ...]) -> None:
    """更新提示词集（不指定则更新全部提示词集）"""
    _report(_svc().update(
        list(keys) or None, kind=PROMPTSET, fail_fast=ctx.meta.get("arm.fail_fast", False),
    ))


@click.group(name="upgrade", invoke_without_command=True)
@click.option("--fail-fast", is_flag=True, help="首个失败后停止")
@click.pass_context
def upgrade_group(ctx: click.Context, fail_fast: bool) -> None:
    """忽略约束升级到 latest（清单约束不变）；不带子命令时升级全部"""
    ctx.meta["arm.fail_fast"] = fail_fast
    if ctx.invoked_subcommand is None:
        _report(_svc().upgrade(fail_fast=fail_fast))


@upgrade_group.command(name="ruleset")
@click.argument("keys", nargs=-1)
@click.pass_context
def upgrade_ruleset(ctx: click.Context, keys: tuple[str, ...]) -> None:
    """升级规则集"""
    _report(_svc().upgrade(
        list(keys) or None, kind=RULESET, fail_fast=ctx.meta.get("arm.fail_fast", False),
    ))


@upgrade_group.command(name="promptset")
@click.argument("keys", nargs=-1)
@click.pass_context
def upgrade_promptset(ctx: click.Context, keys: tuple[str, ...]) -> None:
    """升级提示词集"""
    _report(_svc().upgrade(
        list(keys) or None, kind=PROMPTSET, fail_fast=ctx.meta.get("arm.fail_fast", False),
    ))


# ---- outdated ----

@click.command()
@click.option(
    "-o", "--output", "fmt", default="table", type=click.Choice(["table", "json", "list"]),
)
def outdated(fmt: str) -> None:
    """列出有新版本可用的包"""
    rows = [r for r in _svc().outdated() if r.error is not None or r.is_outdated]
    if fmt == "json":
        click.echo(json.dumps([r.to_dict() for r in rows], indent=2, ensure_ascii=False))
        return
    if not rows:
        click.echo("所有包都是最新的。")
        return
    if fmt == "list":
        for r in rows:
            click.echo(r.key)
        return
    click.echo(f"  {'包':30s} {'约束':12s} {'当前':12s} {'可用':12s} {'最新':12s}")
    for r in rows:
        if r.error is not None:
            click.echo(f"  {r.key:30s} 查询失败: {r.error}")
            continue
        click.echo(
            f"  {r.key:30s} {r.constraint:12s} {r.current or '-':12s} "
            f"{r.wanted:12s} {r.latest:12s}"
        )
