"""CLI — 查询命令（list / info）"""

from __future__ import annotations

import click

from arm.cli import _svc
from arm.core.exceptions import NotFoundError
from arm.core.models import PROMPTSET, RULESET


def register(group: click.Group) -> None:
    group.add_command(list_group)
    group.add_command(info_group)


def _echo_registries() -> None:
    regs = _svc().list_registries()
    click.echo("registries:")
    if not regs:
        click.echo("  (无)")
    for name, cfg in sorted(regs.items()):
        where = cfg.get("url") or f"{cfg.get('owner', '')}/{cfg.get('repository', '')}"
        click.echo(f"  {name:20s} [{cfg.get('type', '?'):10s}] {where}")


def _echo_sinks() -> None:
    sinks = _svc().list_sinks()
    click.echo("sinks:")
    if not sinks:
        click.echo("  (无)")
    for name, s in sorted(sinks.items()):
        click.echo(f"  {name:20s} {s.directory} ({s.layout}, {s.compile_target})")


def _echo_dependencies(kind: str) -> None:
    deps = _svc().list_dependencies(kind=kind, sort_priority=kind == RULESET)
    click.echo(f"{kind}s:")
    if not deps:
        click.echo("  (无)")
    for d in deps:
        prio = f" priority={d.priority}" if kind == RULESET else ""
        click.echo(f"  {str(d.key):30s} {d.constraint:12s}{prio} sinks={','.join(d.sinks)}")


# ---- list ----

@click.group(name="list", invoke_without_command=True)
@click.pass_context
def list_group(ctx: click.Context) -> None:
    """列出注册表 / sink / 规则集 / 提示词集（不带子命令时全部列出）"""
    if ctx.invoked_subcommand is None:
        _echo_registries()
        _echo_sinks()
        _echo_dependencies(RULESET)
        _echo_dependencies(PROMPTSET)


@list_group.command(name="registries")
def list_registries() -> None:
    """列出注册表"""
    _echo_registries()


@list_group.command(name="sinks")
def list_sinks() -> None:
    """列出 sink"""
    _echo_sinks()


@list_group.command(name="rulesets")
def list_rulesets() -> None:
    """列出规则集（按优先级从高到低）"""
    _echo_dependencies(RULESET)


@list_group.command(name="promptsets")
def list_promptsets() -> None:
    """列出提示词集"""
    _echo_dependencies(PROMPTSET)


# ---- info ----

@click.group(name="info")
def info_group() -> None:
    """查看单个条目详情"""


@info_group.command(name="registry")
@click.argument("name")
def info_registry(name: str) -> None:
    """注册表配置"""
    regs = _svc().list_registries()
    if name not in regs:
        raise NotFoundError(f"注册表不存在: {name}")
    click.echo(f"{name}:")
    for k, v in regs[name].items():
        click.echo(f"  {k}: {', '.join(v) if isinstance(v, list) else v}")


@info_group.command(name="sink")
@click.argument("name")
def info_sink(name: str) -> None:
    """sink 配置与已安装的包"""
    svc = _svc()
    installer = svc.sink(name)
    cfg = installer.config
    click.echo(f"{name}:")
    click.echo(f"  directory: {cfg.directory}")
    click.echo(f"  layout: {cfg.layout}")
    click.echo(f"  compileTarget: {cfg.compile_target}")
    installed = installer.list_installed()
    click.echo("  installed:" if installed else "  installed: (无)")
    for inst in installed:
        click.echo(f"    {str(inst.key):30s} {inst.version} ({len(inst.files)} 个文件)")


def _info_dependency(key: str) -> None:
    info = _svc().info_dependency(key)
    dep, lock = info["dependency"], info["lock"]
    click.echo(f"{key}:")
    click.echo(f"  type: {dep.kind}")
    click.echo(f"  constraint: {dep.constraint}")
    if dep.kind == RULESET:
        click.echo(f"  priority: {dep.priority}")
    click.echo(f"  sinks: {', '.join(dep.sinks)}")
    if dep.include:
        click.echo(f"  include: {', '.join(dep.include)}")
    if dep.exclude:
        click.echo(f"  exclude: {', '.join(dep.exclude)}")
    if lock is None:
        click.echo("  locked: (未锁定)")
    else:
        click.echo(f"  locked: {lock.display} ({lock.resolved_id})")
        click.echo(f"  checksum: {lock.checksum}")
    for sink in dep.sinks:
        inst = info["installations"].get(sink)
        state = f"{inst.version} ({len(inst.files)} 个文件)" if inst else "未安装"
        click.echo(f"  [{sink}] {state}")


@info_group.command(name="ruleset")
@click.argument("key")
def info_ruleset(key: str) -> None:
    """规则集依赖详情"""
    _info_dependency(key)


@info_group.command(name="promptset")
@click.argument("key")
def info_promptset(key: str) -> None:
    """提示词集依赖详情"""
    _info_dependency(key)
