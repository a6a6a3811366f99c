"""CLI — 注册表 / sink / 依赖配置命令（add / remove / set）"""

from __future__ import annotations

from typing import Any

import click

from arm.cli import _split, _svc
from arm.core.models import COMPILE_TARGETS, LAYOUT_HIERARCHICAL, LAYOUTS, SinkConfig


def register(group: click.Group) -> None:
    group.add_command(add_group)
    group.add_command(remove_group)
    group.add_command(set_group)


def _compact(cfg: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in cfg.items() if v not in (None, "", [])}


# ---- add ----

@click.group(name="add")
def add_group() -> None:
    """添加注册表或 sink"""


@add_group.group(name="registry")
def add_registry() -> None:
    """添加注册表（git / gitlab / cloudsmith）"""


@add_registry.command(name="git")
@click.argument("name")
@click.option("--url", required=True, help="仓库地址")
@click.option("--branches", default="", help="暴露的分支模式，逗号分隔（支持通配）")
@click.option("--force", is_flag=True, help="覆盖同名注册表")
def add_git(name: str, url: str, branches: str, force: bool) -> None:
    """添加 Git 注册表"""
    cfg = _compact({"type": "git", "url": url, "branches": _split(branches)})
    _svc().add_registry(name, cfg, force=force)
    click.echo(f"注册表已添加: {name} (git)")


@add_registry.command(name="gitlab")
@click.argument("name")
@click.option("--url", default="", help="GitLab 地址（默认 https://gitlab.com）")
@click.option("--project-id", default="", help="项目 ID")
@click.option("--group-id", default="", help="群组 ID")
@click.option("--api-version", default="", help="API 版本（默认 v4）")
@click.option("--force", is_flag=True, help="覆盖同名注册表")
def add_gitlab(
    name: str, url: str, project_id: str, group_id: str, api_version: str, force: bool,
) -> None:
    """添加 GitLab 注册表"""
    cfg = _compact({
        "type": "gitlab", "url": url, "projectId": project_id,
        "groupId": group_id, "apiVersion": api_version,
    })
    _svc().add_registry(name, cfg, force=force)
    click.echo(f"注册表已添加: {name} (gitlab)")


@add_registry.command(name="cloudsmith")
@click.argument("name")
@click.option("--url", default="", help="API 地址（默认 https://api.cloudsmith.io）")
@click.option("--owner", required=True, help="所有者")
@click.option("--repository", required=True, help="仓库")
@click.option("--force", is_flag=True, help="覆盖同名注册表")
def add_cloudsmith(name: str, url: str, owner: str, repository: str, force: bool) -> None:
    """添加 Cloudsmith 注册表"""
    cfg = _compact({"type": "cloudsmith", "url": url, "owner": owner, "repository": repository})
    _svc().add_registry(name, cfg, force=force)
    click.echo(f"注册表已添加: {name} (cloudsmith)")


@add_group.command(name="sink")
@click.argument("name")
@click.argument("directory")
@click.option("--layout", default=LAYOUT_HIERARCHICAL, type=click.Choice(LAYOUTS))
@click.option("--compile-to", "target", required=True, type=click.Choice(COMPILE_TARGETS))
@click.option("--force", is_flag=True, help="覆盖同名 sink")
def add_sink(name: str, directory: str, layout: str, target: str, force: bool) -> None:
    """添加 sink（输出目录 + 布局 + 编译目标）"""
    sink = SinkConfig.from_dict(
        name, {"directory": directory, "layout": layout, "compileTarget": target},
    )
    _svc().add_sink(sink, force=force)
    click.echo(f"sink 已添加: {name} -> {directory} ({layout}, {target})")


# ---- remove ----

@click.group(name="remove")
def remove_group() -> None:
    """删除注册表或 sink"""


@remove_group.command(name="registry")
@click.argument("name")
def remove_registry(name: str) -> None:
    """删除注册表（仍被依赖引用时拒绝）"""
    _svc().remove_registry(name)
    click.echo(f"注册表已删除: {name}")


@remove_group.command(name="sink")
@click.argument("name")
def remove_sink(name: str) -> None:
    """删除 sink，并卸载其中的所有包"""
    removed = _svc().remove_sink(name)
    click.echo(f"sink 已删除: {name}")
    for key in removed:
        click.echo(f"  已卸载 {key}")


# ---- set ----

@click.group(name="set")
def set_group() -> None:
    """修改注册表 / sink / 依赖字段"""


@set_group.command(name="registry")
@click.argument("name")
@click.argument("key")
@click.argument("value")
def set_registry(name: str, key: str, value: str) -> None:
    """修改注册表字段（name 为重命名）"""
    _svc().set_registry(name, key, value)
    click.echo(f"注册表 {name}: {key} = {value}")


@set_group.command(name="sink")
@click.argument("name")
@click.argument("key")
@click.argument("value")
def set_sink(name: str, key: str, value: str) -> None:
    """修改 sink 字段（directory / layout / compileTarget / name）"""
    if key == "compile-to":
        key = "compileTarget"
    _svc().set_sink(name, key, value)
    click.echo(f"sink {name}: {key} = {value}")


def _set_dependency(key: str, field: str, value: str) -> None:
    item = _svc().set_dependency(key, field, value)
    click.echo(f"{key}: {field} = {value}")
    if item.status != "unchanged":
        click.echo(f"  {item.describe()}")


@set_group.command(name="ruleset")
@click.argument("key")
@click.argument("field")
@click.argument("value")
def set_ruleset(key: str, field: str, value: str) -> None:
    """修改规则集依赖（version / priority / sinks / include / exclude）"""
    _set_dependency(key, field, value)


@set_group.command(name="promptset")
@click.argument("key")
@click.argument("field")
@click.argument("value")
def set_promptset(key: str, field: str, value: str) -> None:
    """修改提示词集依赖（version / sinks / include / exclude）"""
    _set_dependency(key, field, value)
