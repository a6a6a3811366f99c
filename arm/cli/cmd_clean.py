"""CLI — 清理命令（clean cache / clean sinks）"""

from __future__ import annotations

import click

from arm.cli import _svc
from arm.core.exceptions import ValidationError
from arm.utils.duration import parse_duration


def register(group: click.Group) -> None:
    group.add_command(clean_group)


class DurationType(click.ParamType):
    """30m / 2h / 7d 形式的时长，转换为秒"""

    name = "duration"

    def convert(self, value, param, ctx):  # type: ignore[no-untyped-def]
        if isinstance(value, int):
            return value
        try:
            return parse_duration(value)
        except ValidationError as e:
            self.fail(e.message, param, ctx)


@click.group(name="clean")
def clean_group() -> None:
    """清理缓存或 sink 中的无主文件"""


@clean_group.command(name="cache")
@click.option("--max-age", type=DurationType(), default=None, help="删除超过该时长未访问的条目（如 7d）")
@click.option("--nuke", is_flag=True, help="删除整个缓存")
def clean_cache(max_age: int | None, nuke: bool) -> None:
    """清理内容缓存"""
    if nuke and max_age is not None:
        raise click.UsageError("--max-age 与 --nuke 不能同时使用")
    if not nuke and max_age is None:
        max_age = parse_duration("7d")
    removed = _svc().clean_cache(max_age=max_age, nuke=nuke)
    if nuke:
        click.echo("缓存已清空。")
    else:
        click.echo(f"已删除 {removed} 个缓存条目。")


@clean_group.command(name="sinks")
@click.option("--nuke", is_flag=True, help="删除 arm 写入的全部内容")
def clean_sinks(nuke: bool) -> None:
    """删除 sink 中索引未记录的文件并清理空目录"""
    result = _svc().clean_sinks(nuke=nuke)
    total = 0
    for name, removed in sorted(result.items()):
        for path in removed:
            click.echo(f"  [{name}] 已删除 {path}")
        total += len(removed)
    click.echo(f"共删除 {total} 个条目。")
