"""arm 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
服务容器挂在 click 上下文的 obj 上，ArmError 统一转换为非零退出。
"""

from typing import Any

import click

from arm import __version__
from arm.core.config import Config
from arm.core.exceptions import ArmError
from arm.utils.logger import setup_logging


class ArmGroup(click.Group):
    """把领域异常转换为 click 错误输出（[CODE] 消息，退出码 1）"""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except ArmError as e:
            raise click.ClickException(f"[{e.code}] {e.message}") from e


def _svc() -> Any:
    """当前命令上下文中的编排服务"""
    return click.get_current_context().obj.service


def _split(value: str | None) -> list[str]:
    """逗号分隔参数 → 列表"""
    if not value:
        return []
    return [s.strip() for s in value.split(",") if s.strip()]


@click.group(cls=ArmGroup)
@click.option("--manifest", "manifest_path", default=None, help="清单文件路径（默认 ./arm.json）")
@click.option("--config", "config_path", default=None, help="全局配置文件（默认 ~/.arm/config.yml）")
@click.option("-v", "--verbose", is_flag=True, help="输出调试日志")
@click.version_option(version=__version__, prog_name="arm")
@click.pass_context
def main(
    ctx: click.Context, manifest_path: str | None, config_path: str | None, verbose: bool,
) -> None:
    """arm - AI 规则集 / 提示词集包管理器"""
    setup_logging(verbose)
    # 测试可通过 CliRunner.invoke(obj=...) 注入容器
    if ctx.obj is None:
        from arm.services.container import ServiceContainer
        ctx.obj = ServiceContainer(
            config=Config.from_file(config_path), manifest_path=manifest_path,
        )


# 注册各领域子命令
from arm.cli.cmd_config import register as _reg_config  # noqa: E402
from arm.cli.cmd_install import register as _reg_install  # noqa: E402
from arm.cli.cmd_query import register as _reg_query  # noqa: E402
from arm.cli.cmd_clean import register as _reg_clean  # noqa: E402
from arm.cli.cmd_tools import register as _reg_tools  # noqa: E402

_reg_config(main)
_reg_install(main)
_reg_query(main)
_reg_clean(main)
_reg_tools(main)
