"""pkgmirror 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
配置在入口处加载一次，通过 click 上下文以 ServiceContainer 形式传给各命令。
"""

import os

import click

from pkgmirror import __version__
from pkgmirror.core.config import DEFAULT_CONFIG_FILE, Config
from pkgmirror.core.exceptions import PkgMirrorError
from pkgmirror.services.container import ServiceContainer
from pkgmirror.utils.logger import setup_logging


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config", "config_path", envvar="PKGMIRROR_CONFIG",
    default=DEFAULT_CONFIG_FILE, show_default=True, help="配置文件路径",
)
@click.option("--mirror-root", default=None, help="覆盖配置中的镜像根目录")
@click.pass_context
def main(ctx: click.Context, config_path: str, mirror_root: str | None) -> None:
    """pkgmirror - 包名解析与本地引用镜像同步"""
    setup_logging(
        level=os.getenv("PKGMIRROR_LOG_LEVEL", "WARNING"),
        json_output=os.getenv("PKGMIRROR_LOG_JSON", "") == "1",
    )
    if ctx.obj is not None:
        # 测试中可预先注入容器
        return
    try:
        cfg = Config.from_file(config_path)
    except PkgMirrorError as e:
        raise click.ClickException(str(e)) from e
    if mirror_root:
        cfg.mirror_root = mirror_root
    ctx.obj = ServiceContainer(config=cfg)


# 注册各领域子命令
from pkgmirror.cli.cmd_mirror import register as _reg_mirror  # noqa: E402

_reg_mirror(main)
