"""flystart 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import click

from flystart import __version__
from flystart.core.config import init_config
from flystart.core.exceptions import ConfigError
from flystart.utils.logger import setup_logging_from_env


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default="configs/default.yml",
              help="配置文件路径（不存在则使用默认配置）")
def main(config_path: str) -> None:
    """flystart - 构建前的依赖代码仓获取与更新"""
    setup_logging_from_env()
    try:
        init_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


# 注册各领域子命令
from flystart.cli.cmd_get import register as _reg_get  # noqa: E402
from flystart.cli.cmd_repo import register as _reg_repo  # noqa: E402
from flystart.cli.cmd_sync import register as _reg_sync  # noqa: E402

_reg_get(main)
_reg_repo(main)
_reg_sync(main)
