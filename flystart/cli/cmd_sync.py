"""CLI — 批量获取（清单驱动的 sync 与构建工具嵌入用的 flying_start）"""

from __future__ import annotations

import os
import sys
from typing import Any, Sequence

import click

from flystart.core.config import get_config, init_config
from flystart.core.credentials import prompt_user_pwd
from flystart.core.exceptions import ConfigError, ValidationError
from flystart.core.models import Repository
from flystart.services.bulk import BatchReport, BulkOrchestrator, OutcomeStatus
from flystart.services.repo.manifest import RepoManifest
from flystart.utils.logger import setup_logging_from_env


def register(group: click.Group) -> None:
    group.add_command(sync)


def _batch_options(func: Any) -> Any:
    options = [
        click.option("--projects-dir", default="", help="projects 目录（默认从当前目录向上查找）"),
        click.option("--continue-on-error", is_flag=True, default=False,
                     help="单个仓库失败后继续处理其余仓库（默认 fail-fast）"),
        click.option("--jobs", "-j", default=0, type=click.IntRange(min=0),
                     help="并发数（0 表示取配置 max_workers）"),
        click.option("--no-prompt", is_flag=True, default=False,
                     help="需要认证时不询问用户名/密码，直接失败"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def run_batch(
    repositories: Sequence[Repository], *,
    projects_dir: str = "",
    continue_on_error: bool = False,
    jobs: int = 0,
    no_prompt: bool = False,
) -> BatchReport:
    """按命令行参数构造编排器并执行"""
    from flystart.services.repo.engine import create_repo

    cfg = get_config()
    ask = prompt_user_pwd if sys.stdin.isatty() and not no_prompt else None
    engine = create_repo(
        sys.stderr, sys.stdin, ask,
        config=cfg,
    )
    orchestrator = BulkOrchestrator(
        engine,
        config=cfg,
        projects_dir=projects_dir,
        continue_on_error=continue_on_error or None,
        max_workers=jobs or None,
    )
    try:
        return orchestrator.run(repositories)
    except (ConfigError, ValidationError) as e:
        raise click.ClickException(str(e)) from e


def echo_report(report: BatchReport) -> None:
    for o in report.outcomes:
        if o.status is OutcomeStatus.OK and o.result is not None:
            click.echo(
                f"  {o.local_name:20s} {o.result.state.value:8s} "
                f"{o.result.commit_sha[:12] or '-'}"
            )
        elif o.status is OutcomeStatus.FAILED:
            click.echo(f"  {o.local_name:20s} FAILED   {o.error}")
        else:
            click.echo(f"  {o.local_name:20s} skipped")
    click.echo(report.summary())


@click.command(name="sync")
@click.option("--manifest", default="", help="清单文件路径（默认取配置 manifest_file）")
@_batch_options
@click.pass_context
def sync(ctx: click.Context, manifest: str, **opts: Any) -> None:
    """按清单 clone / 更新全部代码仓"""
    try:
        repositories = RepoManifest(manifest).repositories()
    except ValidationError as e:
        raise click.ClickException(str(e)) from e
    if not repositories:
        click.echo("清单中没有代码仓。")
        return
    report = run_batch(repositories, **opts)
    echo_report(report)
    ctx.exit(report.exit_code)


@click.command(name="flying-start")
@click.option("--config", "-c", "config_path", default="", help="配置文件路径")
@_batch_options
@click.pass_obj
def _flying_start(repositories: list[Repository], config_path: str, **opts: Any) -> int:
    """获取构建所需的全部依赖代码仓"""
    if config_path:
        try:
            init_config(config_path)
        except ConfigError as e:
            raise click.ClickException(str(e)) from e
    report = run_batch(repositories, **opts)
    echo_report(report)
    return report.exit_code


def flying_start(
    repositories: Sequence[Repository],
    argv: Sequence[str] | None = None,
) -> int:
    """构建工具入口：获取 repositories 中的全部代码仓，返回进程退出码

    argv 与 sys.argv 形式相同（argv[0] 为程序名），默认取 sys.argv。
    只有全部仓库都成功时返回 0。ContractError（描述本身有误）直接抛出。

    用法:
        if __name__ == "__main__":
            sys.exit(flying_start(REPOSITORIES))
    """
    if argv is None:
        argv = sys.argv
    setup_logging_from_env()
    prog = os.path.basename(argv[0]) if argv else "flying-start"
    try:
        rv = _flying_start.main(
            args=list(argv[1:]), prog_name=prog,
            obj=list(repositories), standalone_mode=False,
        )
    except click.ClickException as e:
        e.show()
        return e.exit_code
    return int(rv or 0)
