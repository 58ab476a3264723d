"""CLI — 单个代码仓获取 / 地址预览"""

from __future__ import annotations

import sys
from typing import Any

import click

from flystart.core.config import get_config, resolve_projects_dir
from flystart.core.credentials import prompt_user_pwd
from flystart.core.exceptions import FlystartError
from flystart.core.models import HostType, Repository


def register(group: click.Group) -> None:
    group.add_command(get_repo)
    group.add_command(show_url)


def _ref_options(func: Any) -> Any:
    """get / url 共用的引用参数"""
    options = [
        click.argument("remote"),
        click.option("--local", default="", help="本地目录名（默认取 remote 最后一段）"),
        click.option("--type", "host_type", default=None,
                     type=click.Choice([t.value for t in HostType]), help="传输类型"),
        click.option("--host", default="", help="远端主机 / 归档根目录"),
        click.option("--subdir", default="", help="仓库名前的路径前缀"),
        click.option("--branch", default="", help="目标分支"),
        click.option("--commit", "commit_sha", default="", help="锁定到指定 commit（优先于 --branch）"),
        click.option("--user", "commit_user", default="", help="在本地仓库配置的提交用户名"),
        click.option("--email", "commit_email", default="", help="在本地仓库配置的提交邮箱"),
        click.option("--ssh-user", default="", help="ssh 用户名（默认 git）"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _to_repository(kwargs: dict[str, Any]) -> Repository:
    remote = kwargs["remote"]
    return Repository(
        local=kwargs["local"] or remote.rstrip("/").split("/")[-1],
        remote=remote,
        host_type=kwargs["host_type"],
        host=kwargs["host"],
        subdir=kwargs["subdir"],
        branch=kwargs["branch"],
        commit_sha=kwargs["commit_sha"],
        commit_user=kwargs["commit_user"],
        commit_email=kwargs["commit_email"],
        ssh_user=kwargs["ssh_user"],
    )


@click.command(name="get")
@_ref_options
@click.option("--projects-dir", default="", help="projects 目录（默认从当前目录向上查找）")
@click.option("--no-prompt", is_flag=True, default=False, help="需要认证时不询问用户名/密码，直接失败")
def get_repo(projects_dir: str, no_prompt: bool, **kwargs: Any) -> None:
    """clone 或更新单个代码仓"""
    from flystart.services.repo.engine import create_repo

    cfg = get_config()
    repo = _to_repository(kwargs)
    try:
        root = resolve_projects_dir(projects_dir or cfg.projects_dir)
        ref = repo.to_ref(cfg.archive_defaults())
        ask = prompt_user_pwd if sys.stdin.isatty() and not no_prompt else None
        engine = create_repo(sys.stderr, sys.stdin, ask, config=cfg)
        result = engine.get(ref, root)
    except FlystartError as e:
        raise click.ClickException(str(e)) from e
    click.echo(
        f"{result.local_name}: {result.state.value}  "
        f"commit={result.commit_sha[:12] or '-'}  path={result.path}"
    )


@click.command(name="url")
@_ref_options
def show_url(**kwargs: Any) -> None:
    """打印展开后的远端地址（不访问网络）"""
    try:
        ref = _to_repository(kwargs).to_ref(get_config().archive_defaults())
        click.echo(ref.remote_url())
    except FlystartError as e:
        raise click.ClickException(str(e)) from e
