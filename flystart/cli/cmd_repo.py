"""CLI — 代码仓清单管理"""

from __future__ import annotations

from typing import Any

import click

from flystart.core.exceptions import ValidationError
from flystart.core.models import HostType, Repository
from flystart.services.repo.manifest import RepoManifest


def register(group: click.Group) -> None:
    group.add_command(repo_group)


def _open(manifest: str) -> RepoManifest:
    try:
        return RepoManifest(manifest)
    except ValidationError as e:
        raise click.ClickException(str(e)) from e


@click.group(name="repo")
def repo_group() -> None:
    """代码仓清单管理"""


@repo_group.command(name="list")
@click.option("--manifest", default="", help="清单文件路径")
def repo_list(manifest: str) -> None:
    """列出清单中的代码仓"""
    repos = _open(manifest).list_all()
    if not repos:
        click.echo("清单中没有代码仓。")
        return
    for r in repos:
        host_type = r.get("host_type") or "-"
        host = r.get("host") or "(默认归档)"
        pin = r.get("commit_sha") or r.get("branch") or "-"
        click.echo(f"  {r['name']:20s} [{host_type:5s}] {host} {r.get('remote', '')}  pin={pin}")


@repo_group.command(name="add")
@click.argument("local")
@click.argument("remote")
@click.option("--type", "host_type", default=None,
              type=click.Choice([t.value for t in HostType]), help="传输类型（默认取归档设置）")
@click.option("--host", default="", help="远端主机（默认取归档设置）")
@click.option("--subdir", default="", help="仓库名前的路径前缀")
@click.option("--branch", default="", help="目标分支")
@click.option("--commit", "commit_sha", default="", help="锁定 commit")
@click.option("--user", "commit_user", default="", help="提交用户名")
@click.option("--email", "commit_email", default="", help="提交邮箱")
@click.option("--ssh-user", default="", help="ssh 用户名")
@click.option("--manifest", default="", help="清单文件路径")
def repo_add(manifest: str, **kwargs: Any) -> None:
    """加入或覆盖清单中的代码仓"""
    registry = _open(manifest)
    try:
        registry.add(Repository(**kwargs))
    except ValidationError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"代码仓已加入清单: {kwargs['local']}")


@repo_group.command(name="remove")
@click.argument("local")
@click.option("--manifest", default="", help="清单文件路径")
def repo_remove(local: str, manifest: str) -> None:
    """从清单移除代码仓（不删除本地目录）"""
    if _open(manifest).remove(local):
        click.echo(f"代码仓已移出清单: {local}")
    else:
        click.echo(f"清单中不存在: {local}")
