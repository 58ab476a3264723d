"""git 命令行后端 — VcsBackend 的默认实现

职责：
- clone / fetch / checkout / submodule / config 的命令拼装
- 把 git 的 stderr 分类为 VcsStatus
- 远端命令禁用交互式提示，凭据通过临时 credential helper 注入
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

from flystart.core.protocols import VCS_OK, VcsResult, VcsStatus
from flystart.utils.shell import CommandExecutor, CommandResult, get_executor

if TYPE_CHECKING:
    from flystart.core.credentials import Credentials

logger = logging.getLogger(__name__)

_USER_ENV = "FLYSTART_GIT_USERNAME"
_PASS_ENV = "FLYSTART_GIT_PASSWORD"

# 只应答 get 请求，凭据从环境变量读取，不落盘也不进命令行
_CRED_HELPER = (
    "!f() { test \"$1\" = get || exit 0; "
    f"echo \"username=${{{_USER_ENV}}}\"; "
    f"echo \"password=${{{_PASS_ENV}}}\"; }}; f"
)

# 分类顺序即优先级：ssh 认证失败也会带 "Could not read from remote repository"
_CLASSIFIERS: list[tuple[VcsStatus, re.Pattern[str]]] = [
    (VcsStatus.AUTH_REQUIRED, re.compile(
        r"could not read (username|password)|terminal prompts disabled"
        r"|authentication failed|permission denied \(publickey"
        r"|access denied|invalid username or password|returned error: 40[13]",
        re.IGNORECASE,
    )),
    (VcsStatus.DIVERGED, re.compile(
        r"not possible to fast-forward|would be overwritten|diverg"
        r"|non-fast-forward|commit your changes or stash them",
        re.IGNORECASE,
    )),
    (VcsStatus.NOT_FOUND, re.compile(
        r"repository not found|repository '[^']*' not found"
        r"|does not appear to be a git repository"
        r"|does not exist|remote branch .* not found|couldn't find remote ref"
        r"|did not match any|unknown revision|reference is not a tree"
        r"|not something we can merge|returned error: 404",
        re.IGNORECASE,
    )),
    (VcsStatus.NETWORK, re.compile(
        r"could not resolve host|connection (refused|timed out|reset)"
        r"|network is unreachable|failed to connect|timed out"
        r"|early eof|rpc failed|could not read from remote repository"
        r"|unable to access",
        re.IGNORECASE,
    )),
]


def classify(stderr: str) -> VcsStatus:
    """按 stderr 内容归类失败原因"""
    for status, pattern in _CLASSIFIERS:
        if pattern.search(stderr):
            return status
    return VcsStatus.FAILED


class GitCli:
    """基于 git 可执行文件的 VCS 后端"""

    def __init__(self, executor: CommandExecutor | None = None, git: str = "git") -> None:
        self._executor = executor
        self.git = git

    @property
    def executor(self) -> CommandExecutor:
        return self._executor or get_executor()

    # ---- 远端操作 ----

    def clone(
        self, url: str, dest: Path, *,
        branch: str = "",
        credentials: Credentials | None = None,
        timeout: int | None = None,
    ) -> VcsResult:
        args = ["clone", "--origin", "origin"]
        if branch:
            args += ["--branch", branch]
        args += [url, str(dest)]
        logger.info("  git clone %s -> %s", url, dest)
        return self._remote(args, ".", credentials, timeout)

    def fetch(
        self, dest: Path, *,
        credentials: Credentials | None = None,
        timeout: int | None = None,
    ) -> VcsResult:
        logger.info("  git fetch: %s", dest)
        return self._remote(
            ["fetch", "--prune", "--tags", "origin"], str(dest), credentials, timeout,
        )

    def update_submodules(
        self, dest: Path, *,
        credentials: Credentials | None = None,
        allow_file: bool = False,
        timeout: int | None = None,
    ) -> VcsResult:
        args = ["submodule", "update", "--init", "--recursive"]
        if allow_file:
            # git >= 2.38.1 默认禁止 file 传输的子模块
            args = ["-c", "protocol.file.allow=always", *args]
        return self._remote(args, str(dest), credentials, timeout)

    # ---- 本地操作 ----

    def checkout(
        self, dest: Path, *,
        branch: str = "",
        commit_sha: str = "",
        timeout: int | None = None,
    ) -> VcsResult:
        cwd = str(dest)
        if commit_sha:
            logger.info("  git checkout --detach %s", commit_sha)
            return self._local(
                ["-c", "advice.detachedHead=false", "checkout", "-q", "--detach", commit_sha],
                cwd, timeout,
            )

        if not branch:
            branch = self._default_branch(dest, timeout)
            if not branch:
                return VcsResult(VcsStatus.FAILED, "无法确定远端默认分支 (origin/HEAD)")

        logger.info("  git checkout %s", branch)
        r = self._local(["checkout", "-q", branch], cwd, timeout)
        if not r.ok:
            return r
        return self._local(["merge", "-q", "--ff-only", f"origin/{branch}"], cwd, timeout)

    def configure_identity(self, dest: Path, *, name: str, email: str = "") -> VcsResult:
        cwd = str(dest)
        r = self._local(["config", "--local", "user.name", name], cwd)
        if r.ok and email:
            r = self._local(["config", "--local", "user.email", email], cwd)
        return r

    def head_sha(self, dest: Path) -> str:
        r = self._exec(["rev-parse", "HEAD"], str(dest))
        return r.stdout.strip() if r.success else ""

    def is_work_tree(self, dest: Path) -> bool:
        """dest 本身是否为 git 工作区根目录（而非某个上级仓库的子目录）"""
        r = self._exec(["rev-parse", "--show-toplevel"], str(dest))
        if not r.success or not r.stdout.strip():
            return False
        return Path(r.stdout.strip()).resolve() == dest.resolve()

    # ---- 内部方法 ----

    def _default_branch(self, dest: Path, timeout: int | None) -> str:
        """解析 origin/HEAD 指向的分支；缺失时尝试从远端刷新，最后退回当前分支"""
        cwd = str(dest)
        ref_cmd = ["symbolic-ref", "--short", "refs/remotes/origin/HEAD"]
        r = self._exec(ref_cmd, cwd)
        if not r.success:
            self._exec(["remote", "set-head", "origin", "--auto"], cwd, self._remote_env(None), timeout)
            r = self._exec(ref_cmd, cwd)
        if r.success and r.stdout.strip():
            return r.stdout.strip().removeprefix("origin/")
        r = self._exec(["symbolic-ref", "--short", "-q", "HEAD"], cwd)
        return r.stdout.strip() if r.success else ""

    def _remote(
        self, args: list[str], cwd: str,
        credentials: Credentials | None, timeout: int | None,
    ) -> VcsResult:
        if credentials is not None:
            args = ["-c", "credential.helper=", "-c", f"credential.helper={_CRED_HELPER}", *args]
        return self._to_result(self._exec(args, cwd, self._remote_env(credentials), timeout))

    def _local(self, args: list[str], cwd: str, timeout: int | None = None) -> VcsResult:
        return self._to_result(self._exec(args, cwd, None, timeout))

    @staticmethod
    def _remote_env(credentials: Credentials | None) -> dict[str, str]:
        env = {"GIT_TERMINAL_PROMPT": "0", "GCM_INTERACTIVE": "never"}
        if "GIT_SSH_COMMAND" not in os.environ and "GIT_SSH" not in os.environ:
            env["GIT_SSH_COMMAND"] = "ssh -o BatchMode=yes"
        if credentials is not None:
            env[_USER_ENV] = credentials.username
            env[_PASS_ENV] = credentials.password
        return env

    def _exec(
        self, args: list[str], cwd: str,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        return self.executor.execute([self.git, *args], cwd=cwd, env=env, timeout=timeout)

    @staticmethod
    def _to_result(r: CommandResult) -> VcsResult:
        if r.success:
            return VCS_OK
        message = r.stderr.strip()[:500] or f"rc={r.returncode}"
        if r.timed_out:
            return VcsResult(VcsStatus.NETWORK, message)
        return VcsResult(classify(r.stderr), message)
