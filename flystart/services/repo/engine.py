"""代码仓获取引擎

get(ref, path, dirname) 状态机:

  ABSENT  --clone-->  CLONED  --+
                                +--> 锁定版本 --> 子模块 --> 身份配置 --> DONE
  PRESENT --fetch-->  UPDATED --+

- 本地目录是否存在是区分 clone / update 的唯一依据
- 任一步骤失败即整体失败，已 clone 的顶层目录保留在磁盘上供排查
- 同一目标路径的并发调用按路径加锁串行化
"""

from __future__ import annotations

import logging
import os
import sys
import threading
import weakref
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, TextIO

from flystart.core.config import PROJECTS_SEGMENT, Config, get_config
from flystart.core.credentials import AskUserPwd, CredentialChannel, Credentials
from flystart.core.exceptions import (
    CheckoutError,
    CloneError,
    ContractError,
    CredentialError,
    IdentityError,
    PathContractError,
    RepoError,
    SubmoduleError,
    UpdateError,
)
from flystart.core.models import GetResult, GitRepoRef, HostType, RepoRef, RepoState
from flystart.core.protocols import VcsResult, VcsStatus

if TYPE_CHECKING:
    from flystart.core.protocols import VcsBackend

logger = logging.getLogger(__name__)


class PathLocks:
    """按目标路径分配互斥锁（存在性检查与 clone/update 之间不是原子的）

    只持有锁的弱引用：没有调用方再使用某条路径的锁时条目自动消失，
    长期复用的引擎不会无限累积。
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def get(self, path: Path) -> threading.Lock:
        key = os.path.normcase(os.path.abspath(path))
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())


@dataclass
class _Session:
    """单次 get() 的上下文：凭据只询问一次，后续步骤复用"""

    name: str
    url: str
    credentials: Credentials | None = None


class RepoEngine:
    """代码仓获取引擎"""

    def __init__(
        self,
        channel: CredentialChannel,
        backend: VcsBackend | None = None,
        *,
        timeout: int | None = None,
    ) -> None:
        if backend is None:
            from flystart.vcs.git import GitCli
            backend = GitCli()
        self.channel = channel
        self.backend = backend
        self.timeout = timeout
        self._locks = PathLocks()
        self._prompt_lock = threading.Lock()

    @staticmethod
    def has_commit_user(ref: RepoRef) -> bool:
        """ref 是否要求配置提交身份（纯函数，不依赖之前的 get 调用）"""
        return isinstance(ref, GitRepoRef) and ref.has_commit_user

    def get(
        self,
        ref: RepoRef,
        path: str | os.PathLike[str] | None,
        dirname: str | None = None,
    ) -> GetResult:
        """clone 或更新 ref 指向的代码仓到 path/dirname

        Args:
            ref: 具体传输变体的引用
            path: projects 目录，必须以 "projects/" 结尾
            dirname: 本地目录名，None 时使用 ref.local_name

        Raises:
            ContractError: 引用或参数不完整（编程错误）
            RepoError: 路径约定、clone、更新、子模块、身份配置、认证失败
        """
        name = self._validate(ref, path, dirname)
        target = Path(os.fspath(path)) / name  # type: ignore[arg-type]

        with self._locks.get(target):
            return self._run(ref, target, name)  # type: ignore[arg-type]

    # ---- 前置校验 ----

    @staticmethod
    def _validate(
        ref: RepoRef, path: str | os.PathLike[str] | None, dirname: str | None,
    ) -> str:
        """校验契约，返回生效的本地目录名；全部在任何 I/O 之前完成"""
        if not isinstance(ref, GitRepoRef) or ref.transport is None:
            raise ContractError(f"不支持的引用类型: {type(ref).__name__}")
        if not ref.remote_name:
            raise ContractError("引用缺少 remote_name")
        if dirname is None and not ref.local_name:
            raise ContractError(f"引用 {ref.remote_name} 缺少 local_name")
        if not ref.host:
            raise ContractError(f"引用 {ref.remote_name} 缺少 host")
        if path is None:
            raise ContractError("projects 路径为 None")

        name = ref.local_name if dirname is None else dirname
        root = Path(os.fspath(path))
        if root.name != PROJECTS_SEGMENT:
            raise PathContractError(
                name or ref.remote_name,
                f"路径必须以 '{PROJECTS_SEGMENT}/' 结尾: {os.fspath(path)}",
            )
        if not name:
            raise PathContractError(ref.remote_name, "本地目录名为空")
        if name in (".", "..") or "/" in name or os.sep in name:
            raise PathContractError(name, "本地目录名必须是单级目录")
        return name

    # ---- 状态机 ----

    def _run(self, ref: GitRepoRef, target: Path, name: str) -> GetResult:
        session = _Session(name=name, url=ref.remote_url())
        backend = self.backend

        if target.exists():
            logger.info("更新代码仓: %s (%s)", name, target)
            if not target.is_dir():
                raise UpdateError(name, f"{target} 已存在但不是目录")
            if not backend.is_work_tree(target):
                raise UpdateError(name, f"{target} 已存在但不是 git 工作区")
            self._remote_step(session, UpdateError, lambda c: backend.fetch(
                target, credentials=c, timeout=self.timeout,
            ))
            state = RepoState.UPDATED
        else:
            logger.info("克隆代码仓: %s <- %s", name, session.url)
            branch = "" if ref.commit_sha else ref.branch
            self._remote_step(session, CloneError, lambda c: backend.clone(
                session.url, target, branch=branch, credentials=c, timeout=self.timeout,
            ))
            state = RepoState.CLONED

        self._pin(ref, target, name)

        self._remote_step(session, SubmoduleError, lambda c: backend.update_submodules(
            target, credentials=c,
            allow_file=ref.transport is HostType.FILE,
            timeout=self.timeout,
        ))

        identity = False
        if ref.has_commit_user:
            r = backend.configure_identity(
                target, name=ref.commit_user, email=ref.commit_email,
            )
            if not r.ok:
                raise IdentityError(name, r.message, status=r.status.value)
            identity = True

        sha = backend.head_sha(target)
        logger.info("代码仓就绪: %s [%s] @ %s", name, state.value, sha[:12] or "-")
        return GetResult(
            local_name=name,
            path=str(target),
            state=state,
            commit_sha=sha,
            identity_configured=identity,
        )

    def _pin(self, ref: GitRepoRef, target: Path, name: str) -> None:
        """commit_sha 优先，其次 branch，否则远端默认分支"""
        r = self.backend.checkout(
            target, branch=ref.branch, commit_sha=ref.commit_sha, timeout=self.timeout,
        )
        if r.ok:
            return
        exc_type = UpdateError if r.status is VcsStatus.DIVERGED else CheckoutError
        raise exc_type(name, r.message, status=r.status.value)

    def _remote_step(
        self,
        session: _Session,
        exc_type: type[RepoError],
        op: Callable[[Credentials | None], VcsResult],
    ) -> None:
        """执行可能需要认证的远端步骤；需要时询问一次凭据并重试"""
        r = op(session.credentials)
        if r.status is VcsStatus.AUTH_REQUIRED and session.credentials is None:
            with self._prompt_lock:
                session.credentials = self.channel.request(session.url, local_name=session.name)
            r = op(session.credentials)
        if r.status is VcsStatus.AUTH_REQUIRED:
            raise CredentialError(
                session.name, f"{session.url} 拒绝了提供的凭据: {r.message}",
                status="rejected",
            )
        if not r.ok:
            raise exc_type(session.name, r.message, status=r.status.value)


def create_repo(
    out: TextIO | None = None,
    inp: TextIO | None = None,
    ask_user_pwd: AskUserPwd | None = None,
    *,
    backend: VcsBackend | None = None,
    config: Config | None = None,
) -> RepoEngine:
    """构造引擎

    Args:
        out: 提示输出流，默认 stderr
        inp: 输入流，仅传递给 ask_user_pwd，默认 stdin
        ask_user_pwd: 凭据回调；None 时需要认证的传输直接失败
    """
    cfg = config or get_config()
    channel = CredentialChannel(out or sys.stderr, inp or sys.stdin, ask_user_pwd)
    return RepoEngine(channel, backend, timeout=cfg.timeout)
