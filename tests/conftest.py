"""共享 fixture — 内存 VCS 后端替身 + 隔离的 projects 目录

FakeBackend 满足 VcsBackend 协议:
  - clone 成功时创建目标目录，HEAD 记为 "tip-<branch>"
  - checkout 按 commit_sha > branch > 默认分支 更新 HEAD
  - 每个方法的返回值可通过 queue() 预置，未预置时返回成功
"""

from __future__ import annotations

import io
import threading
from pathlib import Path
from typing import Any

import pytest

from flystart.core.config import Config, reset_config
from flystart.core.credentials import CredentialChannel
from flystart.core.protocols import VCS_OK, VcsResult
from flystart.services.repo.engine import RepoEngine
from flystart.utils.logger import reset_logging


class FakeBackend:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.heads: dict[Path, str] = {}
        self.identity: dict[Path, dict[str, str]] = {}
        self._results: dict[str, list[VcsResult]] = {}
        self._lock = threading.Lock()

    def queue(self, method: str, *results: VcsResult) -> None:
        self._results.setdefault(method, []).extend(results)

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def kwargs(self, method: str) -> list[dict[str, Any]]:
        return [kw for name, kw in self.calls if name == method]

    def _record(self, method: str, **kwargs: Any) -> VcsResult:
        with self._lock:
            self.calls.append((method, kwargs))
            pending = self._results.get(method)
            return pending.pop(0) if pending else VCS_OK

    def clone(self, url, dest, *, branch="", credentials=None, timeout=None):
        r = self._record("clone", url=url, dest=dest, branch=branch,
                         credentials=credentials, timeout=timeout)
        if r.ok:
            dest.mkdir(parents=True, exist_ok=True)
            self.heads[dest] = f"tip-{branch or 'main'}"
        return r

    def fetch(self, dest, *, credentials=None, timeout=None):
        return self._record("fetch", dest=dest, credentials=credentials, timeout=timeout)

    def checkout(self, dest, *, branch="", commit_sha="", timeout=None):
        r = self._record("checkout", dest=dest, branch=branch, commit_sha=commit_sha)
        if r.ok:
            self.heads[dest] = commit_sha or f"tip-{branch or 'main'}"
        return r

    def update_submodules(self, dest, *, credentials=None, allow_file=False, timeout=None):
        return self._record("update_submodules", dest=dest, credentials=credentials,
                            allow_file=allow_file)

    def configure_identity(self, dest, *, name, email=""):
        r = self._record("configure_identity", dest=dest, name=name, email=email)
        if r.ok:
            self.identity[dest] = {"name": name, "email": email}
        return r

    def head_sha(self, dest):
        return self.heads.get(dest, "")

    def is_work_tree(self, dest):
        return dest in self.heads


@pytest.fixture(autouse=True)
def _isolate_globals():
    """每个用例前后丢弃全局配置和日志 handler"""
    reset_config()
    yield
    reset_config()
    reset_logging()


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def projects(tmp_path: Path) -> Path:
    root = tmp_path / "work" / "projects"
    root.mkdir(parents=True)
    return root


@pytest.fixture()
def make_engine(backend: FakeBackend):
    """构造引擎；ask 为凭据回调（None 表示不提供）"""

    def _make(ask=None) -> RepoEngine:
        channel = CredentialChannel(io.StringIO(), io.StringIO(), ask)
        return RepoEngine(channel, backend)

    return _make


@pytest.fixture()
def engine(make_engine) -> RepoEngine:
    return make_engine()


@pytest.fixture()
def config(projects: Path) -> Config:
    return Config(projects_dir=str(projects))
