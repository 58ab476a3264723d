"""VCS 协作方契约

引擎只依赖 VcsBackend 协议，不直接调用 git。
使用 typing.Protocol 而非 ABC，测试替身无需继承即可满足协议。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from flystart.core.credentials import Credentials


class VcsStatus(str, Enum):
    """VCS 操作结果分类"""
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    AUTH_REQUIRED = "auth_required"
    NETWORK = "network"
    DIVERGED = "diverged"
    FAILED = "failed"


@dataclass(frozen=True)
class VcsResult:
    status: VcsStatus
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is VcsStatus.SUCCESS


VCS_OK = VcsResult(VcsStatus.SUCCESS)


class VcsBackend(Protocol):
    """VCS 后端协议

    clone/fetch/update_submodules 可能访问远端，需要认证时返回 AUTH_REQUIRED，
    由引擎取得凭据后带 credentials 重试。
    """

    def clone(
        self, url: str, dest: Path, *,
        branch: str = "",
        credentials: Credentials | None = None,
        timeout: int | None = None,
    ) -> VcsResult:
        ...

    def fetch(
        self, dest: Path, *,
        credentials: Credentials | None = None,
        timeout: int | None = None,
    ) -> VcsResult:
        ...

    def checkout(
        self, dest: Path, *,
        branch: str = "",
        commit_sha: str = "",
        timeout: int | None = None,
    ) -> VcsResult:
        """commit_sha 优先（detached）；否则 branch；都为空则远端默认分支。

        分支检出后快进到远端对应分支，无法快进时返回 DIVERGED。
        """
        ...

    def update_submodules(
        self, dest: Path, *,
        credentials: Credentials | None = None,
        allow_file: bool = False,
        timeout: int | None = None,
    ) -> VcsResult:
        ...

    def configure_identity(self, dest: Path, *, name: str, email: str = "") -> VcsResult:
        ...

    def head_sha(self, dest: Path) -> str:
        ...

    def is_work_tree(self, dest: Path) -> bool:
        ...
