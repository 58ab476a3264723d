"""核心数据模型

引用模型（一个基类 + 一个 git 公共层 + 三种传输变体）:
  - GitHttpsRepoRef: https://host/subdir/remote.git
  - GitSshRepoRef:   user@host:subdir/remote.git
  - GitFileRepoRef:  host/subdir/remote（本地路径，如 U 盘归档）

批量编排使用扁平的 Repository 描述，按 host_type 展开为对应变体。
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from enum import Enum
from typing import ClassVar

from flystart.core.exceptions import ContractError, ValidationError


class HostType(str, Enum):
    """远端传输类型"""
    HTTPS = "https"
    FILE = "file"
    SSH = "ssh"


def _join(*parts: str | None) -> str:
    """拼接路径片段，忽略空片段并去掉多余的 '/'"""
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


# =========================================================================
# 引用模型
# =========================================================================

@dataclass(frozen=True)
class RepoRef:
    """代码仓引用基类 — 不可直接交给引擎

    remote_name: 远端标识，如 "libgit2/libgit2"
    local_name:  本地目录名，如 "libgit2"
    """

    remote_name: str = ""
    local_name: str = ""

    # 具体变体覆盖；None 表示抽象类型
    transport: ClassVar[HostType | None] = None


@dataclass(frozen=True)
class GitRepoRef(RepoRef):
    """git 传输的公共字段"""

    DEFAULT_EXTENSION: ClassVar[str] = ".git"

    host: str = ""           # github.com / 内网服务器地址 / 归档根目录
    subdir: str = ""         # 仓库名前的路径前缀，如 "libgit2/"
    extension: str = ""      # 为空时使用 ".git"
    branch: str = ""         # 为空时使用远端默认分支
    commit_sha: str = ""     # 优先于 branch，检出为 detached HEAD
    commit_user: str = ""    # 为空时跳过身份配置
    commit_email: str = ""   # 仅在 commit_user 设置时生效

    @property
    def has_commit_user(self) -> bool:
        return bool(self.commit_user)

    def archive_name(self) -> str:
        return f"{self.remote_name}{self.extension or self.DEFAULT_EXTENSION}"

    def remote_url(self) -> str:
        """按传输类型构造完整的远端地址"""
        raise ContractError(f"{type(self).__name__} 不是具体的传输类型")


@dataclass(frozen=True)
class GitHttpsRepoRef(GitRepoRef):
    transport: ClassVar[HostType | None] = HostType.HTTPS

    def remote_url(self) -> str:
        return "https://" + _join(self.host, self.subdir, self.archive_name())


@dataclass(frozen=True)
class GitSshRepoRef(GitRepoRef):
    transport: ClassVar[HostType | None] = HostType.SSH
    DEFAULT_SSH_USER: ClassVar[str] = "git"

    ssh_user: str = ""       # 为空时使用 "git"

    def remote_url(self) -> str:
        user = self.ssh_user or self.DEFAULT_SSH_USER
        return f"{user}@{self.host}:" + _join(self.subdir, self.archive_name())


@dataclass(frozen=True)
class GitFileRepoRef(GitRepoRef):
    """本地文件系统上的归档（挂载盘、U 盘等）

    仅在显式指定 extension 时追加后缀；相对 host 以当前工作目录为基准。
    """

    transport: ClassVar[HostType | None] = HostType.FILE

    def remote_url(self) -> str:
        path = _join(self.subdir, f"{self.remote_name}{self.extension}")
        return os.path.abspath(os.path.join(self.host, path))


_VARIANTS: dict[HostType, type[GitRepoRef]] = {
    HostType.HTTPS: GitHttpsRepoRef,
    HostType.FILE: GitFileRepoRef,
    HostType.SSH: GitSshRepoRef,
}


def ref_class(host_type: HostType | str) -> type[GitRepoRef]:
    """按传输类型获取引用变体类"""
    return _VARIANTS[HostType(host_type)]


# =========================================================================
# 归档默认值 / 扁平描述
# =========================================================================

@dataclass(frozen=True)
class ArchiveDefaults:
    """默认归档主机 — 未指定 host 的仓库描述使用它"""

    host_type: HostType
    host: str
    subdir: str = ""


@dataclass
class Repository:
    """扁平的代码仓描述（批量编排 / 清单文件使用）

    host_type 为 None 时取归档默认值；host 为空时 host 和 subdir 都取归档默认值。
    """

    local: str
    remote: str
    host_type: HostType | None = None
    host: str = ""
    subdir: str = ""

    # 可选的版本锁定与身份
    branch: str = ""
    commit_sha: str = ""
    commit_user: str = ""
    commit_email: str = ""
    ssh_user: str = ""

    def __post_init__(self) -> None:
        if self.host_type is not None and not isinstance(self.host_type, HostType):
            try:
                self.host_type = HostType(self.host_type)
            except ValueError:
                raise ValidationError(
                    f"不支持的传输类型: {self.host_type}",
                    details=[t.value for t in HostType],
                ) from None

    def to_ref(self, defaults: ArchiveDefaults | None = None) -> GitRepoRef:
        """展开为对应传输变体的引用"""
        host_type, host, subdir = self.host_type, self.host, self.subdir
        if defaults is not None:
            host_type = host_type or defaults.host_type
            if not host:
                host = defaults.host
                subdir = subdir or defaults.subdir
        if host_type is None:
            raise ContractError(f"代码仓 '{self.local}' 未指定传输类型且无归档默认值")

        kwargs = {
            "remote_name": self.remote,
            "local_name": self.local,
            "host": host,
            "subdir": subdir,
            "branch": self.branch,
            "commit_sha": self.commit_sha,
            "commit_user": self.commit_user,
            "commit_email": self.commit_email,
        }
        if host_type is HostType.SSH:
            kwargs["ssh_user"] = self.ssh_user
        return ref_class(host_type)(**kwargs)

    def to_dict(self) -> dict[str, str]:
        """序列化为清单条目（省略空字段）"""
        out: dict[str, str] = {}
        for f in fields(self):
            val = getattr(self, f.name)
            if isinstance(val, HostType):
                val = val.value
            if val:
                out[f.name] = val
        return out


# =========================================================================
# 执行结果
# =========================================================================

class RepoState(str, Enum):
    """get() 状态机的状态"""
    ABSENT = "absent"
    PRESENT = "present"
    CLONED = "cloned"
    UPDATED = "updated"
    DONE = "done"


@dataclass
class GetResult:
    """单个代码仓 get() 的结果"""

    local_name: str
    path: str
    state: RepoState            # CLONED | UPDATED
    commit_sha: str = ""
    identity_configured: bool = False
