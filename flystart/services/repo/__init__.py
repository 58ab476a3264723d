"""代码仓服务模块

- engine.py: get() 状态机（clone / update / 锁定版本 / 子模块 / 身份）
- manifest.py: 代码仓清单（YAML）
"""

from flystart.services.repo.engine import PathLocks, RepoEngine, create_repo
from flystart.services.repo.manifest import RepoManifest

__all__ = [
    "RepoEngine",
    "PathLocks",
    "create_repo",
    "RepoManifest",
]
