"""代码仓清单 — 批量获取的仓库列表

清单文件格式（条目顺序即处理顺序）:

    repositories:
      libgit2:
        remote: libgit2/libgit2
        host_type: https
        host: github.com
        subdir: libgit2/
      tools:
        remote: tools            # 省略 host 时使用归档默认值
        branch: release
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from flystart.core.exceptions import ValidationError
from flystart.core.models import HostType, Repository
from flystart.core.registry import YamlRegistry

logger = logging.getLogger(__name__)

_ENTRY_FIELDS = (
    "remote", "host_type", "host", "subdir",
    "branch", "commit_sha", "commit_user", "commit_email", "ssh_user",
)


class RepoManifest(YamlRegistry):
    """代码仓清单（name 即本地目录名）"""

    section_key = "repositories"

    def __init__(self, manifest_file: str | Path = "") -> None:
        if not manifest_file:
            from flystart.core.config import get_config
            manifest_file = get_config().manifest_file
        super().__init__(manifest_file)

    def add(self, repo: Repository) -> dict[str, Any]:
        """添加或覆盖一个代码仓描述"""
        if not repo.local:
            raise ValidationError("代码仓 local 为必填")
        if not repo.remote:
            raise ValidationError(f"代码仓 {repo.local} 缺少 remote")
        entry = repo.to_dict()
        entry.pop("local")
        self._put(repo.local, entry)
        logger.info("代码仓已加入清单: %s (%s)", repo.local, repo.remote)
        return entry

    def get(self, local: str) -> Repository | None:
        entry = self._get_raw(local)
        if entry is None:
            return None
        return self._to_repository(local, entry)

    def remove(self, local: str) -> bool:
        if not self._remove(local):
            return False
        logger.info("代码仓已移出清单: %s", local)
        return True

    def list_all(self) -> list[dict[str, Any]]:
        """全部条目（带 name 字段），用于展示"""
        return [{"name": k, **v} for k, v in self._items() if isinstance(v, dict)]

    def repositories(self) -> list[Repository]:
        """按文件顺序返回全部代码仓描述"""
        return [self._to_repository(k, v) for k, v in self._items()]

    @staticmethod
    def _to_repository(local: str, entry: Any) -> Repository:
        if not isinstance(entry, dict):
            raise ValidationError(f"代码仓 {local} 的条目必须是映射")
        unknown = sorted(set(entry) - set(_ENTRY_FIELDS))
        if unknown:
            raise ValidationError(f"代码仓 {local} 含未知字段", details=unknown)
        if not entry.get("remote"):
            raise ValidationError(f"代码仓 {local} 缺少 remote")
        host_type = entry.get("host_type") or None
        if host_type is not None and host_type not in {t.value for t in HostType}:
            raise ValidationError(
                f"代码仓 {local} 的 host_type 不支持: {host_type}",
                details=[t.value for t in HostType],
            )
        values = {k: str(entry.get(k) or "") for k in _ENTRY_FIELDS if k != "host_type"}
        return Repository(local=local, host_type=host_type, **values)
