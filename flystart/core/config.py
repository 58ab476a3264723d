"""集中配置管理

支持从 YAML 文件加载 + 编程式覆盖。
归档预设对应原先编译期的归档类型开关（usb / github_https）。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path

from flystart.core.exceptions import ConfigError
from flystart.core.models import ArchiveDefaults, HostType
from flystart.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

ARCHIVE_PRESETS: dict[str, ArchiveDefaults] = {
    "usb": ArchiveDefaults(HostType.FILE, "../procts_repo", "git/"),
    "github_https": ArchiveDefaults(HostType.HTTPS, "github.com", "kubicas/"),
}

PROJECTS_SEGMENT = "projects"


@dataclass
class Config:
    """全局配置"""

    # 目录
    projects_dir: str = ""              # 为空时从当前目录向上查找 projects/
    manifest_file: str = "repos.yml"

    # 归档默认值：先取预设，再用非空字段覆盖
    archive: str = "github_https"
    archive_host_type: str = ""
    archive_host: str = ""
    archive_subdir: str = ""

    # 执行
    git_timeout: int = 1800             # 单条 git 命令超时秒数，0 表示不限制
    max_workers: int = 1
    continue_on_error: bool = False

    # 自定义扩展
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = "configs/default.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认；文件损坏抛 ConfigError"""
        try:
            data = load_yaml(path)
        except ValueError as e:
            raise ConfigError(str(e)) from e
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    def archive_defaults(self) -> ArchiveDefaults:
        """解析当前生效的归档默认值"""
        preset = ARCHIVE_PRESETS.get(self.archive)
        if preset is None:
            raise ConfigError(
                f"未知的归档预设: {self.archive}，可用: {sorted(ARCHIVE_PRESETS)}"
            )
        try:
            host_type = HostType(self.archive_host_type or preset.host_type)
        except ValueError:
            raise ConfigError(f"不支持的归档传输类型: {self.archive_host_type}") from None
        return ArchiveDefaults(
            host_type=host_type,
            host=self.archive_host or preset.host,
            subdir=self.archive_subdir or preset.subdir,
        )

    @property
    def timeout(self) -> int | None:
        return self.git_timeout or None

    def to_dict(self) -> dict:
        return asdict(self)


def resolve_projects_dir(configured: str = "", start: str | Path | None = None) -> Path:
    """确定 projects 目录

    显式配置优先；否则从 start（默认当前目录）开始向上查找名为 projects 的目录。
    """
    if configured:
        return Path(configured)
    here = Path(start or Path.cwd()).resolve()
    for candidate in (here, *here.parents):
        if candidate.name == PROJECTS_SEGMENT:
            return candidate
    raise ConfigError(
        f"未配置 projects_dir，且 {here} 及其上级目录中没有 '{PROJECTS_SEGMENT}' 目录"
    )


# 全局单例；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "configs/default.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current


def reset_config() -> None:
    """丢弃全局配置（测试使用）"""
    global _current  # noqa: PLW0603
    _current = None
