"""YAML 文件读写

配置文件和代码仓清单共用：utf-8、大小上限、写入时先写临时文件再替换。
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# 清单/配置文件最大 1MB
MAX_YAML_SIZE = 1024 * 1024


def load_yaml(path: str | Path) -> dict[str, Any]:
    """读取 YAML 映射；文件不存在或为空时返回空字典

    Raises:
        ValueError: 文件过大、YAML 语法错误或顶层不是映射
    """
    p = Path(path)
    if not p.is_file():
        return {}
    size = p.stat().st_size
    if size > MAX_YAML_SIZE:
        raise ValueError(f"{p} 过大 ({size} 字节，上限 {MAX_YAML_SIZE})")

    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"{p} 不是合法的 YAML: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{p} 顶层必须是映射，实际为 {type(data).__name__}")
    return data


def save_yaml(path: str | Path, data: dict[str, Any]) -> None:
    """保持键顺序写出；中途失败时原文件不变"""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    content = yaml.safe_dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)
    fd, tmp = tempfile.mkstemp(dir=str(p.parent), prefix=f".{p.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, p)
    except OSError:
        Path(tmp).unlink(missing_ok=True)
        raise
    logger.debug("已写入 %s", p)
