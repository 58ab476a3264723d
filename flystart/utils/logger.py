"""flystart 日志配置

支持普通文本和结构化 JSON 两种输出格式，JSON 格式便于 CI 流水线消费。
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

# 随异常一起输出的上下文字段（RepoError 的属性）
_ERROR_FIELDS = ("local_name", "step", "status")


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器

    输出格式:
        {
            "timestamp": "2024-01-01T12:00:00+00:00",
            "level": "INFO",
            "logger": "flystart.services.repo.engine",
            "message": "log message",
            "module": "engine",
            "function": "get",
            "line": 42,
            "exception": "traceback..." (仅在有异常时),
            "repo": {"local_name": ..., "step": ..., "status": ...} (仅 RepoError)
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            # 记录事件发生时间而非格式化时间
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            log_entry["exception"] = self.formatException(record.exc_info)
            ctx = {k: getattr(exc, k) for k in _ERROR_FIELDS if hasattr(exc, k)}
            if ctx:
                log_entry["repo"] = ctx
        return json.dumps(log_entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """配置根日志器

    参数:
        level: 日志级别字符串（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        json_output: 为 True 时使用 JSON 格式（适用于 CI）

    说明:
        - 输出到 stderr，stdout 留给命令结果
        - 自动清理已有 handlers，避免重复输出
    """
    reset_logging()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        fmt = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"
        handler.setFormatter(logging.Formatter(fmt))

    root.addHandler(handler)


def reset_logging() -> None:
    """清理根日志器的所有 handlers，恢复到未配置状态"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()


def setup_logging_from_env() -> None:
    """按环境变量配置日志（FLYSTART_LOG_LEVEL / FLYSTART_LOG_JSON）"""
    setup_logging(
        level=os.getenv("FLYSTART_LOG_LEVEL", "INFO"),
        json_output=os.getenv("FLYSTART_LOG_JSON", "") == "1",
    )
