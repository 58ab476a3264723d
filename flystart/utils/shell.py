"""Shell 命令执行工具 — 统一子进程调用

通过 CommandExecutor 协议抽象子进程执行，git 后端和测试都经由它，
测试时注入 mock 实现即可，无需 patch subprocess。
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

# 与 coreutils timeout(1) 一致的超时返回码
TIMEOUT_RETURNCODE = 124


# =========================================================================
# 命令执行结果
# =========================================================================

@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0


# =========================================================================
# 命令执行器协议
# =========================================================================

class CommandExecutor(Protocol):
    """命令执行器协议 — 抽象子进程调用"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        """执行命令并返回结果；env 为追加到当前进程环境的变量"""
        ...


# =========================================================================
# 默认实现: 本地执行器
# =========================================================================

class LocalExecutor:
    """本地子进程执行器（默认实现）

    超时不抛异常，而是返回 returncode=124 且 timed_out=True 的结果；
    无法启动进程时返回 127（找不到）或 126（其他 OSError）。
    由调用方统一按失败分类处理。
    """

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> CommandResult:
        args = shlex.split(cmd) if isinstance(cmd, str) else cmd
        full_env = {**os.environ, **env} if env else None
        logger.debug("exec: %s (cwd=%s, timeout=%s)", args, cwd, timeout)
        try:
            r = subprocess.run(
                args, capture_output=True, text=True,
                cwd=cwd, env=full_env, check=False, timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            stderr = e.stderr or ""
            if isinstance(stderr, bytes):
                stderr = stderr.decode(errors="replace")
            return CommandResult(
                returncode=TIMEOUT_RETURNCODE,
                stdout="",
                stderr=f"{stderr}\ntimed out after {timeout}s".strip(),
                timed_out=True,
            )
        except FileNotFoundError as e:
            # 可执行文件或工作目录不存在（如未安装 git）
            return CommandResult(returncode=127, stdout="", stderr=str(e))
        except OSError as e:
            # cwd 不是目录、无执行权限等
            return CommandResult(returncode=126, stdout="", stderr=str(e))
        return CommandResult(
            returncode=r.returncode,
            stdout=r.stdout,
            stderr=r.stderr,
        )


# =========================================================================
# 全局默认执行器（可替换）
# =========================================================================

_default_executor: CommandExecutor = LocalExecutor()


def get_executor() -> CommandExecutor:
    """获取全局默认命令执行器"""
    return _default_executor


def set_executor(executor: CommandExecutor) -> None:
    """替换全局默认命令执行器（用于测试）"""
    global _default_executor  # noqa: PLW0603
    _default_executor = executor
