"""凭据通道

传输层要求用户名/密码时，引擎通过 CredentialChannel 调用调用方提供的回调。
回调签名: ask(out, inp, url) -> Credentials | None

- 未提供回调: 任何需要认证的传输立即失败，不会阻塞等待输入
- 回调返回 None: 用户放弃本次认证，调用方可自行重试
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, TextIO

from flystart.core.exceptions import CredentialError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str = field(default="", repr=False)


AskUserPwd = Callable[[TextIO, TextIO, str], "Credentials | None"]


class CredentialChannel:
    """输出/输入流 + 可选的凭据回调

    流只在单次询问期间借用，不做缓存。
    """

    def __init__(
        self,
        out: TextIO,
        inp: TextIO,
        ask_user_pwd: AskUserPwd | None = None,
    ) -> None:
        self.out = out
        self.inp = inp
        self._ask = ask_user_pwd

    @property
    def can_prompt(self) -> bool:
        return self._ask is not None

    def request(self, url: str, *, local_name: str = "") -> Credentials:
        """为 url 询问凭据；无回调或用户放弃时抛 CredentialError"""
        if self._ask is None:
            raise CredentialError(
                local_name, f"{url} 需要认证，但未提供凭据回调",
                status="auth_required",
            )
        logger.info("请求凭据: %s", url)
        creds = self._ask(self.out, self.inp, url)
        if creds is None or not creds.username:
            raise CredentialError(local_name, f"用户放弃了 {url} 的认证", status="denied")
        return creds


def prompt_user_pwd(out: TextIO, inp: TextIO, url: str) -> Credentials | None:
    """默认的控制台凭据回调：从 inp 逐行读取用户名和密码

    用户名为空视为放弃。
    """
    out.write(f"Username for '{url}': ")
    out.flush()
    username = inp.readline().strip()
    if not username:
        return None
    out.write(f"Password for '{url}': ")
    out.flush()
    password = inp.readline().rstrip("\r\n")
    return Credentials(username=username, password=password)
