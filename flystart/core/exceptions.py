"""统一异常体系

两级分类:
  - ContractError: 调用方传入的引用/路径不完整，属于编程错误，不应重试
  - RepoError: 环境或操作失败（网络、认证、分叉等），运维修复后可重试

CLI 层据此输出友好提示，批量编排据此决定继续还是中止。
"""

from __future__ import annotations


class FlystartError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(FlystartError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(FlystartError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class ContractError(FlystartError):
    """调用契约被破坏（编程错误）

    未知的引用类型、缺失 remote_name/local_name/host、path 为 None。
    """

    code = "CONTRACT_ERROR"


# =========================================================================
# 运行时失败
# =========================================================================

class RepoError(FlystartError):
    """代码仓操作失败（运行时）

    携带足够的上下文（本地名、失败步骤、VCS 结果分类）供运维定位。
    """

    code = "REPO_ERROR"
    step: str = "get"

    def __init__(
        self, local_name: str, detail: str, *,
        step: str = "", status: str = "",
    ) -> None:
        self.local_name = local_name
        self.detail = detail
        if step:
            self.step = step
        self.status = status
        tag = f" [{status}]" if status else ""
        super().__init__(f"{self.step} failed for '{local_name}'{tag}: {detail}")


class PathContractError(RepoError):
    """projects 目录或本地目录名不满足布局约定"""

    code = "PATH_CONTRACT_ERROR"
    step = "path"


class CloneError(RepoError):
    code = "CLONE_ERROR"
    step = "clone"


class UpdateError(RepoError):
    """fetch 失败或本地历史已分叉"""

    code = "UPDATE_ERROR"
    step = "update"


class CheckoutError(RepoError):
    code = "CHECKOUT_ERROR"
    step = "checkout"


class SubmoduleError(RepoError):
    """子模块更新失败，顶层 checkout 保留在磁盘上"""

    code = "SUBMODULE_ERROR"
    step = "submodule"


class IdentityError(RepoError):
    code = "IDENTITY_ERROR"
    step = "identity"


class CredentialError(RepoError):
    """需要认证但无法取得凭据（无回调 / 用户拒绝 / 凭据被拒）"""

    code = "CREDENTIAL_ERROR"
    step = "credentials"
