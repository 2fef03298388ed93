"""Client 异常体系

与服务端错误分类一一对应：
- 400 / 422      -> ApiValidationError
- 401            -> ApiUnauthorizedError（触发全局登出）
- 404            -> ApiNotFoundError
- 409            -> ApiConflictError
- 5xx / 连接失败 / 超时 -> ApiUnavailableError（可由用户重试）
"""


class ApiError(Exception):
    """Client 包基础异常"""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        recoverable: bool = False,
    ) -> None:
        """
        Args:
            message: 错误描述（服务端返回的 message 或本地生成）
            status_code: HTTP 状态码，网络层失败时为 None
            code: 服务端错误码（如 TASK_NOT_FOUND）
            recoverable: 是否可通过用户重试恢复
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.recoverable = recoverable


class ApiValidationError(ApiError):
    """请求参数不合法"""


class ApiUnauthorizedError(ApiError):
    """token 缺失/失效或登录凭证错误"""


class ApiNotFoundError(ApiError):
    """任务不存在或不属于当前用户"""


class ApiConflictError(ApiError):
    """邮箱已被注册"""


class ApiUnavailableError(ApiError):
    """服务端不可用（5xx、连接失败、超时）"""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, code=code, recoverable=True)
        self.original_error = original_error
