"""ZigTask 异常体系

服务端统一错误分类，由 gateway 的异常处理器映射为 HTTP 状态码：
- ValidationError       -> 400
- UnauthorizedError     -> 401
- NotFoundError         -> 404（任务不存在与非本人任务不做区分）
- ConflictError         -> 409
- StoreUnavailableError -> 503（可重试）
"""


class ZigTaskError(Exception):
    """ZigTask 基础异常"""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, recoverable: bool = False) -> None:
        """
        Args:
            message: 错误描述（会返回给调用方，不要包含内部细节）
            recoverable: 是否可通过用户重试恢复
        """
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class ValidationError(ZigTaskError):
    """输入不合法：缺少必填字段、枚举值非法等"""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(ZigTaskError):
    """任务不存在或不属于当前用户

    两种情况刻意合并，避免泄露任务是否存在。
    """

    status_code = 404
    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with id {task_id} does not exist")
        self.task_id = task_id


class ConflictError(ZigTaskError):
    """唯一性冲突（注册时邮箱已被占用）"""

    status_code = 409
    code = "EMAIL_TAKEN"


class UnauthorizedError(ZigTaskError):
    """缺少或无效的 token、错误的登录凭证"""

    status_code = 401
    code = "UNAUTHORIZED"


class StoreUnavailableError(ZigTaskError):
    """存储暂不可用（数据库锁定、连接失败等）"""

    status_code = 503
    code = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, original_error: Exception) -> None:
        """
        Args:
            operation: 失败的存储操作名
            original_error: 原始异常
        """
        super().__init__(
            f"Task store unavailable during {operation}",
            recoverable=True,
        )
        self.operation = operation
        self.original_error = original_error
