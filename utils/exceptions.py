# utils/exceptions.py
from typing import Any, Optional
from werkzeug.exceptions import HTTPException


class BizError(HTTPException):
    code: int  # HTTP 状态码
    message: str  # 业务提示
    data: Optional[Any]  # 附加数据

    def __init__(self, message: str = "业务异常", code: int = 400, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(description=message)


class ForumError(BizError):
    """
    论坛业务异常基类：
      - code: HTTP 状态码
      - error_code: 机器可读的错误标识，前端据此做分支处理
    """
    default_code = 400
    default_error_code = "forum_error"
    default_message = "论坛操作失败"

    def __init__(self, error_code: Optional[str] = None, message: Optional[str] = None, data: Any = None):
        self.error_code = error_code or self.default_error_code
        payload = {"error_code": self.error_code}
        if data:
            payload.update(data)
        super().__init__(message or self.default_message, self.default_code, payload)


class NotFound(ForumError):
    default_code = 404
    default_error_code = "not_found"
    default_message = "资源不存在"


class InsufficientPermissions(ForumError):
    default_code = 403
    default_error_code = "insufficient_permissions"
    default_message = "权限不足"


class ThreadLocked(ForumError):
    default_code = 400
    default_error_code = "thread_locked"
    default_message = "主题已锁定，无法回复"


class ValidationError(ForumError):
    default_code = 400
    default_error_code = "validation_failed"
    default_message = "参数校验失败"


class PersistenceFailure(ForumError):
    """存储层调用失败。只携带通用错误码，不向调用方暴露底层异常信息。"""
    default_code = 500
    default_error_code = "persistence_failure"
    default_message = "服务器内部错误"
