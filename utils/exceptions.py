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


class NotFound(BizError):
    """附件元数据记录不存在."""

    def __init__(self, message: str = "附件不存在", data: Any = None):
        super().__init__(message, 404, data)


class StoreUnavailable(BizError):
    """对象存储调用失败（网络、权限、对象缺失）."""

    def __init__(self, message: str = "对象存储不可用", data: Any = None):
        super().__init__(message, 502, data)


class PersistenceFailure(BizError):
    """元数据库调用失败."""

    def __init__(self, message: str = "附件元数据持久化失败", data: Any = None):
        super().__init__(message, 500, data)
