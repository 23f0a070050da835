"""异常处理模块：定义统一的业务异常、目录树错误分类与响应格式。"""

from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.packages.wiki.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_INTERNAL_SERVER_ERROR,
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_UNPROCESSABLE_ENTITY,
)
from app.packages.wiki.core.logger import logger


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    def __init__(self, msg: str, code: int = status.HTTP_400_BAD_REQUEST, data: Any = None) -> None:
        super().__init__(status_code=code, detail=msg)
        self.data = data

    @property
    def msg(self) -> str:
        return str(self.detail)

    def __str__(self) -> str:
        return self.msg


class NotFoundError(AppException):
    """引用的目录（源目录、目标父目录或被检查目录）不存在。"""

    def __init__(self, msg: str = "目录不存在", data: Any = None) -> None:
        super().__init__(msg, HTTP_STATUS_NOT_FOUND, data)


class ConflictError(AppException):
    """目标路径已被其它目录占用。"""

    def __init__(self, msg: str = "目标位置已存在同名目录", data: Any = None) -> None:
        super().__init__(msg, HTTP_STATUS_CONFLICT, data)


class CycleError(AppException):
    """移动/复制会使目录成为自身的祖先。"""

    def __init__(self, msg: str = "不能将目录移动到其子目录下", data: Any = None) -> None:
        super().__init__(msg, HTTP_STATUS_BAD_REQUEST, data)


class NotEmptyError(AppException):
    """非级联删除的目录仍包含子目录或文档。"""

    def __init__(self, msg: str = "目录不为空，无法删除", data: Any = None) -> None:
        super().__init__(msg, HTTP_STATUS_BAD_REQUEST, data)


class ValidationError(AppException):
    """目录名称、描述或排序值不合法。"""

    def __init__(self, msg: str, data: Any = None) -> None:
        super().__init__(msg, HTTP_STATUS_UNPROCESSABLE_ENTITY, data)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 FastAPI 的 ``HTTPException`` 转换为统一响应格式。"""
    payload = {"msg": exc.detail, "data": getattr(exc, "data", None), "code": exc.status_code}
    return JSONResponse(status_code=exc.status_code, content=payload)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：记录堆栈并将未捕获异常转换为标准的 500 响应结构。"""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    payload = {
        "msg": "服务器内部错误",
        "data": None,
        "code": HTTP_STATUS_INTERNAL_SERVER_ERROR,
    }
    return JSONResponse(status_code=HTTP_STATUS_INTERNAL_SERVER_ERROR, content=payload)
