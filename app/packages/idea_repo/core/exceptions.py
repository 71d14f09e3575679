"""异常处理模块：定义统一的业务异常、仓库错误分类与响应格式。"""

from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from app.packages.idea_repo.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_INTERNAL_SERVER_ERROR,
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_PAYLOAD_TOO_LARGE,
)
from app.packages.idea_repo.core.logger import logger


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    def __init__(self, msg: str, code: int = HTTP_STATUS_BAD_REQUEST, data: Any = None) -> None:
        super().__init__(status_code=code, detail=msg)
        self.data = data


class RepositoryError(AppException):
    """仓库文件系统服务对外抛出的全部错误的基类。

    ``kind`` 对应错误分类（Conflict/NotFound/Forbidden/TooLarge/Internal/Validation），
    每个子类固定一个 HTTP 状态码，调用方无需再做映射。
    """

    kind = "Internal"
    default_code = HTTP_STATUS_INTERNAL_SERVER_ERROR

    def __init__(self, msg: str, data: Any = None) -> None:
        super().__init__(msg, self.default_code, data)


class RepositoryConflictError(RepositoryError):
    kind = "Conflict"
    default_code = HTTP_STATUS_CONFLICT


class RepositoryNotFoundError(RepositoryError):
    kind = "NotFound"
    default_code = HTTP_STATUS_NOT_FOUND


class RepositoryForbiddenError(RepositoryError):
    kind = "Forbidden"
    default_code = HTTP_STATUS_BAD_REQUEST


class PayloadTooLargeError(RepositoryError):
    kind = "TooLarge"
    default_code = HTTP_STATUS_PAYLOAD_TOO_LARGE


class RepositoryInternalError(RepositoryError):
    kind = "Internal"
    default_code = HTTP_STATUS_INTERNAL_SERVER_ERROR


class RepositoryValidationError(RepositoryError):
    kind = "Validation"
    default_code = HTTP_STATUS_BAD_REQUEST


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 FastAPI 的 ``HTTPException`` 转换为统一响应格式。"""
    payload = {"msg": exc.detail, "data": getattr(exc, "data", None), "code": exc.status_code}
    return JSONResponse(status_code=exc.status_code, content=payload)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常转换为标准的 500 响应结构。"""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    payload = {
        "msg": "服务器内部错误",
        "data": None,
        "code": HTTP_STATUS_INTERNAL_SERVER_ERROR,
    }
    return JSONResponse(status_code=HTTP_STATUS_INTERNAL_SERVER_ERROR, content=payload)
