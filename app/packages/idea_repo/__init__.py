"""想法仓库业务包：为每个想法维护文件系统仓库并暴露文件操作接口。"""

from app.packages.types import AppPackage

from .api.v1 import api_router
from .core.config import get_settings
from .core.dependencies import get_repository_service
from .core.exceptions import generic_exception_handler, http_exception_handler
from .core.logger import logger, setup_logging
from .core.responses import create_response


def init_storage() -> None:
    """启动时构建仓库服务，确保存储根目录存在。"""
    service = get_repository_service()
    logger.info("Idea repositories stored under %s", service.backend.root)


package = AppPackage(
    name="idea_repo",
    api_router=api_router,
    get_settings=get_settings,
    setup_logging=setup_logging,
    logger=logger,
    init_storage=init_storage,
    create_response=create_response,
    http_exception_handler=http_exception_handler,
    generic_exception_handler=generic_exception_handler,
)

__all__ = ["package", "api_router", "get_settings"]
