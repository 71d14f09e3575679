"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from functools import lru_cache

from fastapi import Depends

from app.packages.idea_repo.core.config import get_settings
from app.packages.idea_repo.services.lifecycle_service import IdeaLifecycleService
from app.packages.idea_repo.services.repository_service import IdeaRepositoryService
from app.packages.idea_repo.services.storage_backends import LocalBackend


@lru_cache
def get_repository_service() -> IdeaRepositoryService:
    """按配置构建进程内唯一的仓库服务实例；首次调用时创建存储根目录。"""
    settings = get_settings()
    return IdeaRepositoryService(
        LocalBackend(settings.storage_directory),
        max_file_size=settings.max_file_size,
        allowed_extensions=settings.allowed_extensions,
        strict_templates=settings.strict_templates,
    )


def get_lifecycle_service(
    service: IdeaRepositoryService = Depends(get_repository_service),
) -> IdeaLifecycleService:
    return IdeaLifecycleService(service)
