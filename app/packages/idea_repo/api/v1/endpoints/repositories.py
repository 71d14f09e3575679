"""想法仓库生命周期路由：创建、概况、删除与想法文档同步。"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.packages.idea_repo.api.v1.schemas.files import (
    IdeaSyncBody,
    RepositoryCreateBody,
    RepositoryResponse,
)
from app.packages.idea_repo.core.constants import HTTP_STATUS_CREATED
from app.packages.idea_repo.core.dependencies import get_lifecycle_service, get_repository_service
from app.packages.idea_repo.core.exceptions import RepositoryNotFoundError
from app.packages.idea_repo.core.logger import logger
from app.packages.idea_repo.core.responses import create_response
from app.packages.idea_repo.services.lifecycle_service import IdeaLifecycleService
from app.packages.idea_repo.services.repository_service import IdeaRepositoryService

router = APIRouter(prefix="/ideas/{idea_id}/repository", tags=["repositories"])


@router.post("", response_model=RepositoryResponse, status_code=status.HTTP_201_CREATED)
def create_repository(
    idea_id: str,
    payload: RepositoryCreateBody,
    service: IdeaRepositoryService = Depends(get_repository_service),
):
    """按模板为想法创建仓库。"""
    meta = service.create_repository(idea_id, payload.template)
    logger.info("repository.create idea_id=%s template=%s", idea_id, meta["template"])
    return create_response(
        f"已使用 {meta['template']} 模板创建仓库",
        {"ideaId": idea_id, "template": meta["template"], "meta": meta},
        HTTP_STATUS_CREATED,
    )


@router.get("", response_model=RepositoryResponse)
def get_repository_info(
    idea_id: str,
    lifecycle: IdeaLifecycleService = Depends(get_lifecycle_service),
):
    """返回仓库概况：元数据、根目录结构与统计信息。"""
    overview = lifecycle.get_overview(idea_id)
    if not overview["hasRepository"]:
        raise RepositoryNotFoundError("仓库不存在", data={"ideaId": idea_id})
    return create_response("获取仓库信息成功", {"ideaId": idea_id, **overview})


@router.delete("", response_model=RepositoryResponse)
def delete_repository(
    idea_id: str,
    service: IdeaRepositoryService = Depends(get_repository_service),
):
    """删除整个仓库；仓库不存在时同样返回成功。"""
    removed = service.delete_repository(idea_id)
    return create_response("仓库删除成功", {"ideaId": idea_id, "removed": removed})


@router.post("/sync", response_model=RepositoryResponse)
def sync_repository(
    idea_id: str,
    payload: IdeaSyncBody,
    lifecycle: IdeaLifecycleService = Depends(get_lifecycle_service),
):
    """用最新的想法数据重写 idea.md 与 search.md。"""
    synced = lifecycle.sync_idea_documents(idea_id, payload.to_snapshot())
    if not synced and not lifecycle.repositories.repository_exists(idea_id):
        raise RepositoryNotFoundError("仓库不存在", data={"ideaId": idea_id})
    return create_response("想法文档同步完成" if synced else "想法文档同步失败", {"ideaId": idea_id, "synced": synced})
