"""想法仓库文件路由：列表、读取、写入、删除与树形展开。

查询类接口只做参数转发；变更类接口额外输出一条操作日志。
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from app.packages.idea_repo.api.v1.schemas.files import (
    FileContentResponse,
    FileCreateBody,
    FilesListResponse,
    FilesMutationResponse,
    FileUpdateBody,
)
from app.packages.idea_repo.core.constants import HTTP_STATUS_CREATED
from app.packages.idea_repo.core.dependencies import get_repository_service
from app.packages.idea_repo.core.logger import logger
from app.packages.idea_repo.core.responses import create_response
from app.packages.idea_repo.services.repository_service import IdeaRepositoryService
from app.packages.idea_repo.services.tree_builder import DEFAULT_MAX_DEPTH, build_tree, count_nodes

router = APIRouter(prefix="/ideas/{idea_id}", tags=["files"])


@router.get("/files", response_model=FilesListResponse)
def list_files(
    idea_id: str,
    path: Optional[str] = Query("", description="仓库内的目录路径，默认根目录"),
    service: IdeaRepositoryService = Depends(get_repository_service),
):
    nodes = service.list_files(idea_id, path)
    return create_response(
        "获取文件列表成功",
        {"ideaId": idea_id, "path": path or "/", "files": [n.to_dict() for n in nodes]},
    )


@router.get("/tree", response_model=FilesListResponse)
def get_file_tree(
    idea_id: str,
    path: Optional[str] = Query(""),
    max_depth: int = Query(DEFAULT_MAX_DEPTH, alias="maxDepth", ge=1, le=20),
    service: IdeaRepositoryService = Depends(get_repository_service),
):
    """逐层调用单层列表接口，组装出多层文件树。"""
    tree = build_tree(lambda p: service.list_files(idea_id, p), path or "", max_depth)
    return create_response(
        "获取文件树成功",
        {"ideaId": idea_id, "path": path or "/", "tree": [n.to_dict() for n in tree], "stats": count_nodes(tree)},
    )


@router.get("/files/content", response_model=FileContentResponse)
def get_file(
    idea_id: str,
    path: str = Query(..., min_length=1),
    service: IdeaRepositoryService = Depends(get_repository_service),
):
    content = service.get_file_content(idea_id, path)
    return create_response("获取文件内容成功", {"ideaId": idea_id, "filePath": path, "content": content})


@router.put("/files/content", response_model=FilesMutationResponse)
def update_file(
    idea_id: str,
    payload: FileUpdateBody,
    path: str = Query(..., min_length=1),
    service: IdeaRepositoryService = Depends(get_repository_service),
):
    node = service.update_file(idea_id, path, payload.content)
    logger.info("files.update idea_id=%s path=%s size=%s", idea_id, node.path, node.size)
    return create_response("文件更新成功", {"ideaId": idea_id, "file": node.to_dict()})


@router.post("/files", response_model=FilesMutationResponse, status_code=status.HTTP_201_CREATED)
def create_file(
    idea_id: str,
    payload: FileCreateBody,
    service: IdeaRepositoryService = Depends(get_repository_service),
):
    node = service.update_file(idea_id, payload.path, payload.content)
    logger.info("files.create idea_id=%s path=%s size=%s", idea_id, node.path, node.size)
    return create_response("文件创建成功", {"ideaId": idea_id, "file": node.to_dict()}, HTTP_STATUS_CREATED)


@router.delete("/files", response_model=FilesMutationResponse)
def delete_file(
    idea_id: str,
    path: str = Query(..., min_length=1),
    service: IdeaRepositoryService = Depends(get_repository_service),
):
    service.delete_file(idea_id, path)
    logger.info("files.delete idea_id=%s path=%s", idea_id, path)
    return create_response("文件删除成功", {"ideaId": idea_id, "filePath": path})
