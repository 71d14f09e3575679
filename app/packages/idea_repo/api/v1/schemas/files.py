"""想法仓库 - 文件/仓库操作请求/响应模型。"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.packages.idea_repo.api.v1.schemas.common import ResponseEnvelope
from app.packages.idea_repo.core.constants import DEFAULT_TEMPLATE
from app.packages.idea_repo.services.lifecycle_service import IdeaSnapshot


class RepositoryCreateBody(BaseModel):
    template: Optional[str] = DEFAULT_TEMPLATE  # basic / research / technical


class FileCreateBody(BaseModel):
    path: str = Field(..., min_length=1, max_length=200)
    content: str


class FileUpdateBody(BaseModel):
    content: str


class IdeaSyncBody(BaseModel):
    """领域 API 推送的想法数据，用于重写 idea.md / search.md。"""

    title: str = Field(..., min_length=1)
    description: str = ""
    domain: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    implementationStatus: str = "idea"
    visibility: str = "public"
    upvotes: int = 0
    commentCount: int = 0
    viewCount: int = 0
    githubRepo: Optional[str] = None
    liveDemo: Optional[str] = None

    def to_snapshot(self) -> IdeaSnapshot:
        return IdeaSnapshot(
            title=self.title,
            description=self.description,
            domain=list(self.domain),
            tags=list(self.tags),
            implementation_status=self.implementationStatus,
            visibility=self.visibility,
            upvotes=self.upvotes,
            comment_count=self.commentCount,
            view_count=self.viewCount,
            github_repo=self.githubRepo,
            live_demo=self.liveDemo,
        )


FilesListResponse = ResponseEnvelope[dict]
FileContentResponse = ResponseEnvelope[dict]
FilesMutationResponse = ResponseEnvelope[Any]
RepositoryResponse = ResponseEnvelope[dict]
