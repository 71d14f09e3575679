"""想法生命周期钩子：供领域 API 在想法创建/删除时调用，并同步想法文档。"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.packages.idea_repo.core.constants import DEFAULT_TEMPLATE, META_DIR
from app.packages.idea_repo.core.exceptions import RepositoryError
from app.packages.idea_repo.core.logger import logger
from app.packages.idea_repo.core.timezone import isoformat, now
from app.packages.idea_repo.services.repository_service import IdeaRepositoryService

_STOP_WORDS = {"this", "that", "with", "from", "they", "have", "will", "been", "were"}
_NON_WORD = re.compile(r"[^\w\s]")
MAX_KEYWORDS = 10


@dataclass
class IdeaSnapshot:
    """领域 API 传入的想法数据快照，只包含生成文档所需字段。"""

    title: str
    description: str = ""
    domain: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    implementation_status: str = "idea"
    visibility: str = "public"
    upvotes: int = 0
    comment_count: int = 0
    view_count: int = 0
    github_repo: Optional[str] = None
    live_demo: Optional[str] = None


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> List[str]:
    """简单关键词提取：小写、去标点、长度大于 3、去停用词，按首次出现去重。"""
    words = _NON_WORD.sub(" ", (text or "").lower()).split()
    seen: Dict[str, None] = {}
    for word in words:
        if len(word) > 3 and word not in _STOP_WORDS:
            seen.setdefault(word, None)
    return list(seen)[:limit]


def render_idea_markdown(idea: IdeaSnapshot) -> str:
    details = []
    if idea.github_repo:
        details.append(f"- GitHub Repository: {idea.github_repo}")
    if idea.live_demo:
        details.append(f"- Live Demo: {idea.live_demo}")
    return (
        f"# {idea.title}\n\n"
        f"## Overview\n{idea.description}\n\n"
        f"## Domain\n{', '.join(idea.domain)}\n\n"
        f"## Tags\n{', '.join(idea.tags)}\n\n"
        f"## Status\n{idea.implementation_status}\n\n"
        "## Statistics\n"
        f"- Upvotes: {idea.upvotes}\n"
        f"- Comments: {idea.comment_count}\n"
        f"- Views: {idea.view_count}\n\n"
        f"## Implementation Details\n{chr(10).join(details)}\n\n"
        "---\n"
        "*Auto-generated from idea data*\n"
        f"*Last updated: {isoformat(now())}*\n"
    )


def render_search_markdown(idea: IdeaSnapshot) -> str:
    def bullets(items: List[str]) -> str:
        return "\n".join(f"- {item}" for item in items)

    keywords = extract_keywords(f"{idea.title} {idea.description}")
    return (
        "# Search Keywords\n\n"
        "*This file is automatically updated based on idea content and user interactions.*\n\n"
        f"## Primary Keywords\n{bullets(idea.tags)}\n\n"
        f"## Domain Keywords\n{bullets(idea.domain)}\n\n"
        "## Content Keywords\n"
        "*Extracted from idea title and description*\n"
        f"{bullets(keywords)}\n\n"
        "## Status\n"
        f"- Implementation Status: {idea.implementation_status}\n"
        f"- Visibility: {idea.visibility}\n\n"
        "---\n"
        f"*Last updated: {isoformat(now())}*\n"
    )


class IdeaLifecycleService:
    """把想法的生命周期事件翻译为仓库操作。"""

    def __init__(self, repositories: IdeaRepositoryService) -> None:
        self.repositories = repositories

    def on_idea_created(
        self,
        idea_id: str,
        *,
        template: Optional[str] = None,
        auto_create: bool = False,
        idea: Optional[IdeaSnapshot] = None,
    ) -> bool:
        """想法创建后按需自动建仓；失败不影响想法本身，只记录日志。"""
        if not auto_create:
            return False
        try:
            self.repositories.create_repository(idea_id, template or DEFAULT_TEMPLATE)
        except RepositoryError as exc:
            logger.warning("Failed to auto-create repository for idea %s: %s", idea_id, exc.detail)
            return False
        if idea is not None:
            self.sync_idea_documents(idea_id, idea)
        return True

    def on_idea_deleted(self, idea_id: str) -> bool:
        return self.repositories.delete_repository(idea_id)

    def ensure_repository(self, idea_id: str, template: Optional[str] = None) -> Dict[str, Any]:
        """仓库不存在时按需创建，返回元数据；并发调用得到同一份元数据。"""
        return self.repositories.ensure_repository(idea_id, template or DEFAULT_TEMPLATE)

    def sync_idea_documents(self, idea_id: str, idea: IdeaSnapshot) -> bool:
        """用想法数据重写 idea.md 与 search.md；仓库不存在时跳过。"""
        if not self.repositories.repository_exists(idea_id):
            return False
        try:
            self.repositories.update_file(idea_id, f"{META_DIR}/idea.md", render_idea_markdown(idea))
            self.repositories.update_file(idea_id, f"{META_DIR}/search.md", render_search_markdown(idea))
        except RepositoryError as exc:
            logger.warning("Failed to sync idea %s with repository: %s", idea_id, exc.detail)
            return False
        return True

    def get_overview(self, idea_id: str) -> Dict[str, Any]:
        """汇总仓库概况：元数据、根目录结构与 meta/ 下文件统计。"""
        if not self.repositories.repository_exists(idea_id):
            return {"hasRepository": False}

        structure = self.repositories.list_files(idea_id)
        meta_files = [n for n in self.repositories.list_files(idea_id, META_DIR) if not n.is_dir]
        try:
            meta: Optional[Dict[str, Any]] = self.repositories.read_metadata(idea_id)
        except RepositoryError:
            logger.warning("Repository %s has unreadable metadata", idea_id)
            meta = None

        return {
            "hasRepository": True,
            "template": (meta or {}).get("template"),
            "meta": meta,
            "stats": {
                "totalFiles": sum(1 for n in structure if not n.is_dir),
                "totalDirectories": sum(1 for n in structure if n.is_dir),
                "metaFileCount": len(meta_files),
                "metaTotalSize": sum(n.size or 0 for n in meta_files),
            },
            "structure": [n.to_dict() for n in structure],
        }
