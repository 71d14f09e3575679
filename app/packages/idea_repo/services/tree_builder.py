"""文件树组装：基于单层列举原语按需展开为多层树。

``IdeaRepositoryService.list_files`` 只列一层；完整的树由这里逐目录调用组装，
超过深度限制的目录返回空的 ``children`` 并标记 ``truncated``。
"""

from __future__ import annotations

from typing import Callable, List

from app.packages.idea_repo.services.repository_service import FileTreeNode

ListChildren = Callable[[str], List[FileTreeNode]]

DEFAULT_MAX_DEPTH = 5


def build_tree(list_children: ListChildren, path: str = "", max_depth: int = DEFAULT_MAX_DEPTH) -> List[FileTreeNode]:
    """返回 ``path`` 下的子树；``max_depth`` 为展开的层数（1 表示只列当前目录）。"""
    nodes = list_children(path)
    for node in nodes:
        if not node.is_dir:
            continue
        if max_depth <= 1:
            node.children = []
            node.truncated = True
        else:
            node.children = build_tree(list_children, node.path, max_depth - 1)
    return nodes


def count_nodes(nodes: List[FileTreeNode]) -> dict:
    """统计树中的文件数、目录数与文件总字节数。"""
    stats = {"files": 0, "directories": 0, "totalSize": 0}
    for node in nodes:
        if node.is_dir:
            stats["directories"] += 1
            child_stats = count_nodes(node.children or [])
            for key, value in child_stats.items():
                stats[key] += value
        else:
            stats["files"] += 1
            stats["totalSize"] += node.size or 0
    return stats
