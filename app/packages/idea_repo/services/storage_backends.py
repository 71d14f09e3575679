"""存储后端抽象与本地实现：为仓库服务提供最基础的文件系统原语。

后端只负责"在根目录之内"完成读写，原样抛出 ``OSError``；
错误分类与回滚策略由上层 ``IdeaRepositoryService`` 决定。
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Iterator

from app.packages.idea_repo.core.constants import DEFAULT_MIME_TYPE, MIME_TYPES
from app.packages.idea_repo.core.exceptions import (
    RepositoryForbiddenError,
    RepositoryInternalError,
)
from app.packages.idea_repo.core.logger import logger
from app.packages.idea_repo.core.timezone import get_timezone


def guess_content_type(name: str) -> str:
    return MIME_TYPES.get(Path(name).suffix.lower(), DEFAULT_MIME_TYPE)


@dataclass
class EntryStat:
    is_dir: bool
    size: int
    modified: datetime


class StorageBackend:
    """存储后端接口。路径参数均为相对根目录、以 '/' 分隔的字符串。"""

    def resolve(self, rel: str, *, base: str = "") -> Path:
        raise NotImplementedError

    def exists(self, rel: str) -> bool:
        raise NotImplementedError

    def is_dir(self, rel: str) -> bool:
        raise NotImplementedError

    def is_file(self, rel: str) -> bool:
        raise NotImplementedError

    def has_symlink(self, rel: str) -> bool:
        raise NotImplementedError

    def ensure_dir(self, rel: str) -> None:
        raise NotImplementedError

    def read_text(self, rel: str) -> str:
        raise NotImplementedError

    def write_text(self, rel: str, content: str) -> None:
        raise NotImplementedError

    def remove(self, rel: str) -> None:
        raise NotImplementedError

    def stat(self, rel: str) -> EntryStat:
        raise NotImplementedError

    def iterdir(self, rel: str) -> Iterator[str]:
        raise NotImplementedError


# ------------------------------------------
# 本地文件系统实现
# ------------------------------------------


class LocalBackend(StorageBackend):
    def __init__(self, root: str | os.PathLike[str]):
        self.root = Path(root).resolve()
        if not self.root.exists():
            try:
                self.root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise RepositoryInternalError(f"无法创建存储根目录: {exc}") from exc
            logger.info("Created storage root at %s", self.root)

    # 统一的安全路径拼接：解析为绝对路径（跟随符号链接）后校验前缀包含关系
    def resolve(self, rel: str, *, base: str = "") -> Path:
        anchor = (self.root / base).resolve() if base else self.root
        candidate = (anchor / rel.lstrip("/")).resolve() if rel else anchor
        for boundary in (self.root, anchor):
            try:
                candidate.relative_to(boundary)
            except ValueError as exc:
                raise RepositoryForbiddenError("非法路径: 越权访问") from exc
        return candidate

    def exists(self, rel: str) -> bool:
        return self.resolve(rel).exists()

    def is_dir(self, rel: str) -> bool:
        return self.resolve(rel).is_dir()

    def is_file(self, rel: str) -> bool:
        return self.resolve(rel).is_file()

    def has_symlink(self, rel: str) -> bool:
        """不跟随链接，逐级检查 ``rel`` 及其各级父目录中是否有符号链接。"""
        current = self.root
        for part in PurePosixPath(rel).parts:
            current = current / part
            if current.is_symlink():
                return True
        return False

    def ensure_dir(self, rel: str) -> None:
        self.resolve(rel).mkdir(parents=True, exist_ok=True)

    def read_text(self, rel: str) -> str:
        # newline="" 关闭换行符转换，保证读写字节一致
        with open(self.resolve(rel), "r", encoding="utf-8", newline="") as f:
            return f.read()

    def write_text(self, rel: str, content: str) -> None:
        with open(self.resolve(rel), "w", encoding="utf-8", newline="") as f:
            f.write(content)

    def remove(self, rel: str) -> None:
        target = self.resolve(rel)
        if target.is_dir():
            shutil.rmtree(target)
        else:
            target.unlink()

    def stat(self, rel: str) -> EntryStat:
        target = self.resolve(rel)
        st = target.stat()
        return EntryStat(
            is_dir=target.is_dir(),
            size=int(st.st_size),
            modified=datetime.fromtimestamp(st.st_mtime, tz=get_timezone()),
        )

    def iterdir(self, rel: str) -> Iterator[str]:
        """返回目录下的直接子项名称，跳过符号链接。"""
        with os.scandir(self.resolve(rel)) as entries:
            names = [entry.name for entry in entries if not entry.is_symlink()]
        return iter(names)
