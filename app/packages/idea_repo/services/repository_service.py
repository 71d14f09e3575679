"""想法仓库服务：为每个想法维护一个固定结构的目录树，并提供安全的增删改查。

目录结构（``<root>/<idea_id>/``）::

    meta/         必需文档 + meta.json 元数据
    docs/ media/ data/ analysis/ discussions/ versions/

对外只抛出 ``RepositoryError`` 子类；底层 ``OSError`` 一律在此转换。
同一 ``idea_id`` 上的写操作（创建/更新/删除）通过 ``KeyedLock`` 串行化。
"""

from __future__ import annotations

import json
import posixpath
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Dict, Iterable, List, Optional

from app.packages.idea_repo.core.constants import (
    DEFAULT_ALLOWED_EXTENSIONS,
    DEFAULT_MAX_FILE_SIZE,
    DEFAULT_TEMPLATE,
    META_DIR,
    META_FILE,
    META_FORMAT_VERSION,
    SKELETON_DIRS,
)
from app.packages.idea_repo.core.exceptions import (
    PayloadTooLargeError,
    RepositoryConflictError,
    RepositoryError,
    RepositoryForbiddenError,
    RepositoryInternalError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)
from app.packages.idea_repo.core.logger import logger
from app.packages.idea_repo.core.timezone import isoformat, next_after, now
from app.packages.idea_repo.services.storage_backends import StorageBackend, guess_content_type
from app.packages.idea_repo.services.templates import TEMPLATES, RepositoryTemplate
from app.packages.idea_repo.utils.locks import KeyedLock
from app.packages.idea_repo.utils.path_utils import is_within, sanitize_relative_path

_IDEA_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

META_RECORD = f"{META_DIR}/{META_FILE}"


@dataclass
class FileTreeNode:
    name: str
    path: str
    type: str  # "file" | "directory"
    size: Optional[int] = None
    mime_type: Optional[str] = None
    last_modified: Optional[str] = None
    children: Optional[List["FileTreeNode"]] = None
    truncated: bool = False

    @property
    def is_dir(self) -> bool:
        return self.type == "directory"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "path": self.path, "type": self.type}
        if not self.is_dir:
            data["size"] = self.size
            data["mimeType"] = self.mime_type
            data["lastModified"] = self.last_modified
        if self.children is not None:
            data["children"] = [child.to_dict() for child in self.children]
        if self.truncated:
            data["truncated"] = True
        return data


def sort_nodes(nodes: Iterable[FileTreeNode]) -> List[FileTreeNode]:
    """目录在前、文件在后；同类按名称区分大小写排序。"""
    return sorted(nodes, key=lambda n: (not n.is_dir, n.name))


class IdeaRepositoryService:
    def __init__(
        self,
        backend: StorageBackend,
        *,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        allowed_extensions: Iterable[str] = DEFAULT_ALLOWED_EXTENSIONS,
        strict_templates: bool = False,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        self.backend = backend
        self.max_file_size = max_file_size
        self.allowed_extensions = frozenset(ext.lower() for ext in allowed_extensions)
        self.strict_templates = strict_templates
        self._locks = locks or KeyedLock()

    # ----------------------------
    # 仓库生命周期
    # ----------------------------
    def create_repository(self, idea_id: str, template: Optional[str] = DEFAULT_TEMPLATE) -> Dict[str, Any]:
        """按模板创建仓库骨架、必需文档与元数据，任一步失败则整体回滚。"""
        idea_id = self._validate_idea_id(idea_id)
        kind = self._resolve_template_kind(template)

        with self._locks.hold(idea_id):
            if self._exists(idea_id):
                raise RepositoryConflictError("仓库已存在", data={"ideaId": idea_id})
            return self._provision(idea_id, kind)

    def ensure_repository(self, idea_id: str, template: Optional[str] = DEFAULT_TEMPLATE) -> Dict[str, Any]:
        """仓库已存在时返回其元数据，否则按模板创建；检查与创建在同一把锁内完成。"""
        idea_id = self._validate_idea_id(idea_id)
        kind = self._resolve_template_kind(template)

        with self._locks.hold(idea_id):
            if self._exists(idea_id):
                return self.read_metadata(idea_id)
            return self._provision(idea_id, kind)

    def delete_repository(self, idea_id: str) -> bool:
        """删除整个仓库；不存在时直接返回 ``False``（幂等）。"""
        idea_id = self._validate_idea_id(idea_id)
        with self._locks.hold(idea_id):
            try:
                if not self.backend.exists(idea_id):
                    return False
                self.backend.remove(idea_id)
            except OSError as exc:
                raise RepositoryInternalError("删除仓库失败") from exc
        logger.info("Deleted repository for idea %s", idea_id)
        return True

    def repository_exists(self, idea_id: str) -> bool:
        idea_id = self._validate_idea_id(idea_id)
        try:
            return self.backend.is_dir(idea_id)
        except OSError as exc:
            raise RepositoryInternalError("检查仓库状态失败") from exc

    def read_metadata(self, idea_id: str) -> Dict[str, Any]:
        """读取 meta.json；仓库存在但元数据缺失或损坏视为内部错误。"""
        idea_id = self._validate_idea_id(idea_id)
        self._require_repository(idea_id)
        try:
            meta = json.loads(self.backend.read_text(self._rel(idea_id, META_RECORD)))
        except FileNotFoundError as exc:
            raise RepositoryInternalError("仓库元数据缺失") from exc
        except (OSError, ValueError) as exc:
            raise RepositoryInternalError("仓库元数据读取失败") from exc
        if not isinstance(meta, dict):
            raise RepositoryInternalError("仓库元数据格式错误")
        return meta

    def required_paths(self, idea_id: str) -> List[str]:
        """返回仓库中不可删除的文件（相对路径），包含 meta.json。

        元数据不可读时无法确定模板，按所有模板的必需文件并集保护。
        """
        try:
            templates: Iterable[RepositoryTemplate] = [TEMPLATES[self._template_of(idea_id)]]
        except (RepositoryError, KeyError):
            logger.warning("Cannot determine template for idea %s, protecting all required files", idea_id)
            templates = TEMPLATES.values()
        paths = {f"{META_DIR}/{name}" for tpl in templates for name in tpl.required_names}
        paths.add(META_RECORD)
        return sorted(paths)

    # ----------------------------
    # 文件操作
    # ----------------------------
    def get_file_content(self, idea_id: str, path: str) -> str:
        idea_id = self._validate_idea_id(idea_id)
        self._require_repository(idea_id)
        target = self._sanitize(idea_id, path)
        rel = self._rel(idea_id, target)
        try:
            if not target or not self.backend.is_file(rel):
                raise RepositoryNotFoundError("文件不存在", data={"path": target})
            return self.backend.read_text(rel)
        except UnicodeDecodeError as exc:
            raise RepositoryInternalError("文件不是有效的 UTF-8 文本") from exc
        except OSError as exc:
            raise RepositoryInternalError("读取文件失败") from exc

    def update_file(self, idea_id: str, path: str, content: str) -> FileTreeNode:
        """写入（覆盖）文件内容，必要时创建中间目录；位于 meta/ 下时刷新元数据。"""
        idea_id = self._validate_idea_id(idea_id)
        try:
            size = len(content.encode("utf-8"))
        except UnicodeEncodeError as exc:
            raise RepositoryValidationError("文件内容不是有效的文本") from exc
        if size > self.max_file_size:
            raise PayloadTooLargeError(
                "文件大小超出限制",
                data={"size": size, "maxSize": self.max_file_size},
            )

        target = self._sanitize(idea_id, path)
        if not target:
            raise RepositoryForbiddenError("文件路径不能为空")
        if target == META_RECORD:
            raise RepositoryForbiddenError("元数据文件由系统维护，禁止直接修改")
        self._validate_extension(target)

        with self._locks.hold(idea_id):
            self._require_repository(idea_id)
            self._reject_symlink(idea_id, target)
            rel = self._rel(idea_id, target)
            try:
                if self.backend.is_dir(rel):
                    raise RepositoryForbiddenError("目标路径是文件夹", data={"path": target})
                parent = posixpath.dirname(target)
                if parent:
                    self.backend.ensure_dir(self._rel(idea_id, parent))
                self.backend.write_text(rel, content)
                st = self.backend.stat(rel)
            except OSError as exc:
                raise RepositoryInternalError("写入文件失败") from exc
            if is_within(target, META_DIR):
                self._refresh_metadata(idea_id)

        return FileTreeNode(
            name=PurePosixPath(target).name,
            path=target,
            type="file",
            size=st.size,
            mime_type=guess_content_type(target),
            last_modified=isoformat(st.modified),
        )

    def delete_file(self, idea_id: str, path: str) -> None:
        """删除文件或文件夹；必需文件、骨架目录与仓库根目录不可删除。"""
        idea_id = self._validate_idea_id(idea_id)
        target = self._sanitize(idea_id, path)

        with self._locks.hold(idea_id):
            self._require_repository(idea_id)
            if not target or target in SKELETON_DIRS:
                raise RepositoryForbiddenError("不能删除仓库的固定目录", data={"path": target})
            if target in self.required_paths(idea_id):
                raise RepositoryForbiddenError("不能删除必需文件", data={"path": target})
            self._reject_symlink(idea_id, target)

            rel = self._rel(idea_id, target)
            try:
                if not self.backend.exists(rel):
                    raise RepositoryNotFoundError("文件不存在", data={"path": target})
                self.backend.remove(rel)
            except OSError as exc:
                raise RepositoryInternalError("删除文件失败") from exc
            if is_within(target, META_DIR):
                self._refresh_metadata(idea_id)

    def list_files(self, idea_id: str, sub_path: Optional[str] = "") -> List[FileTreeNode]:
        """列出某个目录的直接子项（不递归），按"目录优先、名称区分大小写"排序。"""
        idea_id = self._validate_idea_id(idea_id)
        self._require_repository(idea_id)
        target = self._sanitize(idea_id, sub_path or "")
        rel = self._rel(idea_id, target)

        nodes: List[FileTreeNode] = []
        try:
            if not self.backend.is_dir(rel):
                raise RepositoryNotFoundError("路径不存在", data={"path": target})
            for name in self.backend.iterdir(rel):
                child = f"{target}/{name}" if target else name
                try:
                    st = self.backend.stat(self._rel(idea_id, child))
                except FileNotFoundError:
                    # 列举与读取属性之间被并发删除
                    continue
                if st.is_dir:
                    nodes.append(FileTreeNode(name=name, path=child, type="directory"))
                else:
                    nodes.append(
                        FileTreeNode(
                            name=name,
                            path=child,
                            type="file",
                            size=st.size,
                            mime_type=guess_content_type(name),
                            last_modified=isoformat(st.modified),
                        )
                    )
        except OSError as exc:
            raise RepositoryInternalError("读取目录失败") from exc
        return sort_nodes(nodes)

    # ----------------------------
    # 内部工具
    # ----------------------------
    @staticmethod
    def _validate_idea_id(idea_id: str) -> str:
        value = (idea_id or "").strip()
        if not _IDEA_ID_PATTERN.match(value):
            raise RepositoryValidationError("想法 ID 格式非法", data={"ideaId": idea_id})
        return value

    @staticmethod
    def _rel(idea_id: str, path: str = "") -> str:
        return f"{idea_id}/{path}" if path else idea_id

    def _sanitize(self, idea_id: str, path: Optional[str]) -> str:
        """清洗调用方路径，并在真实文件系统上校验解析结果仍位于仓库根目录内。"""
        raw = path or ""
        if "\x00" in raw:
            raise RepositoryValidationError("路径包含非法字符")
        target = sanitize_relative_path(raw)
        self.backend.resolve(target, base=idea_id)
        return target

    def _reject_symlink(self, idea_id: str, target: str) -> None:
        """写入与删除的目标路径（含各级父目录）不得是符号链接。"""
        try:
            linked = self.backend.has_symlink(self._rel(idea_id, target))
        except OSError as exc:
            raise RepositoryInternalError("检查路径失败") from exc
        if linked:
            raise RepositoryForbiddenError("路径经过符号链接，禁止修改", data={"path": target})

    def _require_repository(self, idea_id: str) -> None:
        try:
            exists = self.backend.is_dir(idea_id)
        except OSError as exc:
            raise RepositoryInternalError("检查仓库状态失败") from exc
        if not exists:
            raise RepositoryNotFoundError("仓库不存在", data={"ideaId": idea_id})

    def _resolve_template_kind(self, template: Optional[str]) -> str:
        key = (template or "").strip().lower()
        if not key:
            return DEFAULT_TEMPLATE
        if key in TEMPLATES:
            return key
        if self.strict_templates:
            raise RepositoryValidationError(
                "不支持的仓库模板",
                data={"template": template, "available": sorted(TEMPLATES)},
            )
        logger.warning("Unknown repository template %r, falling back to %s", template, DEFAULT_TEMPLATE)
        return DEFAULT_TEMPLATE

    def _template_of(self, idea_id: str) -> str:
        return str(self.read_metadata(idea_id).get("template"))

    def _validate_extension(self, target: str) -> None:
        ext = PurePosixPath(target).suffix.lower()
        if ext and self.allowed_extensions and ext not in self.allowed_extensions:
            raise RepositoryValidationError(
                f"不允许的文件类型: {ext}",
                data={"allowed": sorted(self.allowed_extensions)},
            )

    def _write_meta(self, idea_id: str, meta: Dict[str, Any]) -> None:
        self.backend.write_text(
            self._rel(idea_id, META_RECORD),
            json.dumps(meta, ensure_ascii=False, indent=2),
        )

    def _refresh_metadata(self, idea_id: str) -> None:
        """刷新 lastModified；元数据只是冗余信息，失败仅记录日志。调用方需持有仓库锁。"""
        try:
            meta = json.loads(self.backend.read_text(self._rel(idea_id, META_RECORD)))
            meta["lastModified"] = isoformat(next_after(meta.get("lastModified")))
            self._write_meta(idea_id, meta)
        except Exception:
            logger.warning("Failed to update meta for repository %s", idea_id, exc_info=True)

    def _exists(self, idea_id: str) -> bool:
        try:
            return self.backend.exists(idea_id)
        except OSError as exc:
            raise RepositoryInternalError("检查仓库状态失败") from exc

    def _provision(self, idea_id: str, kind: str) -> Dict[str, Any]:
        """写入骨架目录、必需文档与元数据，任一步失败则整体回滚。调用方需持有仓库锁。"""
        tpl = TEMPLATES[kind]
        try:
            for directory in SKELETON_DIRS:
                self.backend.ensure_dir(self._rel(idea_id, directory))
            for name, content in tpl.render().items():
                self.backend.write_text(self._rel(idea_id, f"{META_DIR}/{name}"), content)
            stamp = isoformat(now())
            meta = {
                "version": META_FORMAT_VERSION,
                "template": kind,
                "created": stamp,
                "lastModified": stamp,
                "fileCount": len(tpl.required_files),
            }
            self._write_meta(idea_id, meta)
        except Exception as exc:
            self._rollback(idea_id)
            if isinstance(exc, RepositoryError):
                raise
            raise RepositoryInternalError("创建仓库失败") from exc

        logger.info("Created repository for idea %s (template=%s)", idea_id, kind)
        return meta

    def _rollback(self, idea_id: str) -> None:
        try:
            if self.backend.exists(idea_id):
                self.backend.remove(idea_id)
        except Exception:
            logger.warning("Failed to clean up repository %s after creation error", idea_id, exc_info=True)
        else:
            logger.info("Rolled back partially created repository %s", idea_id)
