"""Path utilities: sanitize caller-supplied repository paths.

These helpers only deal with strings; containment against the real
filesystem is verified by ``LocalBackend.resolve`` after sanitizing:
- separators are always '/', backslashes are treated as separators;
- '.' and '..' segments are collapsed, leading '..' and '/' are dropped;
- the repository root is represented by the empty string ''.
"""

from __future__ import annotations

import posixpath
import re

_LEADING_PARENT = re.compile(r"^(\.\./)+")


def sanitize_relative_path(p: str | None) -> str:
    s = (p or "").replace("\\", "/")
    # 仅空白视为根目录；文件名自身的首尾空格原样保留
    if not s.strip():
        return ""
    # normpath leaves unresolvable '..' only at the front, e.g. "../../etc"
    s = posixpath.normpath(s)
    s = _LEADING_PARENT.sub("", s).lstrip("/")
    return "" if s in (".", "..") else s


def is_within(child: str, parent: str) -> bool:
    """判断 ``child`` 是否等于 ``parent`` 或位于其下（均为已清洗的相对路径）。"""
    if parent == "":
        return True
    return child == parent or child.startswith(parent + "/")
