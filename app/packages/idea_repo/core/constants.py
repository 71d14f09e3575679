"""常量定义：集中维护 HTTP 状态码与仓库目录结构相关的固定值。"""

from fastapi import status

HTTP_STATUS_OK = status.HTTP_200_OK
HTTP_STATUS_CREATED = status.HTTP_201_CREATED
HTTP_STATUS_BAD_REQUEST = status.HTTP_400_BAD_REQUEST
HTTP_STATUS_NOT_FOUND = status.HTTP_404_NOT_FOUND
HTTP_STATUS_CONFLICT = status.HTTP_409_CONFLICT
HTTP_STATUS_PAYLOAD_TOO_LARGE = 413  # starlette 已弃用 HTTP_413_REQUEST_ENTITY_TOO_LARGE
HTTP_STATUS_UNPROCESSABLE_ENTITY = 422  # starlette 已弃用 HTTP_422_UNPROCESSABLE_ENTITY
HTTP_STATUS_INTERNAL_SERVER_ERROR = status.HTTP_500_INTERNAL_SERVER_ERROR

# 仓库目录结构
META_DIR = "meta"
META_FILE = "meta.json"
META_FORMAT_VERSION = "1.0.0"
SKELETON_DIRS = ("meta", "docs", "media", "data", "analysis", "discussions", "versions")

DEFAULT_TEMPLATE = "basic"
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MiB
DEFAULT_ALLOWED_EXTENSIONS = (".md", ".txt", ".json", ".js", ".ts", ".py", ".html", ".css")

# 扩展名 -> 内容类型；未登记的扩展名统一视为二进制
MIME_TYPES = {
    ".md": "text/markdown",
    ".txt": "text/plain",
    ".json": "application/json",
    ".js": "text/javascript",
    ".ts": "text/typescript",
    ".py": "text/x-python",
    ".html": "text/html",
    ".css": "text/css",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".pdf": "application/pdf",
}
DEFAULT_MIME_TYPE = "application/octet-stream"
