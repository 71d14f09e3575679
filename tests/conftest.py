"""测试夹具：为 pytest 提供临时存储根目录、仓库服务与客户端的共享配置。"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Generator

_TMP_ROOT = tempfile.mkdtemp(prefix="idea_repo_tests_")
os.environ.setdefault("STORAGE_PATH", os.path.join(_TMP_ROOT, "storage"))
os.environ.setdefault("LOG_DIR", os.path.join(_TMP_ROOT, "log"))

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.packages.idea_repo.core.dependencies import get_repository_service
from app.packages.idea_repo.services.repository_service import IdeaRepositoryService
from app.packages.idea_repo.services.storage_backends import LocalBackend

IDEA_ID = "507f1f77bcf86cd799439011"


@pytest.fixture(scope="session", autouse=True)
def cleanup_tmp_root() -> Generator[None, None, None]:
    """会话结束后删除临时目录。"""
    yield
    shutil.rmtree(_TMP_ROOT, ignore_errors=True)


@pytest.fixture()
def storage_root(tmp_path: Path) -> Path:
    return tmp_path / "ideas"


@pytest.fixture()
def backend(storage_root: Path) -> LocalBackend:
    return LocalBackend(storage_root)


@pytest.fixture()
def service(backend: LocalBackend) -> IdeaRepositoryService:
    """每个用例使用独立根目录的仓库服务。"""
    return IdeaRepositoryService(backend)


@pytest.fixture()
def repo(service: IdeaRepositoryService) -> str:
    """预先创建好 basic 模板仓库，返回其想法 ID。"""
    service.create_repository(IDEA_ID, "basic")
    return IDEA_ID


@pytest.fixture()
def client(service: IdeaRepositoryService):
    """构建 FastAPI TestClient，并注入测试专用的仓库服务。"""
    app.dependency_overrides[get_repository_service] = lambda: service

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
