"""想法仓库服务的单元测试（LOCAL 存储，临时目录）。"""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path

import pytest

from app.packages.idea_repo.core.constants import DEFAULT_MAX_FILE_SIZE, SKELETON_DIRS
from app.packages.idea_repo.core.exceptions import (
    PayloadTooLargeError,
    RepositoryConflictError,
    RepositoryForbiddenError,
    RepositoryInternalError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)
from app.packages.idea_repo.core.timezone import parse_iso
from app.packages.idea_repo.services.repository_service import IdeaRepositoryService
from app.packages.idea_repo.services.templates import TEMPLATES

IDEA_ID = "507f1f77bcf86cd799439011"


def _meta_path(storage_root: Path, idea_id: str = IDEA_ID) -> Path:
    return storage_root / idea_id / "meta" / "meta.json"


def _last_modified(service: IdeaRepositoryService, idea_id: str = IDEA_ID):
    return parse_iso(service.read_metadata(idea_id)["lastModified"])


# ----------------------------
# 创建
# ----------------------------
@pytest.mark.parametrize("kind", sorted(TEMPLATES))
def test_create_repository_layout(service, storage_root, kind):
    meta = service.create_repository(IDEA_ID, kind)

    repo_root = storage_root / IDEA_ID
    for directory in SKELETON_DIRS:
        assert (repo_root / directory).is_dir()
    for name in TEMPLATES[kind].required_names:
        assert (repo_root / "meta" / name).is_file()

    on_disk = json.loads(_meta_path(storage_root).read_text(encoding="utf-8"))
    assert on_disk == meta
    assert meta["version"] == "1.0.0"
    assert meta["template"] == kind
    assert meta["fileCount"] == len(TEMPLATES[kind].required_files)
    assert meta["created"] == meta["lastModified"]


def test_required_file_counts_per_template():
    assert len(TEMPLATES["basic"].required_files) == 4
    assert set(TEMPLATES["research"].required_names) >= {"methodology.md", "references.md"}
    assert set(TEMPLATES["technical"].required_names) >= {"architecture.md", "requirements.md"}


def test_seed_content_written(service, repo):
    idea = service.get_file_content(repo, "meta/idea.md")
    search = service.get_file_content(repo, "meta/search.md")
    assert idea.startswith("# Idea Title")
    assert "*Last updated: " in search


def test_create_repository_conflict_keeps_existing(service, repo):
    service.update_file(repo, "docs/notes.md", "keep me")

    with pytest.raises(RepositoryConflictError) as exc_info:
        service.create_repository(repo, "research")

    assert exc_info.value.status_code == 409
    assert service.get_file_content(repo, "docs/notes.md") == "keep me"
    assert service.read_metadata(repo)["template"] == "basic"


def test_unknown_template_falls_back_to_basic(service):
    meta = service.create_repository(IDEA_ID, "fancy")
    assert meta["template"] == "basic"


def test_strict_templates_reject_unknown(backend, storage_root):
    strict = IdeaRepositoryService(backend, strict_templates=True)
    with pytest.raises(RepositoryValidationError):
        strict.create_repository(IDEA_ID, "fancy")
    assert not (storage_root / IDEA_ID).exists()


@pytest.mark.parametrize("bad_id", ["", "../escape", "a/b", "..", "x" * 65, "id with space"])
def test_invalid_idea_id_rejected(service, bad_id):
    with pytest.raises(RepositoryValidationError):
        service.create_repository(bad_id)


@pytest.mark.parametrize("fail_on", range(1, 8))
def test_create_repository_is_atomic(service, backend, storage_root, monkeypatch, fail_on):
    """research 模板共 7 次写入（6 个文档 + meta.json），任意一次失败都不留残余。"""
    original = backend.write_text
    calls = {"n": 0}

    def flaky(rel, content):
        calls["n"] += 1
        if calls["n"] == fail_on:
            raise OSError(28, "No space left on device")
        return original(rel, content)

    monkeypatch.setattr(backend, "write_text", flaky)

    with pytest.raises(RepositoryInternalError):
        service.create_repository(IDEA_ID, "research")

    assert not (storage_root / IDEA_ID).exists()
    assert service.repository_exists(IDEA_ID) is False


def test_create_failure_reports_original_error_when_cleanup_fails(service, backend, monkeypatch):
    disk_full = OSError(28, "No space left on device")

    def fail_write(rel, content):
        raise disk_full

    def fail_remove(rel):
        raise OSError(13, "Permission denied")

    monkeypatch.setattr(backend, "write_text", fail_write)
    monkeypatch.setattr(backend, "remove", fail_remove)

    with pytest.raises(RepositoryInternalError) as exc_info:
        service.create_repository(IDEA_ID)
    assert exc_info.value.__cause__ is disk_full


def test_concurrent_create_only_one_wins(service):
    barrier = threading.Barrier(8)
    results: list[str] = []
    guard = threading.Lock()

    def worker():
        barrier.wait()
        try:
            service.create_repository(IDEA_ID, "technical")
            outcome = "created"
        except RepositoryConflictError:
            outcome = "conflict"
        with guard:
            results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count("created") == 1
    assert results.count("conflict") == 7
    assert service.read_metadata(IDEA_ID)["fileCount"] == 6


# ----------------------------
# 删除仓库 / 存在性
# ----------------------------
def test_delete_repository_is_idempotent(service, storage_root):
    assert service.delete_repository(IDEA_ID) is False

    service.create_repository(IDEA_ID)
    assert service.repository_exists(IDEA_ID) is True
    assert service.delete_repository(IDEA_ID) is True
    assert service.delete_repository(IDEA_ID) is False
    assert not (storage_root / IDEA_ID).exists()
    assert service.repository_exists(IDEA_ID) is False


# ----------------------------
# 读写
# ----------------------------
@pytest.mark.parametrize(
    "content",
    ["", "hello world", "line1\r\nline2\rline3\n", "你好，世界 🌍\n", "# Title\n\n" + "x" * 5000],
)
def test_round_trip(service, repo, content):
    service.update_file(repo, "docs/notes/round.md", content)
    assert service.get_file_content(repo, "docs/notes/round.md") == content


def test_update_file_returns_node(service, repo):
    node = service.update_file(repo, "/docs/plan.md", "abc")
    assert node.path == "docs/plan.md"
    assert node.name == "plan.md"
    assert node.size == 3
    assert node.mime_type == "text/markdown"


def test_size_ceiling_default():
    assert DEFAULT_MAX_FILE_SIZE == 10 * 1024 * 1024


def test_size_ceiling_exact_and_over(service, repo):
    exact = "a" * DEFAULT_MAX_FILE_SIZE
    service.update_file(repo, "data/big.txt", exact)
    assert os.path.getsize(service.backend.root / repo / "data" / "big.txt") == DEFAULT_MAX_FILE_SIZE

    with pytest.raises(PayloadTooLargeError) as exc_info:
        service.update_file(repo, "data/bigger.txt", exact + "a")
    assert exc_info.value.status_code == 413
    assert not (service.backend.root / repo / "data" / "bigger.txt").exists()


def test_size_ceiling_counts_utf8_bytes(backend, repo):
    small = IdeaRepositoryService(backend, max_file_size=6)
    small.update_file(repo, "docs/ok.md", "你好")  # 6 bytes
    with pytest.raises(PayloadTooLargeError):
        small.update_file(repo, "docs/too-big.md", "你好a")


def test_update_file_requires_repository(service):
    with pytest.raises(RepositoryNotFoundError):
        service.update_file(IDEA_ID, "docs/a.md", "x")


def test_update_metadata_record_forbidden(service, repo):
    with pytest.raises(RepositoryForbiddenError):
        service.update_file(repo, "meta/meta.json", "{}")
    with pytest.raises(RepositoryForbiddenError):
        service.update_file(repo, "docs/../meta//meta.json", "{}")


def test_update_directory_forbidden(service, repo):
    with pytest.raises(RepositoryForbiddenError):
        service.update_file(repo, "docs", "x")
    with pytest.raises(RepositoryForbiddenError):
        service.update_file(repo, "/", "x")


def test_disallowed_extension_rejected(service, repo):
    with pytest.raises(RepositoryValidationError):
        service.update_file(repo, "media/run.exe", "x")
    service.update_file(repo, "docs/README", "no extension is fine")
    service.update_file(repo, "docs/UPPER.MD", "case-insensitive")


def test_get_missing_file(service, repo):
    with pytest.raises(RepositoryNotFoundError):
        service.get_file_content(repo, "docs/missing.md")
    with pytest.raises(RepositoryNotFoundError):
        service.get_file_content(repo, "docs")
    with pytest.raises(RepositoryNotFoundError):
        service.get_file_content("aaaaaaaaaaaaaaaaaaaaaaaa", "meta/idea.md")


def test_get_non_utf8_file_is_internal_error(service, repo, storage_root):
    (storage_root / repo / "media" / "blob.md").write_bytes(b"\xff\xfe\x00bad")
    with pytest.raises(RepositoryInternalError):
        service.get_file_content(repo, "media/blob.md")


def test_nul_byte_rejected(service, repo):
    with pytest.raises(RepositoryValidationError):
        service.get_file_content(repo, "docs/a\x00.md")


# ----------------------------
# 路径穿越
# ----------------------------
@pytest.mark.parametrize(
    "path",
    ["../../../etc/passwd", "/../../etc/passwd", "docs/../../../etc/passwd", "..\\..\\etc\\passwd"],
)
def test_traversal_read_stays_inside_repository(service, repo, path):
    with pytest.raises(RepositoryNotFoundError):
        service.get_file_content(repo, path)


def test_traversal_write_lands_inside_repository(service, repo, storage_root, tmp_path):
    service.update_file(repo, "../../outside.md", "contained")

    assert not (tmp_path / "outside.md").exists()
    assert not (storage_root / "outside.md").exists()
    assert (storage_root / repo / "outside.md").read_text(encoding="utf-8") == "contained"


def test_traversal_cannot_reach_sibling_repository(service, repo):
    other = "aaaaaaaaaaaaaaaaaaaaaaaa"
    service.create_repository(other)
    service.update_file(other, "docs/secret.md", "other repo")

    with pytest.raises(RepositoryNotFoundError):
        service.get_file_content(repo, f"../{other}/docs/secret.md")


def test_symlink_escape_rejected(service, repo, storage_root, tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "secret.txt").write_text("host data", encoding="utf-8")
    os.symlink(outside, storage_root / repo / "docs" / "escape")

    with pytest.raises(RepositoryForbiddenError):
        service.get_file_content(repo, "docs/escape/secret.txt")
    with pytest.raises(RepositoryForbiddenError):
        service.update_file(repo, "docs/escape/pwn.md", "x")
    with pytest.raises(RepositoryForbiddenError):
        service.delete_file(repo, "docs/escape/secret.txt")
    assert (outside / "secret.txt").read_text(encoding="utf-8") == "host data"
    assert not (outside / "pwn.md").exists()


def test_delete_link_to_required_file_forbidden(service, repo, storage_root):
    repo_root = storage_root / repo
    os.symlink(repo_root / "meta" / "idea.md", repo_root / "docs" / "alias.md")

    with pytest.raises(RepositoryForbiddenError):
        service.delete_file(repo, "docs/alias.md")

    assert (repo_root / "docs" / "alias.md").is_symlink()
    assert (repo_root / "meta" / "idea.md").is_file()


def test_delete_link_to_meta_directory_forbidden(service, repo, storage_root):
    repo_root = storage_root / repo
    os.symlink(repo_root / "meta", repo_root / "docs" / "linkdir")

    with pytest.raises(RepositoryForbiddenError):
        service.delete_file(repo, "docs/linkdir")
    with pytest.raises(RepositoryForbiddenError):
        service.delete_file(repo, "docs/linkdir/idea.md")

    assert (repo_root / "meta" / "idea.md").is_file()
    assert (repo_root / "meta" / "meta.json").is_file()


def test_write_through_link_to_metadata_forbidden(service, repo, storage_root):
    repo_root = storage_root / repo
    os.symlink(repo_root / "meta" / "meta.json", repo_root / "docs" / "m.json")
    os.symlink(repo_root / "meta", repo_root / "docs" / "linkdir")
    before = _meta_path(storage_root).read_text(encoding="utf-8")

    with pytest.raises(RepositoryForbiddenError):
        service.update_file(repo, "docs/m.json", "clobbered")
    with pytest.raises(RepositoryForbiddenError):
        service.update_file(repo, "docs/linkdir/meta.json", "clobbered")

    assert _meta_path(storage_root).read_text(encoding="utf-8") == before
    assert service.read_metadata(repo)["template"] == "basic"


def test_reading_through_inner_link_allowed(service, repo, storage_root):
    repo_root = storage_root / repo
    os.symlink(repo_root / "meta" / "idea.md", repo_root / "docs" / "alias.md")
    assert service.get_file_content(repo, "docs/alias.md").startswith("# Idea Title")


def test_file_names_keep_surrounding_spaces(service, repo, storage_root):
    node = service.update_file(repo, "docs/ spaced.md", "x")

    assert node.path == "docs/ spaced.md"
    assert (storage_root / repo / "docs" / " spaced.md").is_file()
    assert not (storage_root / repo / "docs" / "spaced.md").exists()
    assert [n.name for n in service.list_files(repo, "docs")] == [" spaced.md"]


# ----------------------------
# 删除文件
# ----------------------------
@pytest.mark.parametrize("kind", sorted(TEMPLATES))
def test_required_files_cannot_be_deleted(service, storage_root, kind):
    service.create_repository(IDEA_ID, kind)
    for name in [*TEMPLATES[kind].required_names, "meta.json"]:
        with pytest.raises(RepositoryForbiddenError):
            service.delete_file(IDEA_ID, f"meta/{name}")
        assert (storage_root / IDEA_ID / "meta" / name).is_file()

    service.update_file(IDEA_ID, "docs/extra.md", "x")
    service.delete_file(IDEA_ID, "docs/extra.md")
    assert not (storage_root / IDEA_ID / "docs" / "extra.md").exists()


@pytest.mark.parametrize("path", ["./meta/idea.md", "docs/../meta/idea.md", "meta\\scope.md", "/meta//problem.md"])
def test_required_file_protection_survives_path_tricks(service, repo, path):
    with pytest.raises(RepositoryForbiddenError):
        service.delete_file(repo, path)


@pytest.mark.parametrize("path", ["", "/", ".", *SKELETON_DIRS])
def test_skeleton_cannot_be_deleted(service, repo, storage_root, path):
    with pytest.raises(RepositoryForbiddenError):
        service.delete_file(repo, path)
    assert (storage_root / repo / "meta" / "idea.md").is_file()


def test_required_files_protected_when_metadata_corrupted(service, storage_root):
    service.create_repository(IDEA_ID, "research")
    _meta_path(storage_root).write_text("{not json", encoding="utf-8")

    with pytest.raises(RepositoryForbiddenError):
        service.delete_file(IDEA_ID, "meta/methodology.md")


def test_delete_directory_and_missing(service, repo, storage_root):
    service.update_file(repo, "docs/drafts/one.md", "1")
    service.update_file(repo, "docs/drafts/two.md", "2")
    service.delete_file(repo, "docs/drafts")
    assert not (storage_root / repo / "docs" / "drafts").exists()

    with pytest.raises(RepositoryNotFoundError):
        service.delete_file(repo, "docs/drafts")


# ----------------------------
# 元数据
# ----------------------------
def test_metadata_refreshed_on_meta_write(service, repo):
    before = _last_modified(service)
    service.update_file(repo, "meta/notes.md", "extra")
    after_write = _last_modified(service)
    assert after_write > before

    service.update_file(repo, "meta/idea.md", "# Changed")
    after_update = _last_modified(service)
    assert after_update > after_write

    service.delete_file(repo, "meta/notes.md")
    assert _last_modified(service) > after_update


def test_metadata_untouched_outside_meta(service, repo):
    before = service.read_metadata(repo)["lastModified"]
    service.update_file(repo, "docs/a.md", "a")
    service.delete_file(repo, "docs/a.md")
    assert service.read_metadata(repo)["lastModified"] == before


def test_metadata_refresh_failure_does_not_fail_write(service, repo, storage_root):
    _meta_path(storage_root).write_text("{broken", encoding="utf-8")

    service.update_file(repo, "meta/idea.md", "# Still written")

    assert service.get_file_content(repo, "meta/idea.md") == "# Still written"
    with pytest.raises(RepositoryInternalError):
        service.read_metadata(repo)


def test_read_metadata_missing_record(service, repo, storage_root):
    _meta_path(storage_root).unlink()
    with pytest.raises(RepositoryInternalError):
        service.read_metadata(repo)


# ----------------------------
# 列表
# ----------------------------
def test_list_root(service, repo):
    nodes = service.list_files(repo)
    assert [n.name for n in nodes] == sorted(SKELETON_DIRS)
    assert all(n.type == "directory" for n in nodes)
    assert "size" not in nodes[0].to_dict()


def test_list_meta_directory(service, repo):
    nodes = {n.name: n for n in service.list_files(repo, "meta")}
    assert set(nodes) == {"idea.md", "scope.md", "problem.md", "search.md", "meta.json"}
    assert nodes["idea.md"].path == "meta/idea.md"
    assert nodes["idea.md"].mime_type == "text/markdown"
    assert nodes["meta.json"].mime_type == "application/json"
    assert nodes["idea.md"].size > 0
    data = nodes["idea.md"].to_dict()
    assert set(data) == {"name", "path", "type", "size", "mimeType", "lastModified"}


def test_list_ordering(service, repo):
    service.update_file(repo, "docs/b.txt", "b")
    service.update_file(repo, "docs/A/keep.md", "")
    service.update_file(repo, "docs/a.txt", "a")
    service.update_file(repo, "docs/B/keep.md", "")

    nodes = service.list_files(repo, "docs")

    assert [(n.name, n.type) for n in nodes] == [
        ("A", "directory"),
        ("B", "directory"),
        ("a.txt", "file"),
        ("b.txt", "file"),
    ]
    assert [n.path for n in nodes] == ["docs/A", "docs/B", "docs/a.txt", "docs/b.txt"]


def test_list_is_single_level(service, repo):
    service.update_file(repo, "docs/deep/deeper/file.md", "x")
    nodes = service.list_files(repo, "docs")
    assert [n.name for n in nodes] == ["deep"]
    assert nodes[0].children is None


def test_list_unknown_content_type(service, repo, storage_root):
    (storage_root / repo / "media" / "photo.PNG").write_bytes(b"\x89PNG")
    (storage_root / repo / "media" / "blob.bin").write_bytes(b"\x00")
    nodes = {n.name: n for n in service.list_files(repo, "media")}
    assert nodes["photo.PNG"].mime_type == "image/png"
    assert nodes["blob.bin"].mime_type == "application/octet-stream"


def test_list_not_found(service, repo):
    with pytest.raises(RepositoryNotFoundError):
        service.list_files("aaaaaaaaaaaaaaaaaaaaaaaa")
    with pytest.raises(RepositoryNotFoundError):
        service.list_files(repo, "missing")
    with pytest.raises(RepositoryNotFoundError):
        service.list_files(repo, "meta/idea.md")
