from __future__ import annotations

import io
import stat
import zipfile
from pathlib import Path

import pytest

from kernel_judge.adapters.filesystem_storage_adapter import ArchiveLimits, FileSystemStorageAdapter
from kernel_judge.ports.storage_port import InvalidArchive


def _zip_bytes(entries: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def _store(
    adapter: FileSystemStorageAdapter, owner: str, filename: str, payload: bytes, job_id: str = "job-1"
) -> Path:
    return adapter.save_archive(owner, job_id, filename, io.BytesIO(payload))


KERNEL_ZIP = {
    "os/Makefile": "run:\n\t@echo run\n",
    "os/src/main.rs": "fn main() {}\n",
    "user/src/bin/usertests.rs": "// submitted copy\n",
}


def test_save_archive_writes_under_job_dir(tmp_path: Path) -> None:
    adapter = FileSystemStorageAdapter(tmp_path / "uploads")

    path = _store(adapter, "alice", "kernel.zip", b"payload")

    assert path == tmp_path / "uploads" / "alice" / "job-1" / "kernel.zip"
    assert path.read_bytes() == b"payload"


@pytest.mark.parametrize(
    ("owner", "job_id", "filename"),
    [
        ("../evil", "job-1", "k.zip"),
        ("alice", "job-1", "../k.zip"),
        ("alice", "job-1", "a/b.zip"),
        ("", "job-1", "k.zip"),
        ("alice", "..", "k.zip"),
        ("alice", "a/b", "k.zip"),
    ],
)
def test_save_archive_rejects_unsafe_names(tmp_path: Path, owner: str, job_id: str, filename: str) -> None:
    adapter = FileSystemStorageAdapter(tmp_path / "uploads")

    with pytest.raises(InvalidArchive):
        _store(adapter, owner, filename, b"payload", job_id=job_id)


def test_extract_archive_creates_out_dir(tmp_path: Path) -> None:
    adapter = FileSystemStorageAdapter(tmp_path / "uploads")
    archive = _store(adapter, "alice", "kernel.zip", _zip_bytes(KERNEL_ZIP))

    work_dir = adapter.extract_archive("alice", archive)

    assert work_dir == tmp_path / "uploads" / "alice" / "job-1" / "kernel_out"
    assert (work_dir / "os" / "Makefile").exists()
    assert not any(p.name.startswith(".extract-") for p in work_dir.parent.iterdir())


def test_extract_archive_replaces_previous_extraction(tmp_path: Path) -> None:
    adapter = FileSystemStorageAdapter(tmp_path / "uploads")
    first = _store(adapter, "alice", "kernel.zip", _zip_bytes({"os/old.txt": "old"}))
    adapter.extract_archive("alice", first)

    second = _store(adapter, "alice", "kernel.zip", _zip_bytes({"os/new.txt": "new"}))
    work_dir = adapter.extract_archive("alice", second)

    assert (work_dir / "os" / "new.txt").exists()
    assert not (work_dir / "os" / "old.txt").exists()


def test_extract_archive_rejects_zip_slip(tmp_path: Path) -> None:
    adapter = FileSystemStorageAdapter(tmp_path / "uploads")
    archive = _store(adapter, "alice", "evil.zip", _zip_bytes({"../../escape.txt": "x"}))

    with pytest.raises(InvalidArchive, match="unsafe path"):
        adapter.extract_archive("alice", archive)

    assert not (tmp_path / "escape.txt").exists()
    assert not (tmp_path / "uploads" / "alice" / "job-1" / "evil_out").exists()


def test_extract_archive_rejects_symlink_entries(tmp_path: Path) -> None:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        info = zipfile.ZipInfo("os/link")
        info.external_attr = (stat.S_IFLNK | 0o777) << 16
        archive.writestr(info, "/etc/passwd")
    adapter = FileSystemStorageAdapter(tmp_path / "uploads")
    archive_path = _store(adapter, "alice", "link.zip", buffer.getvalue())

    with pytest.raises(InvalidArchive, match="symlink"):
        adapter.extract_archive("alice", archive_path)


def test_extract_archive_enforces_limits(tmp_path: Path) -> None:
    adapter = FileSystemStorageAdapter(tmp_path / "uploads", limits=ArchiveLimits(max_files=2))
    archive = _store(adapter, "alice", "kernel.zip", _zip_bytes(KERNEL_ZIP))

    with pytest.raises(InvalidArchive, match="too many files"):
        adapter.extract_archive("alice", archive)


def test_extract_archive_rejects_non_zip(tmp_path: Path) -> None:
    adapter = FileSystemStorageAdapter(tmp_path / "uploads")
    archive = _store(adapter, "alice", "kernel.zip", b"definitely not a zip")

    with pytest.raises(InvalidArchive, match="not a valid zip"):
        adapter.extract_archive("alice", archive)


def test_overlay_replaces_user_dir_at_root(tmp_path: Path) -> None:
    overlay = tmp_path / "reference-user"
    (overlay / "src" / "bin").mkdir(parents=True)
    (overlay / "src" / "bin" / "usertests.rs").write_text("// reference copy\n")
    adapter = FileSystemStorageAdapter(tmp_path / "uploads", overlay_dir=overlay)
    archive = _store(adapter, "alice", "kernel.zip", _zip_bytes({**KERNEL_ZIP, "user/extra.rs": "cheat"}))

    work_dir = adapter.extract_archive("alice", archive)

    assert (work_dir / "user" / "src" / "bin" / "usertests.rs").read_text() == "// reference copy\n"
    assert not (work_dir / "user" / "extra.rs").exists()


def test_overlay_finds_user_dir_one_level_down(tmp_path: Path) -> None:
    overlay = tmp_path / "reference-user"
    overlay.mkdir()
    (overlay / "Makefile").write_text("reference\n")
    adapter = FileSystemStorageAdapter(tmp_path / "uploads", overlay_dir=overlay)
    archive = _store(
        adapter,
        "alice",
        "kernel.zip",
        _zip_bytes({"rCore/os/Makefile": "run:\n", "rCore/user/Makefile": "submitted\n"}),
    )

    work_dir = adapter.extract_archive("alice", archive)

    assert (work_dir / "rCore" / "user" / "Makefile").read_text() == "reference\n"


def test_overlay_skipped_when_submission_has_no_user_dir(tmp_path: Path) -> None:
    overlay = tmp_path / "reference-user"
    overlay.mkdir()
    adapter = FileSystemStorageAdapter(tmp_path / "uploads", overlay_dir=overlay)
    archive = _store(adapter, "alice", "kernel.zip", _zip_bytes({"os/Makefile": "run:\n"}))

    work_dir = adapter.extract_archive("alice", archive)

    assert not (work_dir / "user").exists()


def test_missing_overlay_dir_is_ignored(tmp_path: Path) -> None:
    adapter = FileSystemStorageAdapter(tmp_path / "uploads", overlay_dir=tmp_path / "nowhere")
    archive = _store(adapter, "alice", "kernel.zip", _zip_bytes(KERNEL_ZIP))

    work_dir = adapter.extract_archive("alice", archive)

    assert (work_dir / "user" / "src" / "bin" / "usertests.rs").read_text() == "// submitted copy\n"


def test_same_file_name_in_two_jobs_is_kept_apart(tmp_path: Path) -> None:
    adapter = FileSystemStorageAdapter(tmp_path / "uploads")
    first = _store(adapter, "alice", "kernel.zip", _zip_bytes({"os/first.txt": "1"}), job_id="job-1")
    first_dir = adapter.extract_archive("alice", first)

    second = _store(adapter, "alice", "kernel.zip", _zip_bytes({"os/second.txt": "2"}), job_id="job-2")
    second_dir = adapter.extract_archive("alice", second)

    assert first_dir != second_dir
    assert (first_dir / "os" / "first.txt").read_text() == "1"
    assert not (first_dir / "os" / "second.txt").exists()
    assert (second_dir / "os" / "second.txt").read_text() == "2"


def test_extract_archive_rejects_archive_of_another_owner(tmp_path: Path) -> None:
    adapter = FileSystemStorageAdapter(tmp_path / "uploads")
    archive = _store(adapter, "bob", "kernel.zip", _zip_bytes(KERNEL_ZIP))

    with pytest.raises(InvalidArchive, match="outside the upload directory"):
        adapter.extract_archive("alice", archive)


def test_discard_removes_only_that_job(tmp_path: Path) -> None:
    adapter = FileSystemStorageAdapter(tmp_path / "uploads")
    kept = adapter.extract_archive("alice", _store(adapter, "alice", "kernel.zip", _zip_bytes(KERNEL_ZIP), job_id="job-1"))
    adapter.extract_archive("alice", _store(adapter, "alice", "kernel.zip", _zip_bytes(KERNEL_ZIP), job_id="job-2"))

    adapter.discard("alice", "job-2")
    adapter.discard("alice", "job-3")

    assert not (tmp_path / "uploads" / "alice" / "job-2").exists()
    assert (kept / "os" / "Makefile").exists()
