from __future__ import annotations

import logging
import os
import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO

from kernel_judge.ports.storage_port import InvalidArchive, StoragePort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchiveLimits:
    max_files: int = 20000
    max_uncompressed_bytes: int = 200 * 1024 * 1024
    max_single_file_bytes: int = 64 * 1024 * 1024
    max_depth: int = 32


class FileSystemStorageAdapter(StoragePort):
    """提出アーカイブをローカルファイルシステムに保存・展開する実装."""

    USER_DIR_NAME = "user"

    def __init__(
        self,
        uploads_root: Path,
        overlay_dir: Path | None = None,
        limits: ArchiveLimits | None = None,
    ):
        self.uploads_root = Path(uploads_root)
        self.uploads_root.mkdir(parents=True, exist_ok=True)
        self.overlay_dir = Path(overlay_dir) if overlay_dir else None
        self.limits = limits or ArchiveLimits()

    def save_archive(self, owner: str, job_id: str, filename: str, stream: BinaryIO) -> Path:
        self._validate_component(filename, "filename")
        job_dir = self.job_dir(owner, job_id)
        job_dir.mkdir(parents=True, exist_ok=True)

        target_path = job_dir / filename
        stream.seek(0)
        with open(target_path, "wb") as target:
            shutil.copyfileobj(stream, target)
        return target_path

    def extract_archive(self, owner: str, archive_path: Path) -> Path:
        self._validate_component(owner, "owner")
        archive_path = Path(archive_path)
        if not archive_path.exists():
            raise InvalidArchive(f"archive not found: {archive_path.name}")

        # 展開先はアーカイブと同じジョブディレクトリ
        job_dir = archive_path.parent
        if job_dir.parent.resolve() != (self.uploads_root / owner).resolve():
            raise InvalidArchive(f"archive is outside the upload directory of {owner}")
        work_dir = job_dir / f"{archive_path.stem}_out"

        try:
            with zipfile.ZipFile(archive_path) as zip_file:
                infos = zip_file.infolist()
                self._validate_entries(infos)
                tmp_root = Path(tempfile.mkdtemp(prefix=".extract-", dir=job_dir))
                try:
                    zip_file.extractall(tmp_root)
                    self._validate_no_symlinks(tmp_root)
                    if work_dir.exists():
                        shutil.rmtree(work_dir)
                    os.replace(tmp_root, work_dir)
                except Exception:
                    shutil.rmtree(tmp_root, ignore_errors=True)
                    raise
        except zipfile.BadZipFile as exc:
            raise InvalidArchive(f"not a valid zip archive: {exc}") from exc

        logger.info("Extracted %s into %s", archive_path.name, work_dir)
        self._apply_overlay(work_dir)
        return work_dir

    def discard(self, owner: str, job_id: str) -> None:
        job_dir = self.job_dir(owner, job_id)
        if job_dir.exists():
            shutil.rmtree(job_dir)
            logger.info("Removed %s", job_dir)

    def job_dir(self, owner: str, job_id: str) -> Path:
        self._validate_component(owner, "owner")
        self._validate_component(job_id, "job id")
        return self.uploads_root / owner / job_id

    def find_user_dir(self, work_dir: Path) -> Path:
        """展開先直下, または 1 階層下の user/ ディレクトリを探す."""
        direct = work_dir / self.USER_DIR_NAME
        if direct.is_dir():
            return direct
        for child in sorted(work_dir.iterdir()):
            candidate = child / self.USER_DIR_NAME
            if child.is_dir() and candidate.is_dir():
                return candidate
        return direct

    def _apply_overlay(self, work_dir: Path) -> None:
        if not self.overlay_dir or not self.overlay_dir.is_dir():
            return
        user_dir = self.find_user_dir(work_dir)
        if not user_dir.exists():
            logger.warning("No user directory found in %s, overlay skipped", work_dir)
            return
        shutil.rmtree(user_dir)
        shutil.copytree(self.overlay_dir, user_dir)
        logger.info("Replaced %s with %s", user_dir, self.overlay_dir)

    def _validate_component(self, value: str, label: str) -> None:
        if not value or value == "." or "/" in value or "\\" in value or ".." in value:
            raise InvalidArchive(f"invalid {label}: {value}")

    def _validate_entries(self, infos: list[zipfile.ZipInfo]) -> None:
        if len(infos) > self.limits.max_files:
            raise InvalidArchive("too many files in archive")

        total = 0
        for info in infos:
            name = info.filename or ""
            if not name:
                continue
            path = PurePosixPath(name)
            if path.is_absolute() or ".." in path.parts:
                raise InvalidArchive(f"unsafe path in archive: {name}")
            if len(path.parts) > self.limits.max_depth:
                raise InvalidArchive(f"path too deep: {name}")
            if self._is_symlink(info):
                raise InvalidArchive(f"symlink not allowed: {name}")
            if info.file_size > self.limits.max_single_file_bytes:
                raise InvalidArchive(f"file too large: {name}")
            total += info.file_size
            if total > self.limits.max_uncompressed_bytes:
                raise InvalidArchive("archive too large")

    def _is_symlink(self, info: zipfile.ZipInfo) -> bool:
        # Unix の zip では上位 16 ビットがファイルモード
        mode = (info.external_attr >> 16) & 0xFFFF
        return (mode & 0o170000) == 0o120000

    def _validate_no_symlinks(self, root: Path) -> None:
        for walk_root, dirs, files in os.walk(root):
            for name in dirs + files:
                if (Path(walk_root) / name).is_symlink():
                    raise InvalidArchive(f"symlink not allowed: {name}")
