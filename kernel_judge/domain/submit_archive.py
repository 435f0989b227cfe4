from __future__ import annotations

import logging
import os
import uuid
from typing import BinaryIO

from kernel_judge.domain.job import Job
from kernel_judge.ports.job_queue_port import JobQueuePort
from kernel_judge.ports.job_status_port import JobStatus, JobStatusPort, PersistenceError
from kernel_judge.ports.storage_port import StoragePort

logger = logging.getLogger(__name__)


class SubmitArchive:
    """アーカイブ提出を受け付け, 展開して評価キューに投入するユースケース."""

    MAX_FILE_SIZE = 100 * 1024 * 1024  # 100MB
    ALLOWED_EXTENSIONS = (".zip",)

    def __init__(self, storage: StoragePort, queue: JobQueuePort, status: JobStatusPort) -> None:
        self.storage = storage
        self.queue = queue
        self.status = status

    def execute(self, owner: str, filename: str, stream: BinaryIO) -> str:
        self._validate_filename(filename)
        self._validate_extension(filename)
        self._validate_size(stream)

        # 同名アーカイブの再提出が前のジョブの作業ディレクトリを上書きしないよう, ジョブごとに分ける
        job_id = uuid.uuid4().hex
        try:
            archive_path = self.storage.save_archive(owner, job_id, filename, stream)
            work_dir = self.storage.extract_archive(owner, archive_path)
            self.status.create(job_id, owner)
        except Exception:
            self.storage.discard(owner, job_id)
            raise

        try:
            self.queue.enqueue(Job(id=job_id, owner=owner, work_dir=work_dir))
        except Exception as exc:
            self._abandon(job_id, owner, exc)
            raise
        return job_id

    def _abandon(self, job_id: str, owner: str, exc: Exception) -> None:
        logger.error(f"Failed to enqueue job {job_id}: {exc}")
        self.storage.discard(owner, job_id)
        try:
            self.status.update(job_id, JobStatus.ERROR, error=f"failed to enqueue job: {exc}")
        except PersistenceError as update_exc:
            logger.error(f"Failed to record enqueue failure of job {job_id}: {update_exc}")

    def _validate_filename(self, filename: str) -> None:
        if not filename or filename.startswith("/") or os.path.basename(filename) != filename or ".." in filename:
            raise ValueError("invalid file name")

    def _validate_extension(self, filename: str) -> None:
        if not filename.lower().endswith(self.ALLOWED_EXTENSIONS):
            raise ValueError("only .zip archives are accepted")

    def _validate_size(self, stream: BinaryIO) -> None:
        current = stream.tell()
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(current)
        if size == 0:
            raise ValueError("archive is empty")
        if size > self.MAX_FILE_SIZE:
            raise ValueError("archive exceeds the size limit")
