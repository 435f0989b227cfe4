from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any


class JobStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.PASSED, JobStatus.FAILED, JobStatus.ERROR)


@dataclass(frozen=True)
class JobResult:
    status: JobStatus
    output: str = ""
    error: str | None = None


class PersistenceError(Exception):
    """Raised by status adapters when a record cannot be written."""


class JobStatusPort(ABC):
    @abstractmethod
    def create(self, job_id: str, owner: str) -> None:
        """ジョブ状態を PENDING で作成"""
        ...

    @abstractmethod
    def update(
        self,
        job_id: str,
        status: JobStatus,
        output: str | None = None,
        error: str | None = None,
    ) -> None:
        """ジョブ状態を更新 (output は累積済みの全文を渡す)"""
        ...

    @abstractmethod
    def get_status(self, job_id: str) -> dict[str, Any] | None:
        """ジョブ状態を取得"""
        ...

    @abstractmethod
    def list_jobs(self, owner: str) -> list[dict[str, Any]]:
        """所有者のジョブ一覧を取得"""
        ...
