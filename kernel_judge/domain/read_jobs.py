from __future__ import annotations

from typing import Any

from kernel_judge.ports.job_status_port import JobStatusPort


class GetJobStatus:
    """ジョブの状態と出力を返す. 他人のジョブは存在しないものとして扱う."""

    def __init__(self, status: JobStatusPort) -> None:
        self.status = status

    def execute(self, job_id: str, owner: str) -> dict[str, Any] | None:
        record = self.status.get_status(job_id)
        if record is None or record.get("owner") != owner:
            return None
        return record


class ListJobs:
    """所有者のジョブ一覧 (新しい順, 出力本文は除く)."""

    def __init__(self, status: JobStatusPort) -> None:
        self.status = status

    def execute(self, owner: str) -> list[dict[str, Any]]:
        return [
            {key: value for key, value in job.items() if key != "output"}
            for job in self.status.list_jobs(owner)
        ]
