from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any

from kernel_judge.ports.job_status_port import JobStatus, JobStatusPort


class InMemoryJobStatusAdapter(JobStatusPort):
    """ジョブ状態をプロセス内の dict に保持するアダプタ."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    def create(self, job_id: str, owner: str) -> None:
        created_at = datetime.now(UTC).isoformat()
        with self._lock:
            self._records[job_id] = {
                "job_id": job_id,
                "owner": owner,
                "status": JobStatus.PENDING.value,
                "created_at": created_at,
                "updated_at": created_at,
            }

    def update(
        self,
        job_id: str,
        status: JobStatus,
        output: str | None = None,
        error: str | None = None,
    ) -> None:
        with self._lock:
            record = self._records.setdefault(job_id, {"job_id": job_id})
            record["status"] = status.value
            record["updated_at"] = datetime.now(UTC).isoformat()
            if output is not None:
                record["output"] = output
            if error is not None:
                record["error"] = error
            elif status.is_terminal:
                record.pop("error", None)

    def get_status(self, job_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._records.get(job_id)
            return dict(record) if record else None

    def list_jobs(self, owner: str) -> list[dict[str, Any]]:
        with self._lock:
            records = [dict(r) for r in self._records.values() if r.get("owner") == owner]
        return sorted(records, key=lambda r: r.get("created_at", ""), reverse=True)
