from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from redis import Redis, RedisError

from kernel_judge.ports.job_status_port import JobStatus, JobStatusPort, PersistenceError


class RedisJobStatusAdapter(JobStatusPort):
    """Redis Hash を使ってジョブ状態を保持するアダプタ."""

    KEY_PREFIX = "kernel_judge:job:"
    TTL_SECONDS = 90 * 24 * 60 * 60

    def __init__(self, redis_client: Redis, prefix: str | None = None):
        self.redis = redis_client
        self.key_prefix = prefix or self.KEY_PREFIX

    def key_for(self, job_id: str) -> str:
        return f"{self.key_prefix}{job_id}"

    def create(self, job_id: str, owner: str) -> None:
        key = self.key_for(job_id)
        created_at = datetime.now(UTC).isoformat()
        payload = {
            "job_id": job_id,
            "owner": owner,
            "status": JobStatus.PENDING.value,
            "created_at": created_at,
            "updated_at": created_at,
        }
        try:
            with self.redis.pipeline() as pipe:
                pipe.hset(key, mapping=payload)
                pipe.expire(key, self.TTL_SECONDS)
                pipe.execute()
        except RedisError as exc:
            raise PersistenceError(f"failed to create job {job_id}: {exc}") from exc

    def update(
        self,
        job_id: str,
        status: JobStatus,
        output: str | None = None,
        error: str | None = None,
    ) -> None:
        key = self.key_for(job_id)
        payload = {
            "job_id": job_id,
            "status": status.value,
            "updated_at": datetime.now(UTC).isoformat(),
        }
        if output is not None:
            payload["output"] = output
        if error is not None:
            payload["error"] = error

        try:
            # 1 回のトランザクションで書き込み, 部分的な更新を残さない
            with self.redis.pipeline() as pipe:
                pipe.hset(key, mapping=payload)
                if error is None and status.is_terminal:
                    pipe.hdel(key, "error")
                pipe.expire(key, self.TTL_SECONDS)
                pipe.execute()
        except RedisError as exc:
            raise PersistenceError(f"failed to update job {job_id}: {exc}") from exc

    def get_status(self, job_id: str) -> dict[str, str] | None:
        raw = self.redis.hgetall(self.key_for(job_id))
        if not raw:
            return None
        return {k.decode(): v.decode() for k, v in raw.items()}

    def list_jobs(self, owner: str) -> list[dict[str, Any]]:
        jobs: list[dict[str, Any]] = []
        for key in self.redis.scan_iter(f"{self.key_prefix}*"):
            raw = self.redis.hgetall(key)
            if not raw:
                continue
            record = {k.decode(): v.decode() for k, v in raw.items()}
            if record.get("owner") == owner:
                jobs.append(record)
        return sorted(jobs, key=lambda r: r.get("created_at", ""), reverse=True)
