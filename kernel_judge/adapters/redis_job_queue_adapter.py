from __future__ import annotations

import json
import math

from redis import Redis, RedisError

from kernel_judge.domain.job import Job
from kernel_judge.ports.job_queue_port import JobQueuePort
from kernel_judge.ports.job_status_port import PersistenceError


class RedisJobQueueAdapter(JobQueuePort):
    """Redis List によるジョブキューの実装."""

    DEFAULT_QUEUE = "kernel_judge:jobs"

    def __init__(self, redis_client: Redis, queue_name: str | None = None):
        self.redis = redis_client
        self.queue_name = queue_name or self.DEFAULT_QUEUE

    def enqueue(self, job: Job) -> None:
        try:
            self.redis.lpush(self.queue_name, json.dumps(job.to_payload(), ensure_ascii=False))
        except RedisError as exc:
            raise PersistenceError(f"failed to enqueue job {job.id}: {exc}") from exc

    def dequeue(self, timeout: float = 0) -> Job | None:
        if timeout > 0:
            result = self.redis.brpop(self.queue_name, timeout=math.ceil(timeout))
            payload_bytes = result[1] if result else None
        else:
            payload_bytes = self.redis.rpop(self.queue_name)
        if not payload_bytes:
            return None
        return Job.from_payload(json.loads(payload_bytes.decode()))

    def size(self) -> int:
        return int(self.redis.llen(self.queue_name))
