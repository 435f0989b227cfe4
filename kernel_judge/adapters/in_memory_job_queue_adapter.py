from __future__ import annotations

import queue

from kernel_judge.domain.job import Job
from kernel_judge.ports.job_queue_port import JobQueuePort


class InMemoryJobQueueAdapter(JobQueuePort):
    """プロセス内の FIFO キュー (単一コンシューマ前提)."""

    def __init__(self) -> None:
        self._jobs: queue.Queue[Job] = queue.Queue()

    def enqueue(self, job: Job) -> None:
        self._jobs.put_nowait(job)

    def dequeue(self, timeout: float = 0) -> Job | None:
        try:
            if timeout > 0:
                return self._jobs.get(timeout=timeout)
            return self._jobs.get_nowait()
        except queue.Empty:
            return None

    def size(self) -> int:
        return self._jobs.qsize()

    def __len__(self) -> int:
        return self.size()
