from __future__ import annotations

from abc import ABC, abstractmethod

from kernel_judge.domain.job import Job


class JobQueuePort(ABC):
    @abstractmethod
    def enqueue(self, job: Job) -> None:
        """ジョブを末尾に投入 (ブロックしない, 拒否しない)"""
        ...

    @abstractmethod
    def dequeue(self, timeout: float = 0) -> Job | None:
        """先頭のジョブを取り出し (timeout=0 なら待たずに None を返す)"""
        ...

    @abstractmethod
    def size(self) -> int:
        """待機中のジョブ数"""
        ...
