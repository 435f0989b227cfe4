from __future__ import annotations

from abc import ABC, abstractmethod


class ProcessSupervisorPort(ABC):
    @abstractmethod
    def find_by_name(self, name: str, session_id: int | None = None) -> list[int]:
        """名前に name を含むプロセスの pid 一覧 (session_id 指定時はそのセッションに限定)"""
        ...

    @abstractmethod
    def kill(self, pid: int) -> None:
        """pid に強制終了シグナルを送る"""
        ...
