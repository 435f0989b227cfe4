from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO


class InvalidArchive(ValueError):
    pass


class StoragePort(ABC):
    @abstractmethod
    def save_archive(self, owner: str, job_id: str, filename: str, stream: BinaryIO) -> Path:
        """アップロードされたアーカイブをジョブ専用のディレクトリに保存"""
        ...

    @abstractmethod
    def extract_archive(self, owner: str, archive_path: Path) -> Path:
        """アーカイブを同じジョブディレクトリに展開し, 作業ディレクトリを返す"""
        ...

    @abstractmethod
    def discard(self, owner: str, job_id: str) -> None:
        """投入に失敗したジョブのファイルを削除"""
        ...
