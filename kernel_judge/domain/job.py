from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class Job:
    """One evaluation request tied to a prepared working directory."""

    id: str
    owner: str
    work_dir: Path

    def to_payload(self) -> dict[str, str]:
        return {"job_id": self.id, "owner": self.owner, "work_dir": str(self.work_dir)}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Job:
        return cls(
            id=str(payload["job_id"]),
            owner=str(payload["owner"]),
            work_dir=Path(payload["work_dir"]),
        )
