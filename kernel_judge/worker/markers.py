from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from kernel_judge import config


class Verdict(Enum):
    PASSED = "passed"
    FAILED = "failed"


@dataclass(frozen=True)
class MarkerPredicate:
    """Classifies accumulated build output by literal, case-sensitive markers."""

    success: str
    failure: str

    @classmethod
    def from_env(cls) -> MarkerPredicate:
        return cls(success=config.get_success_marker(), failure=config.get_failure_marker())

    def __call__(self, output: str) -> Verdict | None:
        # 両方出現した場合は成功を優先
        if self.success and self.success in output:
            return Verdict.PASSED
        if self.failure and self.failure in output:
            return Verdict.FAILED
        return None
