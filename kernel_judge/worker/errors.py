from __future__ import annotations


class ExecutionError(Exception):
    """Job-local failure; the job ends with status ERROR."""


class ValidationError(ExecutionError):
    """The work directory or its build subdirectory is missing."""


class SpawnError(ExecutionError):
    pass


class StreamError(ExecutionError):
    pass


class ExecutionTimeout(ExecutionError):
    def __init__(self, timeout: float) -> None:
        super().__init__(f"timeout after {timeout:g} seconds")
        self.timeout = timeout


class ExecutionAborted(ExecutionError):
    """The worker is shutting down; the build process was killed."""


class CleanupWarning(Warning):
    """Emulator cleanup failed; logged only."""
