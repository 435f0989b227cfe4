"""Application configuration."""

import os
import shlex
from pathlib import Path


def get_backend() -> str:
    """Get queue/status backend ("redis" or "memory") from environment."""
    return os.getenv("JUDGE_BACKEND", "redis").strip().lower()


def get_redis_url() -> str:
    return os.getenv("REDIS_URL", "redis://redis:6379/0")


def get_upload_root() -> Path:
    """Get the root directory for uploaded archives and extracted work dirs."""
    return Path(os.getenv("UPLOAD_ROOT", "/shared/uploads"))


def get_user_overlay_dir() -> Path:
    """Get the reference user/ directory copied over every submission."""
    return Path(os.getenv("USER_OVERLAY_DIR", "user"))


def get_max_archive_bytes() -> int:
    """Get the total uncompressed size allowed for one extracted archive."""
    return int(os.getenv("MAX_ARCHIVE_BYTES", str(200 * 1024 * 1024)))


def get_job_timeout_seconds() -> float:
    """Get the wall-clock limit for a single job from environment."""
    return float(os.getenv("JOB_TIMEOUT_SECONDS", "300"))


def get_poll_interval() -> float:
    """Get the worker's idle wait between empty dequeues."""
    return float(os.getenv("WORKER_POLL_INTERVAL", "1.0"))


def get_build_subdir() -> str:
    return os.getenv("BUILD_SUBDIR", "os")


def get_build_command() -> list[str]:
    return shlex.split(os.getenv("BUILD_COMMAND", "make run"))


def get_rustup_toolchain() -> str:
    return os.getenv("RUSTUP_TOOLCHAIN", "nightly-2024-04-29")


def get_eval_trigger() -> str:
    """Get the line sent to the kernel shell to start the evaluation."""
    return os.getenv("EVAL_TRIGGER", "usertests")


def get_success_marker() -> str:
    return os.getenv("SUCCESS_MARKER", "Usertests passed!")


def get_failure_marker() -> str:
    return os.getenv("FAILURE_MARKER", "FAILED")


def get_emulator_process_name() -> str:
    return os.getenv("EMULATOR_PROCESS_NAME", "qemu-system")


def get_emulator_cleanup_scope() -> str:
    """Get the emulator sweep scope: "session" or "system"."""
    return os.getenv("EMULATOR_CLEANUP_SCOPE", "session").strip().lower()


def get_output_chunk_size() -> int:
    return int(os.getenv("OUTPUT_CHUNK_SIZE", "1024"))
