from __future__ import annotations

import io
import os
import stat
import zipfile
from collections.abc import Callable, Generator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import fakeredis
import pytest
from fastapi.testclient import TestClient

from kernel_judge.adapters.filesystem_storage_adapter import FileSystemStorageAdapter
from kernel_judge.adapters.procfs_process_supervisor import ProcfsProcessSupervisor
from kernel_judge.adapters.redis_job_queue_adapter import RedisJobQueueAdapter
from kernel_judge.adapters.redis_job_status_adapter import RedisJobStatusAdapter
from kernel_judge.api import jobs as jobs_module
from kernel_judge.api import submissions as submissions_module
from kernel_judge.api.main import app
from kernel_judge.worker.job_worker import JobWorker
from kernel_judge.worker.markers import MarkerPredicate
from kernel_judge.worker.process_runner import ProcessRunner, RunnerSettings

# `make run` を提出物の os/fake_kernel.sh の実行に置き換える
FAKE_MAKE = """#!/bin/sh
if [ "$1" != "run" ]; then
    echo "unexpected target: $1" >&2
    exit 2
fi
exec sh ./fake_kernel.sh
"""


@dataclass
class IntegrationContext:
    client: TestClient
    storage: FileSystemStorageAdapter
    uploads_root: Path
    overlay_dir: Path
    fake_redis: fakeredis.FakeRedis
    queue_adapter: RedisJobQueueAdapter
    status_adapter: RedisJobStatusAdapter
    runner: ProcessRunner
    job_worker: JobWorker


@pytest.fixture
def fake_make(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    make = bin_dir / "make"
    make.write_text(FAKE_MAKE)
    make.chmod(make.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    return make


@pytest.fixture
def kernel_zip() -> Callable[[str, dict[str, str] | None], bytes]:
    """fake_kernel.sh を os/ に含む提出アーカイブを作る."""

    def build(script: str, extra: dict[str, str] | None = None) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("os/Makefile", "run:\n\tqemu-system-riscv64 -machine virt\n")
            archive.writestr("os/fake_kernel.sh", script)
            archive.writestr("user/src/bin/usertests.rs", "// submitted\n")
            for name, content in (extra or {}).items():
                archive.writestr(name, content)
        return buffer.getvalue()

    return build


@pytest.fixture
def integration_context(tmp_path: Path, fake_make: Path) -> Generator[IntegrationContext]:
    fake_redis = fakeredis.FakeRedis()
    uploads_root = tmp_path / "uploads"
    overlay_dir = tmp_path / "reference-user"
    (overlay_dir / "src" / "bin").mkdir(parents=True)
    (overlay_dir / "src" / "bin" / "usertests.rs").write_text("// reference\n")

    storage = FileSystemStorageAdapter(uploads_root, overlay_dir=overlay_dir)
    queue_adapter = RedisJobQueueAdapter(fake_redis)
    status_adapter = RedisJobStatusAdapter(fake_redis)
    runner = ProcessRunner(
        status=status_adapter,
        supervisor=ProcfsProcessSupervisor(),
        markers=MarkerPredicate("Usertests passed!", "FAILED"),
        settings=RunnerSettings(timeout=10.0),
    )
    job_worker = JobWorker(queue_adapter, status_adapter, runner, poll_interval=0.01)

    overrides: dict[Callable[..., Any], Callable[..., Any]] = {
        submissions_module.get_storage: lambda: storage,
        submissions_module.get_job_queue: lambda: queue_adapter,
        submissions_module.get_job_status: lambda: status_adapter,
        jobs_module.get_job_status: lambda: status_adapter,
        submissions_module.get_current_user: lambda: "integration-user",
    }
    app.dependency_overrides.update(overrides)
    client = TestClient(app)

    context = IntegrationContext(
        client=client,
        storage=storage,
        uploads_root=uploads_root,
        overlay_dir=overlay_dir,
        fake_redis=fake_redis,
        queue_adapter=queue_adapter,
        status_adapter=status_adapter,
        runner=runner,
        job_worker=job_worker,
    )

    try:
        yield context
    finally:
        app.dependency_overrides.clear()
