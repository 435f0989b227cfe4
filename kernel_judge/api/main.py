"""kernel-judge API - Main entry point."""

import logging
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from kernel_judge import config
from kernel_judge.api.dependencies import get_job_queue, get_job_status
from kernel_judge.api.jobs import router as jobs_router
from kernel_judge.api.submissions import router as submissions_router
from kernel_judge.worker.main import create_worker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    if config.get_backend() != "memory":
        yield
        return

    # memory バックエンドではキューがプロセス内にあるため, ワーカーも同じプロセスで動かす
    worker = create_worker(get_job_queue(), get_job_status())
    thread = threading.Thread(target=worker.run, name="job-worker", daemon=True)
    thread.start()
    app.state.worker = worker
    app.state.worker_thread = thread
    try:
        yield
    finally:
        # 実行中のジョブがあればビルドプロセスごと停止する
        worker.stop()
        thread.join(timeout=10)
        if thread.is_alive():
            logger.warning("Embedded worker did not stop within 10 seconds.")
        else:
            logger.info("Embedded worker stopped.")


app = FastAPI(
    title="kernel-judge API",
    description="Builds and runs submitted kernels in an emulator and reports the usertests verdict",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "kernel-judge API is running"}


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


app.include_router(submissions_router)
app.include_router(jobs_router)
