from __future__ import annotations

import logging
import threading

from kernel_judge import config
from kernel_judge.domain.job import Job
from kernel_judge.ports.job_queue_port import JobQueuePort
from kernel_judge.ports.job_status_port import JobResult, JobStatus, JobStatusPort
from kernel_judge.worker.process_runner import ProcessRunner

logger = logging.getLogger(__name__)


class JobWorker:
    """Job queue consumer that evaluates submissions strictly one at a time."""

    def __init__(
        self,
        queue: JobQueuePort,
        status: JobStatusPort,
        runner: ProcessRunner,
        poll_interval: float | None = None,
    ) -> None:
        self.queue = queue
        self.status = status
        self.runner = runner
        self.poll_interval = config.get_poll_interval() if poll_interval is None else poll_interval
        self._stop_event = threading.Event()

    def stop(self) -> None:
        """Stop the loop and kill the build process of the job in progress."""
        self._stop_event.set()
        self.runner.abort()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def run(self) -> None:
        """Block until stop is requested, processing jobs from the queue."""
        logger.info("JobWorker started.")
        try:
            while not self._stop_event.is_set():
                if self.process_next() is None:
                    self._stop_event.wait(self.poll_interval)
        finally:
            logger.info("JobWorker stopped.")

    def process_next(self) -> Job | None:
        """Dequeue and execute a single job, returning it (None when idle)."""
        try:
            job = self.queue.dequeue()
        except Exception:  # pragma: no cover - guards worker crash
            logger.exception("Failed to dequeue job")
            return None
        if job is None:
            return None
        self.execute_job(job)
        return job

    def execute_job(self, job: Job) -> JobResult | None:
        logger.info(f"Processing job {job.id} for {job.owner}")
        try:
            self.status.update(job.id, JobStatus.RUNNING)
        except Exception as exc:
            logger.error(f"Failed to mark job {job.id} as running, skipping it: {exc}")
            return None

        try:
            result = self.runner.execute(job)
        except Exception as exc:
            logger.exception(f"Failed to execute job {job.id}")
            self._record_crash(job, exc)
            return None

        try:
            self.status.update(job.id, result.status, output=result.output, error=result.error)
        except Exception as exc:
            logger.error(f"Failed to save result of job {job.id}: {exc}")
            return result

        logger.info(f"Job {job.id} completed with status: {result.status.value}")
        return result

    def _record_crash(self, job: Job, exc: Exception) -> None:
        try:
            self.status.update(job.id, JobStatus.ERROR, error=str(exc))
        except Exception as update_exc:
            logger.error(f"Failed to record crash of job {job.id}: {update_exc}")
