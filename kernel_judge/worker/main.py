"""kernel-judge Worker - Main entry point."""

import logging
import signal
import sys

from redis import Redis

from kernel_judge import config
from kernel_judge.adapters.procfs_process_supervisor import ProcfsProcessSupervisor
from kernel_judge.adapters.redis_job_queue_adapter import RedisJobQueueAdapter
from kernel_judge.adapters.redis_job_status_adapter import RedisJobStatusAdapter
from kernel_judge.ports.job_queue_port import JobQueuePort
from kernel_judge.ports.job_status_port import JobStatusPort
from kernel_judge.worker.job_worker import JobWorker
from kernel_judge.worker.process_runner import ProcessRunner

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def create_worker(queue: JobQueuePort, status: JobStatusPort) -> JobWorker:
    runner = ProcessRunner(status=status, supervisor=ProcfsProcessSupervisor())
    return JobWorker(queue=queue, status=status, runner=runner)


def _create_worker() -> JobWorker:
    redis_client = Redis.from_url(config.get_redis_url())
    return create_worker(RedisJobQueueAdapter(redis_client), RedisJobStatusAdapter(redis_client))


def main() -> None:
    configure_logging()
    if config.get_backend() == "memory":
        logger.error("JUDGE_BACKEND=memory runs the worker inside the API process.")
        sys.exit(2)

    worker = _create_worker()
    signal.signal(signal.SIGTERM, lambda sig, frame: worker.stop())
    signal.signal(signal.SIGINT, lambda sig, frame: worker.stop())
    try:
        worker.run()
    finally:
        logger.info("Worker shutdown complete.")


if __name__ == "__main__":
    main()
