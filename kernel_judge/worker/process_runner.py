from __future__ import annotations

import contextlib
import logging
import os
import selectors
import signal
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path

from kernel_judge import config
from kernel_judge.domain.job import Job
from kernel_judge.ports.job_status_port import JobResult, JobStatus, JobStatusPort, PersistenceError
from kernel_judge.ports.process_supervisor_port import ProcessSupervisorPort
from kernel_judge.worker.errors import (
    CleanupWarning,
    ExecutionAborted,
    ExecutionError,
    ExecutionTimeout,
    SpawnError,
    StreamError,
    ValidationError,
)
from kernel_judge.worker.markers import MarkerPredicate, Verdict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunnerSettings:
    build_subdir: str = "os"
    command: tuple[str, ...] = ("make", "run")
    env: dict[str, str] = field(default_factory=lambda: {"RUSTUP_TOOLCHAIN": "nightly-2024-04-29"})
    trigger: str = "usertests"
    timeout: float = 300.0
    chunk_size: int = 1024
    emulator_name: str = "qemu-system"
    cleanup_scope: str = "session"
    reap_timeout: float = 5.0

    @classmethod
    def from_env(cls) -> RunnerSettings:
        return cls(
            build_subdir=config.get_build_subdir(),
            command=tuple(config.get_build_command()),
            env={"RUSTUP_TOOLCHAIN": config.get_rustup_toolchain()},
            trigger=config.get_eval_trigger(),
            timeout=config.get_job_timeout_seconds(),
            chunk_size=config.get_output_chunk_size(),
            emulator_name=config.get_emulator_process_name(),
            cleanup_scope=config.get_emulator_cleanup_scope(),
        )


class ProcessRunner:
    """Supervises one build/run invocation of a submission.

    The build tool's exit code does not reflect the embedded test suite, so
    the outcome is read from marker strings in its standard output. Every
    chunk is persisted as it arrives so observers see live progress while the
    job is RUNNING.
    """

    def __init__(
        self,
        status: JobStatusPort,
        supervisor: ProcessSupervisorPort,
        markers: MarkerPredicate | None = None,
        settings: RunnerSettings | None = None,
    ) -> None:
        self.status = status
        self.supervisor = supervisor
        self.markers = markers or MarkerPredicate.from_env()
        self.settings = settings or RunnerSettings.from_env()
        self._lock = threading.RLock()
        self._process: subprocess.Popen[bytes] | None = None
        self._aborted = False

    def abort(self) -> None:
        """Kill the running job's process group and refuse to start new jobs.

        Called on shutdown from another thread or a signal handler. The job
        that was running ends with status ERROR; the worker thread still runs
        the usual cleanup for it.
        """
        with self._lock:
            self._aborted = True
            process = self._process
            if process is None:
                return
            logger.warning(f"Aborting build process {process.pid}")
            # _process は回収前に外されるので, この pid はまだ再利用されていない
            self._kill_group(process)

    def execute(self, job: Job) -> JobResult:
        try:
            build_dir = self._validate(job)
            process = self._start(build_dir)
        except ExecutionError as exc:
            logger.error(f"Job {job.id} could not start: {exc}")
            return JobResult(JobStatus.ERROR, "", str(exc))

        buffer = bytearray()
        try:
            self._send_trigger(job, process)
            verdict = self._stream(job, process, buffer)
        except ExecutionError as exc:
            logger.error(f"Job {job.id} failed: {exc}")
            return JobResult(JobStatus.ERROR, self._decode(buffer), str(exc))
        finally:
            self._finalize(job, process)

        output = self._decode(buffer)
        if verdict is Verdict.PASSED:
            return JobResult(JobStatus.PASSED, output)
        if verdict is None:
            logger.info(f"Job {job.id} output ended without a marker")
        return JobResult(JobStatus.FAILED, output)

    def _validate(self, job: Job) -> Path:
        work_dir = Path(job.work_dir)
        if not work_dir.is_dir():
            raise ValidationError(f"work directory does not exist: {work_dir}")
        build_dir = work_dir / self.settings.build_subdir
        if not build_dir.is_dir():
            raise ValidationError(f"build directory does not exist: {build_dir}")
        return build_dir

    def _start(self, build_dir: Path) -> subprocess.Popen[bytes]:
        with self._lock:
            if self._aborted:
                raise ExecutionAborted("job aborted: worker is shutting down")
            process = self._spawn(build_dir)
            self._process = process
            # 起動中にシグナルハンドラから abort された場合
            if self._aborted:
                self._kill_group(process)
            return process

    def _spawn(self, build_dir: Path) -> subprocess.Popen[bytes]:
        env = {**os.environ, **self.settings.env}
        logger.info(f"Executing command: {' '.join(self.settings.command)} in {build_dir}")
        try:
            return subprocess.Popen(
                list(self.settings.command),
                cwd=build_dir,
                env=env,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            raise SpawnError(f"failed to start build process: {exc}") from exc

    def _send_trigger(self, job: Job, process: subprocess.Popen[bytes]) -> None:
        stdin = process.stdin
        if stdin is None:
            return
        try:
            stdin.write(f"{self.settings.trigger}\n".encode())
            stdin.flush()
        except OSError as exc:
            logger.warning(f"Failed to send trigger to job {job.id}: {exc}")
        finally:
            with contextlib.suppress(OSError):
                stdin.close()

    def _stream(self, job: Job, process: subprocess.Popen[bytes], buffer: bytearray) -> Verdict | None:
        if process.stdout is None:
            raise StreamError("build process has no output pipe")
        deadline = time.monotonic() + self.settings.timeout
        fd = process.stdout.fileno()

        with selectors.DefaultSelector() as selector:
            selector.register(fd, selectors.EVENT_READ)
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ExecutionTimeout(self.settings.timeout)
                if not selector.select(timeout=remaining):
                    continue
                try:
                    chunk = os.read(fd, self.settings.chunk_size)
                except OSError as exc:
                    raise StreamError(f"failed to read build output: {exc}") from exc
                if not chunk:
                    if self._aborted:
                        raise ExecutionAborted("job aborted: worker is shutting down")
                    return None

                buffer.extend(chunk)
                output = self._decode(buffer)
                self._publish(job, output)
                verdict = self.markers(output)
                if verdict is not None:
                    logger.info(f"Job {job.id} reported {verdict.value}")
                    return verdict

    def _publish(self, job: Job, output: str) -> None:
        try:
            self.status.update(job.id, JobStatus.RUNNING, output=output)
        except PersistenceError as exc:
            logger.warning(f"Could not persist progress of job {job.id}: {exc}")

    def _finalize(self, job: Job, process: subprocess.Popen[bytes]) -> None:
        with self._lock:
            self._process = None
        self._stop_child(job, process)
        self._sweep_emulators(job, process.pid)

    def _stop_child(self, job: Job, process: subprocess.Popen[bytes]) -> None:
        self._kill_group(process)
        try:
            process.wait(timeout=self.settings.reap_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Build process of job {job.id} did not exit after SIGKILL")
        if process.stdout is not None:
            process.stdout.close()

    def _kill_group(self, process: subprocess.Popen[bytes]) -> None:
        # 子プロセスは未回収なので pgid はまだ再利用されていない
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except PermissionError:
            process.kill()

    def _sweep_emulators(self, job: Job, session_id: int) -> None:
        scope = session_id if self.settings.cleanup_scope == "session" else None
        try:
            pids = self.supervisor.find_by_name(self.settings.emulator_name, session_id=scope)
        except (CleanupWarning, OSError) as exc:
            logger.warning(f"Emulator cleanup after job {job.id} failed: {exc}")
            return

        for pid in pids:
            try:
                self.supervisor.kill(pid)
            except (CleanupWarning, OSError) as exc:
                logger.warning(f"Could not kill emulator process {pid}: {exc}")
                continue
            logger.info(f"Killed emulator process {pid} left by job {job.id}")

    def _decode(self, buffer: bytearray) -> str:
        return buffer.decode("utf-8", errors="replace")
