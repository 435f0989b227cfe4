from __future__ import annotations

import logging
import os
import signal
from pathlib import Path

from kernel_judge.ports.process_supervisor_port import ProcessSupervisorPort
from kernel_judge.worker.errors import CleanupWarning

logger = logging.getLogger(__name__)


class ProcfsProcessSupervisor(ProcessSupervisorPort):
    """/proc を走査してプロセスを名前で探し, SIGKILL で終了させる実装 (Linux)."""

    def __init__(self, proc_root: Path | None = None) -> None:
        self.proc_root = proc_root or Path("/proc")

    def find_by_name(self, name: str, session_id: int | None = None) -> list[int]:
        try:
            entries = list(self.proc_root.iterdir())
        except OSError as exc:
            raise CleanupWarning(f"cannot enumerate processes: {exc}") from exc

        own_pid = os.getpid()
        matches: list[int] = []
        for entry in entries:
            if not entry.name.isdigit():
                continue
            pid = int(entry.name)
            if pid == own_pid:
                continue
            try:
                if not self._name_matches(entry, name):
                    continue
                if session_id is not None and self._session_of(entry) != session_id:
                    continue
            except (FileNotFoundError, ProcessLookupError, PermissionError, ValueError):
                # プロセスが走査中に消えた, または読めない
                continue
            matches.append(pid)
        return sorted(matches)

    def kill(self, pid: int) -> None:
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            logger.debug("Process %s already exited", pid)
        except PermissionError as exc:
            raise CleanupWarning(f"cannot kill process {pid}: {exc}") from exc

    def _name_matches(self, entry: Path, name: str) -> bool:
        comm = (entry / "comm").read_text(errors="replace").strip()
        if name in comm:
            return True
        # comm は 15 文字で切り詰められるので argv[0] も確認する
        cmdline = (entry / "cmdline").read_bytes().split(b"\0", 1)[0]
        return name in os.path.basename(cmdline.decode(errors="replace"))

    def _session_of(self, entry: Path) -> int:
        stat = (entry / "stat").read_text(errors="replace")
        # "pid (comm) state ppid pgrp session ..." ; comm may contain spaces
        fields = stat[stat.rindex(")") + 2 :].split()
        return int(fields[3])
