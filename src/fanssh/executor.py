"""Parallel remote command execution across hosts."""

from __future__ import annotations

import signal
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from loguru import logger

from .config import Settings
from .errors import ConfigError, SpawnFailure
from .spawner import CAPTURE, CancellationToken, ProcessHandle, ProcessSpawner

TIMEOUT_MARKER = "*** fanssh: timed out, interrupted ***"


class JobStatus(Enum):
    """Status of a job's execution."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class Job:
    """One run of the command on one host."""

    host: str
    occurrence: int
    sequence: int
    argv: list[str]
    handle: ProcessHandle | None = field(default=None, repr=False)
    start_time: float = 0.0
    end_time: float | None = None
    output: list[str] = field(default_factory=list)
    exit_code: int = 0
    signal: int = 0
    core_dumped: bool = False
    status: JobStatus = JobStatus.RUNNING
    output_file: Path | None = None

    @property
    def pid(self) -> int | None:
        return self.handle.pid if self.handle else None

    @property
    def label(self) -> str:
        """Hostname, with ``#N`` for repeat occurrences."""
        return self.host if self.occurrence == 0 else f"{self.host}#{self.occurrence}"

    @property
    def elapsed(self) -> float:
        if self.end_time is None:
            return 0.0
        return self.end_time - self.start_time


# Type alias for completion callback
CompletionCallback = Callable[[Job], None]


def build_command(host: str, command: str, settings: Settings) -> list[str]:
    """Build the remote client argv for ``host``; no shell is involved."""
    argv = [settings.ssh_binary, "-T", "-o", "BatchMode=yes"]
    if not settings.strict_host_keys:
        argv += ["-o", "StrictHostKeyChecking=no"]
    target = f"{settings.user}@{host}" if settings.user else host
    argv += [target, command.replace(settings.placeholder, host)]
    return argv


def output_path(output_dir: Path, host: str, occurrence: int) -> Path:
    """File for a job's output; repeats get ``.1``, ``.2`` ... suffixes."""
    name = host if occurrence == 0 else f"{host}.{occurrence}"
    return output_dir / name


def aggregate_exit_code(jobs: Sequence[Job]) -> int:
    """First nonzero exit code in completion order, else 0."""
    for job in jobs:
        if job.exit_code:
            return job.exit_code
    return 0


def _decode_lines(data: bytes) -> list[str]:
    return data.decode("utf-8", errors="replace").splitlines()


class Executor:
    """Fans a command out to hosts and collects every result."""

    def __init__(
        self,
        settings: Settings,
        spawner: ProcessSpawner | None = None,
        on_complete: CompletionCallback | None = None,
        cancel: CancellationToken | None = None,
    ):
        self.settings = settings
        self.spawner = spawner or ProcessSpawner()
        self.on_complete = on_complete
        self.cancel = cancel or CancellationToken()
        self.jobs: list[Job] = []
        self._interrupted: list[ProcessHandle] = []

    def _spawn_all(self, command: str, hosts: Sequence[str]) -> dict[ProcessHandle, Job]:
        """Start one child per host before waiting on any of them."""
        output_dir = Path(self.settings.output_dir) if self.settings.output_dir else None
        if output_dir:
            try:
                output_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigError(f"Cannot create output directory {output_dir}: {e}") from e

        occurrences: Counter[str] = Counter()
        by_handle: dict[ProcessHandle, Job] = {}
        for sequence, host in enumerate(hosts):
            occurrence = occurrences[host]
            occurrences[host] += 1

            argv = build_command(host, command, self.settings)
            target = output_path(output_dir, host, occurrence) if output_dir else CAPTURE
            try:
                handle = self.spawner.spawn(argv, target)
            except SpawnFailure:
                self.spawner.abort(list(by_handle))
                raise

            job = Job(
                host=host,
                occurrence=occurrence,
                sequence=sequence,
                argv=argv,
                handle=handle,
                start_time=handle.start_time,
                output_file=target if output_dir else None,
            )
            logger.debug("Spawned pid {} for {}: {}", handle.pid, job.label, argv)
            self.jobs.append(job)
            by_handle[handle] = job
        return by_handle

    def _finish(self, job: Job) -> None:
        """Record the exit status and captured output of a reaped job."""
        handle = job.handle
        status = handle.status
        job.end_time = handle.end_time
        job.exit_code = status.exit_code
        job.signal = status.signal
        job.core_dumped = status.core_dumped
        job.status = JobStatus.SUCCESS if status.ok else JobStatus.FAILED
        if handle.reader:
            job.output = _decode_lines(handle.reader.drain())
        logger.debug("{} finished with exit code {}", job.label, job.exit_code)

    def _interrupt(self, job: Job) -> None:
        """Interrupt a job still running when the timer fired."""
        handle = job.handle
        self.spawner.signal(handle, signal.SIGINT)
        status = handle.reap()
        if status is not None:
            job.signal = status.signal
            job.core_dumped = status.core_dumped
        else:
            self._interrupted.append(handle)
        job.end_time = handle.end_time or time.monotonic()
        if handle.reader:
            job.output = _decode_lines(handle.reader.drain())
        job.output.append(TIMEOUT_MARKER)
        job.exit_code = -1
        job.status = JobStatus.TIMED_OUT

    def _completed(self, job: Job, completed: list[Job]) -> None:
        completed.append(job)
        if self.on_complete:
            self.on_complete(job)

    def run(self, command: str, hosts: Sequence[str]) -> tuple[list[Job], int]:
        """Run ``command`` on every host in parallel.

        Returns the jobs in completion order and the aggregate exit code.
        """
        by_handle = self._spawn_all(command, hosts)
        pending = list(by_handle)
        completed: list[Job] = []

        with self.cancel.armed(self.settings.timeout):
            while pending:
                handle = self.spawner.wait_any(pending, cancel=self.cancel)
                if handle is None:
                    break
                pending.remove(handle)
                job = by_handle[handle]
                self._finish(job)
                self._completed(job, completed)

        if pending:
            logger.warning(
                "Timed out after {}s, interrupting {} unfinished job(s)",
                self.settings.timeout,
                len(pending),
            )
            for handle in pending:
                job = by_handle[handle]
                self._interrupt(job)
                self._completed(job, completed)

        return completed, aggregate_exit_code(completed)

    def reap_interrupted(self) -> int:
        """Reap interrupted children that have exited since the timeout.

        Never blocks; returns how many are still running.
        """
        self._interrupted = [h for h in self._interrupted if h.reap() is None]
        return len(self._interrupted)
