"""Child process management: spawning, multi-wait, non-blocking pipes."""

from __future__ import annotations

import os
import select
import signal
import subprocess
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence, Union

from loguru import logger

from .errors import SpawnFailure

# Output policies for ProcessSpawner.spawn(); a Path redirects to that file.
CAPTURE = "capture"
DISCARD = "discard"
OutputPolicy = Union[str, Path]


@dataclass(frozen=True)
class ExitStatus:
    """Decoded raw wait status of a child process."""

    raw: int

    @property
    def exit_code(self) -> int:
        return os.WEXITSTATUS(self.raw) if os.WIFEXITED(self.raw) else 0

    @property
    def signal(self) -> int:
        return os.WTERMSIG(self.raw) if os.WIFSIGNALED(self.raw) else 0

    @property
    def core_dumped(self) -> bool:
        return os.WIFSIGNALED(self.raw) and os.WCOREDUMP(self.raw)

    @property
    def ok(self) -> bool:
        return self.raw == 0

    @classmethod
    def from_returncode(cls, returncode: int) -> ExitStatus:
        """Rebuild a raw status from a subprocess-style return code."""
        if returncode < 0:
            return cls(-returncode)
        return cls((returncode & 0xFF) << 8)


class PipeReader:
    """Buffers a pipe that is read without ever blocking."""

    def __init__(self, stream):
        self._stream = stream
        self._fd = stream.fileno()
        self._chunks: list[bytes] = []
        self.eof = False
        os.set_blocking(self._fd, False)

    def fileno(self) -> int:
        return self._fd

    @property
    def closed(self) -> bool:
        return self._stream.closed

    def try_read_available(self) -> bytes:
        """Read whatever is in the pipe right now, returning the new bytes."""
        if self.eof or self.closed:
            return b""
        new = []
        while True:
            try:
                chunk = os.read(self._fd, 65536)
            except BlockingIOError:
                break
            if not chunk:
                self.eof = True
                break
            new.append(chunk)
        data = b"".join(new)
        if data:
            self._chunks.append(data)
        return data

    def drain(self) -> bytes:
        """Collect what is left and close the pipe; returns the full buffer."""
        # A background grandchild can keep the write end open, so this reads
        # what is available instead of waiting for EOF.
        self.try_read_available()
        self.close()
        return self.getvalue()

    def getvalue(self) -> bytes:
        return b"".join(self._chunks)

    def close(self) -> None:
        if not self._stream.closed:
            self._stream.close()


class ProcessHandle:
    """A spawned child and, once reaped, its exit status."""

    def __init__(self, argv: Sequence[str], popen: subprocess.Popen, reader: PipeReader | None):
        self.argv = list(argv)
        self.popen = popen
        self.reader = reader
        self.status: ExitStatus | None = None
        self.start_time = time.monotonic()
        self.end_time: float | None = None

    @property
    def pid(self) -> int:
        return self.popen.pid

    @property
    def done(self) -> bool:
        return self.status is not None

    def reap(self, block: bool = False) -> ExitStatus | None:
        """Collect the exit status if the child has terminated."""
        if self.status is not None:
            return self.status
        try:
            pid, raw = os.waitpid(self.pid, 0 if block else os.WNOHANG)
        except ChildProcessError:
            # Someone else reaped it; subprocess kept the return code.
            if self.popen.returncode is None:
                raise
            status = ExitStatus.from_returncode(self.popen.returncode)
        else:
            if pid == 0:
                return None
            status = ExitStatus(raw)
            self.popen.returncode = os.waitstatus_to_exitcode(raw)

        self.status = status
        self.end_time = time.monotonic()
        return status


class CancellationToken:
    """A flag flipped by a one-shot SIGALRM timer or by cancel()."""

    def __init__(self):
        self._cancelled = False
        self._previous_handler = None
        self._armed = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def _on_alarm(self, signum, frame) -> None:
        self._cancelled = True

    def arm(self, seconds: float) -> None:
        """Start the timer; a non-positive value leaves the token unarmed."""
        if seconds <= 0:
            return
        self._previous_handler = signal.signal(signal.SIGALRM, self._on_alarm)
        signal.setitimer(signal.ITIMER_REAL, seconds)
        self._armed = True

    def disarm(self) -> None:
        if not self._armed:
            return
        signal.setitimer(signal.ITIMER_REAL, 0)
        signal.signal(signal.SIGALRM, self._previous_handler or signal.SIG_DFL)
        self._armed = False

    @contextmanager
    def armed(self, seconds: float) -> Iterator[CancellationToken]:
        self.arm(seconds)
        try:
            yield self
        finally:
            self.disarm()


def _wake(signum, frame) -> None:
    """SIGCHLD handler; the wakeup fd does the real work."""


def _drain_wakeup(fd: int) -> None:
    try:
        while os.read(fd, 512):
            pass
    except BlockingIOError:
        pass


class ProcessSpawner:
    """Starts children concurrently and waits on whichever finishes first."""

    def __init__(self, poll_interval: float = 0.05):
        self.poll_interval = poll_interval

    def spawn(self, argv: Sequence[str], output: OutputPolicy = CAPTURE) -> ProcessHandle:
        """Start ``argv`` without a shell; stderr always follows stdout."""
        try:
            if output == CAPTURE:
                popen = subprocess.Popen(
                    list(argv),
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                )
                return ProcessHandle(argv, popen, PipeReader(popen.stdout))

            if output == DISCARD:
                popen = subprocess.Popen(
                    list(argv),
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
                return ProcessHandle(argv, popen, None)

            with open(output, "wb") as f:
                popen = subprocess.Popen(
                    list(argv),
                    stdin=subprocess.DEVNULL,
                    stdout=f,
                    stderr=subprocess.STDOUT,
                )
            return ProcessHandle(argv, popen, None)
        except OSError as e:
            raise SpawnFailure(f"Cannot start {argv[0]}: {e}") from e

    @staticmethod
    def _next_exited(handles: Sequence[ProcessHandle]) -> ProcessHandle | None:
        """Reap the child the kernel reports as exited, if it is one of ours."""
        by_pid = {handle.pid: handle for handle in handles if not handle.done}
        try:
            info = os.waitid(os.P_ALL, 0, os.WEXITED | os.WNOHANG | os.WNOWAIT)
        except ChildProcessError:
            info = None
        if info is not None and info.si_pid in by_pid:
            handle = by_pid[info.si_pid]
            handle.reap()
            return handle

        # Nothing exited, or the first zombie is not ours: check ours directly.
        for handle in handles:
            if handle.reap() is not None:
                return handle
        return None

    @contextmanager
    def _child_wakeup(self) -> Iterator[int | None]:
        """Yield an fd that turns readable when a child exits or an alarm fires.

        Yields None off the main thread, where signals cannot be handled; the
        wait then falls back to polling every ``poll_interval``.
        """
        try:
            previous = signal.signal(signal.SIGCHLD, _wake)
        except ValueError:
            yield None
            return

        read_fd, write_fd = os.pipe()
        os.set_blocking(read_fd, False)
        os.set_blocking(write_fd, False)
        previous_fd = signal.set_wakeup_fd(write_fd, warn_on_full_buffer=False)
        try:
            yield read_fd
        finally:
            signal.set_wakeup_fd(previous_fd)
            signal.signal(signal.SIGCHLD, signal.SIG_DFL if previous is None else previous)
            os.close(read_fd)
            os.close(write_fd)

    def wait_any(
        self,
        handles: Sequence[ProcessHandle],
        block: bool = True,
        cancel: CancellationToken | None = None,
    ) -> ProcessHandle | None:
        """Return the next handle whose child has terminated.

        Children are reaped as soon as SIGCHLD arrives, so handles come back
        in the order their processes exited. Pipes of still-running children
        are drained into their buffers while waiting so a chatty child never
        stalls on a full pipe. Returns None when nothing has finished and
        either ``block`` is false or ``cancel`` has been triggered.
        """
        with self._child_wakeup() as wakeup_fd:
            while True:
                handle = self._next_exited(handles)
                if handle is not None:
                    return handle

                if not block or (cancel is not None and cancel.cancelled):
                    return None

                watched = [h.reader for h in handles if h.reader and not h.reader.eof]
                if wakeup_fd is not None:
                    watched.append(wakeup_fd)
                if not watched:
                    time.sleep(self.poll_interval)
                    continue

                ready, _, _ = select.select(watched, [], [], self.poll_interval)
                for item in ready:
                    if isinstance(item, int):
                        _drain_wakeup(item)
                    else:
                        item.try_read_available()

    def signal(self, handle: ProcessHandle, sig: int = signal.SIGINT) -> None:
        """Deliver ``sig`` unless the child has already been reaped."""
        if handle.done:
            return
        try:
            os.kill(handle.pid, sig)
        except ProcessLookupError:
            logger.debug("Process {} already gone", handle.pid)

    def abort(self, handles: Sequence[ProcessHandle]) -> None:
        """Terminate and reap every child in ``handles``."""
        for handle in handles:
            self.signal(handle, signal.SIGTERM)
        for handle in handles:
            handle.reap(block=True)
            if handle.reader:
                handle.reader.close()
