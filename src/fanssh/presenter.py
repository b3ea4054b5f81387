"""Rendering of collected job output."""

from __future__ import annotations

import shutil
import sys
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Sequence, TextIO

from .config import Settings
from .executor import Job, JobStatus
from .resolver import count_occurrences

GREEN = "\033[32m"
RED = "\033[31m"
RESET = "\033[0m"

NO_OUTPUT = "(no output)"
FILL = "-"


@dataclass(frozen=True)
class PresentationMetrics:
    """Column widths shared by every rendered row of a run."""

    max_hostname_width: int = 0
    max_exit_code_width: int = 0
    max_elapsed_width: int = 0
    any_job_multiline: bool = False
    any_nonzero: bool = False


@dataclass
class RenderOptions:
    show_exit_code: str = "auto"
    show_elapsed: bool = False
    separators: bool = False
    color: bool = False
    width: int = field(default_factory=lambda: shutil.get_terminal_size().columns)

    @classmethod
    def from_settings(cls, settings: Settings) -> RenderOptions:
        return cls(
            show_exit_code=settings.show_exit_code,
            show_elapsed=settings.show_elapsed,
            separators=settings.separators,
            color=settings.color,
        )


def _elapsed(job: Job) -> str:
    return f"{job.elapsed:.1f}s"


def compute_metrics(jobs: Sequence[Job]) -> PresentationMetrics:
    """Derive widths and flags over the complete set of jobs."""
    if not jobs:
        return PresentationMetrics()
    return PresentationMetrics(
        max_hostname_width=max(len(job.label) for job in jobs),
        max_exit_code_width=max(len(str(job.exit_code)) for job in jobs),
        max_elapsed_width=max(len(_elapsed(job)) for job in jobs),
        any_job_multiline=any(len(job.output) > 1 for job in jobs),
        any_nonzero=any(job.exit_code for job in jobs),
    )


def streaming_metrics(hosts: Sequence[str]) -> PresentationMetrics:
    """Metrics for no-wait mode, where only the host list is known up front."""
    width = 0
    for resolved in count_occurrences(hosts):
        label = resolved.hostname
        if resolved.occurrences > 1:
            label = f"{label}#{resolved.occurrences - 1}"
        width = max(width, len(label))
    # Exit codes are unknown until jobs finish, so "auto" shows them.
    return PresentationMetrics(
        max_hostname_width=width,
        max_exit_code_width=3,
        any_nonzero=True,
    )


def _show_exit_code(metrics: PresentationMetrics, options: RenderOptions) -> bool:
    if options.show_exit_code == "always":
        return True
    return options.show_exit_code == "auto" and metrics.any_nonzero


def job_label(job: Job, metrics: PresentationMetrics, options: RenderOptions) -> tuple[str, int]:
    """Return the row label and its printable width (escapes excluded)."""
    name = job.label
    if options.color:
        color = GREEN if job.status == JobStatus.SUCCESS else RED
        name = f"{color}{name}{RESET}"
    name += " " * (metrics.max_hostname_width - len(job.label))
    width = max(metrics.max_hostname_width, len(job.label))

    parts = [name]
    if _show_exit_code(metrics, options):
        parts.append(str(job.exit_code).ljust(metrics.max_exit_code_width))
        width += 1 + max(metrics.max_exit_code_width, len(str(job.exit_code)))
    if options.show_elapsed:
        parts.append(_elapsed(job).rjust(metrics.max_elapsed_width))
        width += 1 + max(metrics.max_elapsed_width, len(_elapsed(job)))
    return " ".join(parts), width


def render_job(job: Job, metrics: PresentationMetrics, options: RenderOptions) -> list[str]:
    """Render one job as a list of output lines."""
    label, label_width = job_label(job, metrics, options)

    if job.output:
        lines = job.output
    elif job.output_file is not None:
        lines = [f"output written to {job.output_file}"]
    else:
        lines = [NO_OUTPUT]

    if options.separators or metrics.any_job_multiline or len(lines) > 1:
        banner = f"-=< {label} >=-"
        banner += FILL * max(0, options.width - (label_width + 8))
        return [banner, *lines]
    return [f"{label} : {line}" for line in lines]


def order_by_host(jobs: Iterable[Job], hosts: Sequence[str]) -> list[Job]:
    """Arrange jobs in resolved host order, repeats in spawn order."""
    by_host: dict[str, list[Job]] = defaultdict(list)
    for job in jobs:
        by_host[job.host].append(job)

    ordered = []
    for resolved in count_occurrences(hosts):
        ordered.extend(sorted(by_host.pop(resolved.hostname, []), key=lambda j: j.sequence))
    # Anything not in the host list keeps spawn order at the end.
    leftovers = [job for host_jobs in by_host.values() for job in host_jobs]
    ordered.extend(sorted(leftovers, key=lambda j: j.sequence))
    return ordered


def render(
    jobs: Sequence[Job],
    metrics: PresentationMetrics,
    options: RenderOptions,
    hosts: Sequence[str] | None = None,
    stream: TextIO | None = None,
) -> None:
    """Write every job to ``stream``.

    With ``hosts`` the jobs follow that host order; otherwise they are
    written in the order given, which is completion order from the executor.
    """
    stream = stream or sys.stdout
    if hosts is not None:
        jobs = order_by_host(jobs, hosts)
    for job in jobs:
        for line in render_job(job, metrics, options):
            stream.write(line + "\n")
    stream.flush()
