# runner.py
from __future__ import annotations

import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from .backends import Backend, make_backend
from .errors import InvalidPlan, MissingLogFile
from .logsink import LogSink
from .model import Command, ExecutionConfig, Failure, JobResult, JobSpec, command_text
from .plan import build_plan

ProgressCallback = Callable[[int, int, JobResult], None]


# ----------------------------------------------------------------------
# Cancellation
# ----------------------------------------------------------------------

class CancelToken:
    """
    Stops a run from starting further jobs.

    Jobs already executing are left to finish, including any container
    and staging cleanup they owe.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# ----------------------------------------------------------------------
# Progress
# ----------------------------------------------------------------------

class _Progress:
    def __init__(self, total: int, callback: Optional[ProgressCallback]):
        self.total = total
        self.done = 0
        self._callback = callback
        self._lock = threading.Lock()

    def advance(self, result: JobResult) -> None:
        with self._lock:
            self.done += 1
            if self._callback is not None:
                self._callback(self.done, self.total, result)


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _not_started(job: JobSpec) -> JobResult:
    return JobResult(
        index=job.index,
        working_directory=job.working_directory,
        command_executed=command_text(job.command),
        outcome=Failure("cancelled before start"),
    )


def _run_job(
    job: JobSpec,
    config: ExecutionConfig,
    backend: Backend,
    sink: Optional[LogSink],
) -> JobResult:
    try:
        return backend.execute(job, config, sink)
    except Exception as e:
        # a backend bug must not take sibling jobs down with it
        return JobResult(
            index=job.index,
            working_directory=job.working_directory,
            command_executed=command_text(job.command),
            outcome=Failure(f"{type(e).__name__}: {e}"),
        )


def _run_sequential(
    plan: Sequence[JobSpec],
    config: ExecutionConfig,
    backend: Backend,
    cancel: CancelToken,
    progress: _Progress,
    results: List[Optional[JobResult]],
    sink: Optional[LogSink],
) -> None:
    for job in plan:
        result = _not_started(job) if cancel.cancelled else _run_job(job, config, backend, sink)
        results[job.index] = result
        progress.advance(result)


def _run_pool(
    plan: Sequence[JobSpec],
    config: ExecutionConfig,
    backend: Backend,
    cancel: CancelToken,
    progress: _Progress,
    results: List[Optional[JobResult]],
    sink: Optional[LogSink],
) -> None:
    pending: "queue.SimpleQueue[JobSpec]" = queue.SimpleQueue()
    for job in plan:
        pending.put(job)

    def worker() -> None:
        # one job at a time until the shared queue is drained
        while True:
            try:
                job = pending.get_nowait()
            except queue.Empty:
                return
            if cancel.cancelled:
                result = _not_started(job)
            else:
                result = _run_job(job, config, backend, sink)
            results[job.index] = result
            progress.advance(result)

    workers = min(config.concurrency_limit, len(plan))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mfcl-worker") as pool:
        futures = [pool.submit(worker) for _ in range(workers)]
        try:
            for fut in futures:
                fut.result()
        except KeyboardInterrupt:
            # let in-flight jobs finish their cleanup, start nothing new
            cancel.cancel()
            raise


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_plan(
    plan: Sequence[JobSpec],
    config: ExecutionConfig,
    backend: Optional[Backend] = None,
    *,
    cancel: Optional[CancelToken] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> List[JobResult]:
    """
    Execute every job of a plan and return one result per job.

    Results are ordered by JobSpec.index regardless of completion order.
    A failing job never stops its siblings; only cancel does, and then only
    for jobs that have not started yet.

    Raises:
        InvalidPlan: indexes are not 0..n-1 (plans come from build_plan).
        MissingLogFile: verbose is False and config has no log_file;
            resolve it first with ExecutionConfig.resolved(base_dir).
    """
    plan = list(plan)
    indexes = sorted(job.index for job in plan)
    if indexes != list(range(len(plan))):
        raise InvalidPlan(indexes)
    if not config.verbose and config.log_file is None:
        raise MissingLogFile()

    if not plan:
        return []

    if backend is None:
        backend = make_backend(config.backend_kind)
    cancel = cancel or CancelToken()
    progress = _Progress(len(plan), on_progress)
    # one sink per run: every job of this run writes through the same lock
    sink = None if config.verbose else LogSink(config.log_file)

    results: List[Optional[JobResult]] = [None] * len(plan)
    if config.sequential or len(plan) == 1:
        _run_sequential(plan, config, backend, cancel, progress, results, sink)
    else:
        _run_pool(plan, config, backend, cancel, progress, results, sink)

    return [r for r in results if r is not None]


def dispatch(
    base_dir: Union[str, Path],
    sub_dirs: Optional[Sequence[str]],
    commands: Union[str, Sequence[Command]],
    config: ExecutionConfig,
    backend: Optional[Backend] = None,
    *,
    cancel: Optional[CancelToken] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> List[JobResult]:
    """Validate, plan and run in one call. Validation errors raise before any job starts."""
    plan = build_plan(base_dir, sub_dirs, commands)
    config = config.resolved(base_dir)
    return run_plan(plan, config, backend, cancel=cancel, on_progress=on_progress)
