"""Console output formatting utilities for mfcl-dispatch."""

from __future__ import annotations

import sys
import threading
from typing import Iterable, Optional, Sequence


class Console:
    """Centralized console output formatting.

    Jobs report from worker threads, so every multi-line message is written
    while holding a lock.
    """

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        self._lock = threading.Lock()

    def _emit(self, lines: Iterable[str], err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        text = "\n".join(lines)
        with self._lock:
            print(text, file=stream, flush=True)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._emit(["", title, "-" * len(title)])

    def print_run_started(
        self,
        base_dir: str,
        backend: str,
        job_count: int,
        workers: int,
        log_file: Optional[str] = None,
    ) -> None:
        """Print run start information."""
        lines = [
            "",
            "RUN STARTED",
            f"Project: {base_dir}",
            f"Backend: {backend}",
            f"Jobs: {job_count}",
            f"Workers: {workers}",
        ]
        if log_file:
            lines.append(f"Log file: {log_file}")
        lines.append("")
        self._emit(lines)

    def print_plan_job(self, index: int, sub_dir: str, command: str) -> None:
        """Print one planned job and its resolved command."""
        self._emit([f"  [{index}] {sub_dir}", f"      {command}"])

    def print_job_output(self, label: str, lines: Sequence[str]) -> None:
        """Echo captured job output, prefixed with the job label."""
        if not lines:
            return
        self._emit([f"[{label}] {line}" for line in lines])

    def print_job_finished(
        self,
        label: str,
        ok: bool,
        done: int,
        total: int,
        reason: Optional[str] = None,
    ) -> None:
        """Print per-job completion together with run progress."""
        status = "success" if ok else "failed"
        lines = [f"({done}/{total}) {label}: {status}"]
        if not ok and reason:
            if self.debug:
                lines.append(f"Error details: {reason}")
            else:
                # first line only outside debug mode
                lines.append(f"Error: {reason.splitlines()[0]}")
        self._emit(lines)

    def print_results(self, rows: Sequence[tuple]) -> None:
        """Print final results summary from (label, ok) rows."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for label, ok in rows:
            lines.append(f"  {label}: {'SUCCESS' if ok else 'FAILED'}")
        failed = sum(1 for _, ok in rows if not ok)
        lines.append(f"\n{len(rows) - failed} succeeded, {failed} failed")
        self._emit(lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = ["", f"ERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(lines, err=True)

    def print_warning(self, message: str) -> None:
        """Print a non-fatal warning."""
        self._emit([f"WARNING: {message}"], err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            self._emit([f"Error: {exc}"], err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit([message])

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit([f"[DEBUG] {message}"], err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
