# backends/local.py
from __future__ import annotations

from typing import Tuple

from ..model import BackendKind, ExecutionConfig, JobSpec, command_text
from .base import Backend, LineCallback


class LocalBackend(Backend):
    """Run the job command directly on the host, inside its working directory."""

    kind = BackendKind.LOCAL

    def describe(self, job: JobSpec, config: ExecutionConfig) -> str:
        return command_text(job.command)

    def _run(self, job: JobSpec, config: ExecutionConfig, on_line: LineCallback) -> Tuple[str, Tuple[str, ...]]:
        command = self.describe(job, config)
        # cwd is scoped to the child process; ours never changes
        output = self.runner(job.command, job.working_directory, on_line=on_line)
        return command, self._check(output, "command", command)
