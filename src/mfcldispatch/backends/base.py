# backends/base.py
from __future__ import annotations

import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ..errors import ExecutionError, InfrastructureError, MissingLogFile
from ..logsink import LogSink
from ..model import (
    BackendKind,
    Command,
    ExecutionConfig,
    Failure,
    JobResult,
    JobSpec,
    Success,
    command_text,
)
from ..ui.console import get_console


# ---------------------------------------------------------------------
# Process primitive
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class ProcessOutput:
    returncode: int
    lines: Tuple[str, ...]


LineCallback = Callable[[str], None]

# runner(cmd, cwd, on_line=None) -> ProcessOutput
ProcessRunner = Callable[..., ProcessOutput]


def run_process(
    cmd: Command,
    cwd: Optional[Path] = None,
    on_line: Optional[LineCallback] = None,
) -> ProcessOutput:
    """
    Run a command to completion, capturing stdout and stderr interleaved.

    A str is run through the shell; a sequence is executed directly.
    The working directory applies to the child only. Each line is passed
    to on_line as soon as it is read.
    """
    shell = isinstance(cmd, str)
    args = cmd if shell else list(cmd)
    try:
        proc = subprocess.Popen(
            args,
            shell=shell,
            cwd=str(cwd) if cwd is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        )
    except FileNotFoundError as e:
        if not shell and (cwd is None or Path(cwd).is_dir()):
            raise InfrastructureError.missing_tool(args[0], command=command_text(cmd)) from e
        raise ExecutionError(
            message=f"Could not launch command: {e}",
            command=command_text(cmd),
        ) from e
    except OSError as e:
        raise ExecutionError(
            message=f"Could not launch command: {e}",
            command=command_text(cmd),
        ) from e

    lines: List[str] = []
    with proc:
        for raw in proc.stdout:
            line = raw.rstrip("\n")
            lines.append(line)
            if on_line is not None:
                on_line(line)
    return ProcessOutput(proc.returncode, tuple(lines))


def container_shell(command: Command) -> List[str]:
    """Arguments that run a job command inside a container."""
    if isinstance(command, str):
        return ["sh", "-c", command]
    return list(command)


# ---------------------------------------------------------------------
# Backend interface
# ---------------------------------------------------------------------

class Backend(ABC):
    """
    Executes one JobSpec and reports a JobResult.

    Subclasses implement _run(), returning (command_executed, output_lines)
    or raising ExecutionError. Lines of the job's own command go to on_line
    while it runs. execute() never raises ExecutionError: it is folded into
    a Failure outcome so sibling jobs are unaffected.
    """

    kind: BackendKind

    def __init__(self, runner: ProcessRunner = run_process):
        self.runner = runner

    @abstractmethod
    def describe(self, job: JobSpec, config: ExecutionConfig) -> str:
        """The command line this backend would run for job (for display)."""

    @abstractmethod
    def _run(
        self,
        job: JobSpec,
        config: ExecutionConfig,
        on_line: LineCallback,
    ) -> Tuple[str, Tuple[str, ...]]:
        ...

    def execute(
        self,
        job: JobSpec,
        config: ExecutionConfig,
        sink: Optional[LogSink] = None,
    ) -> JobResult:
        """
        Run one job.

        Verbose runs echo output live on the console. Quiet runs write the
        job's output as one block to sink (a LogSink on config.log_file when
        not given), and a quiet config without a log file is rejected.
        """
        if not config.verbose:
            if config.log_file is None:
                raise MissingLogFile()
            sink = sink or LogSink(config.log_file)

        console = get_console()
        streamed = []

        def on_line(line: str) -> None:
            streamed.append(line)
            if config.verbose:
                console.print_job_output(job.label, [line])

        start = time.time()
        try:
            command, lines = self._run(job, config, on_line)
            failure = None
        except ExecutionError as e:
            command = e.command or self.describe(job, config)
            lines = tuple(e.output)
            failure = e

        if config.verbose:
            # output from steps that did not stream (e.g. a failed docker cp)
            if not streamed:
                console.print_job_output(job.label, lines)
        else:
            sink.write_block(f"[job {job.index}] {job.working_directory} :: {command}", lines)

        # quiet runs keep successful output in the log file only
        if failure is None:
            outcome = Success(output=tuple(lines) if config.verbose else ())
        else:
            outcome = Failure(message=str(failure), exit_code=failure.exit_code, output=tuple(lines))

        return JobResult(
            index=job.index,
            working_directory=job.working_directory,
            command_executed=command,
            outcome=outcome,
            duration=time.time() - start,
        )

    def _check(self, output: ProcessOutput, what: str, command: str) -> Tuple[str, ...]:
        if output.returncode != 0:
            raise ExecutionError(
                message=f"{what} failed",
                command=command,
                exit_code=output.returncode,
                output=output.lines,
            )
        return output.lines
