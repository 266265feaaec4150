# backends/copy.py
from __future__ import annotations

import shlex
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import List, Optional, Tuple

from .. import settings
from ..errors import ExecutionError, InfrastructureError
from ..model import BackendKind, Command, ExecutionConfig, JobSpec
from ..ui.console import get_console
from .base import Backend, LineCallback, ProcessRunner, container_shell, run_process


def copy_contents(src: Path, dst: Path) -> None:
    """Copy the *contents* of src into dst, overwriting files that exist."""
    dst.mkdir(parents=True, exist_ok=True)
    for entry in src.iterdir():
        target = dst / entry.name
        if entry.is_dir() and not entry.is_symlink():
            shutil.copytree(entry, target, symlinks=True, dirs_exist_ok=True)
        else:
            shutil.copy2(entry, target, follow_symlinks=False)


class CopyIsolatedBackend(Backend):
    """
    Stage the job directory through a short local path and a throwaway
    container instead of bind-mounting it.

    Steps per job:
      1. copy subdirectory -> staging dir
      2. docker run -d --name <name> <image> tail -f /dev/null
      3. docker cp <staging>/. <name>:/jobs
      4. docker exec -w /jobs <name> <command>
      5. docker cp <name>:/jobs/. <staging>
      6. docker rm -f <name>
      7. copy staging dir -> subdirectory
      8. delete staging dir

    Steps 6 and 8 always run. Their failures are reported as warnings and
    never replace the job's own outcome.
    """

    kind = BackendKind.COPY_ISOLATED

    def __init__(
        self,
        runner: ProcessRunner = run_process,
        *,
        docker: Optional[str] = None,
        staging_root: Optional[str | Path] = None,
        container_dir: Optional[str] = None,
        prefix: Optional[str] = None,
    ):
        super().__init__(runner)
        self.docker = docker or settings.DOCKER
        self.staging_root = Path(staging_root) if staging_root is not None else settings.STAGING_ROOT
        self.container_dir = container_dir or settings.CONTAINER_DIR
        self.prefix = prefix or settings.CONTAINER_PREFIX

    # ---- naming / commands ----

    def container_name(self) -> str:
        return f"{self.prefix}_{uuid.uuid4().hex}"

    def exec_argv(self, name: str, command: Command) -> List[str]:
        return [self.docker, "exec", "-w", self.container_dir, name, *container_shell(command)]

    def describe(self, job: JobSpec, config: ExecutionConfig) -> str:
        return shlex.join(self.exec_argv(f"{self.prefix}_<id>", job.command))

    def _docker(self, *args: str) -> Tuple[str, ...]:
        argv = [self.docker, *args]
        command = shlex.join(argv)
        output = self.runner(argv, None)
        return self._check(output, f"docker {args[0]}", command)

    def _make_staging(self, command: str) -> Path:
        try:
            self.staging_root.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix="subdir_", dir=str(self.staging_root)))
        except OSError as e:
            raise InfrastructureError(
                message=f"Could not create staging directory under {self.staging_root}: {e}",
                command=command,
            ) from e

    def _cleanup(self, what: str, action, *args) -> None:
        try:
            action(*args)
        except (ExecutionError, OSError) as e:
            get_console().print_warning(f"cleanup step '{what}' failed: {e}")

    # ---- execution ----

    def _run(self, job: JobSpec, config: ExecutionConfig, on_line: LineCallback) -> Tuple[str, Tuple[str, ...]]:
        name = self.container_name()
        exec_argv = self.exec_argv(name, job.command)
        command = shlex.join(exec_argv)
        console = get_console()

        staging = self._make_staging(command)
        primary: Optional[ExecutionError] = None
        lines: Tuple[str, ...] = ()

        try:
            launched = False
            copied_in = False
            try:
                try:
                    copy_contents(job.working_directory, staging)
                except OSError as e:
                    raise InfrastructureError(
                        message=f"Could not stage {job.working_directory}: {e}",
                        command=command,
                    ) from e

                console.print_debug(f"[{job.label}] start container {name}")
                # set before the call: a half-started container still needs rm -f
                launched = True
                self._docker("run", "-d", "--name", name, config.image, "tail", "-f", "/dev/null")
                self._docker("cp", f"{staging}/.", f"{name}:{self.container_dir}")
                copied_in = True

                console.print_debug(f"[{job.label}] exec: {command}")
                output = self.runner(exec_argv, None, on_line=on_line)
                lines = output.lines
                self._check(output, "command", command)
            except ExecutionError as e:
                primary = e
            finally:
                try:
                    # partial results of a failed command are still copied back
                    if copied_in:
                        self._docker("cp", f"{name}:{self.container_dir}/.", str(staging))
                except ExecutionError as e:
                    primary = primary or e
                finally:
                    if launched:
                        self._cleanup("docker rm", self._docker, "rm", "-f", name)

            try:
                copy_contents(staging, job.working_directory)
            except OSError as e:
                primary = primary or InfrastructureError(
                    message=f"Could not copy results back to {job.working_directory}: {e}",
                    command=command,
                )
        finally:
            self._cleanup("remove staging", shutil.rmtree, staging)

        if primary is not None:
            # report against the user's command; name the docker step that broke
            if primary.command and primary.command != command:
                primary.details.setdefault("step", primary.command)
            primary.command = command
            if not primary.output:
                primary.output = lines
            raise primary
        return command, lines
