# backends/volume.py
from __future__ import annotations

import os
import re
import shlex
from pathlib import Path
from typing import List, Optional, Tuple

from .. import settings
from ..model import BackendKind, ExecutionConfig, JobSpec
from .base import Backend, LineCallback, ProcessRunner, container_shell, run_process


def container_path(host_path: str | Path, windows: Optional[bool] = None) -> str:
    """
    Path at which host_path is mounted inside the container.

    On POSIX hosts this is the host path itself. On Windows a drive prefix
    is mapped under /mnt ("C:/runs/a" -> "/mnt/C/runs/a").
    """
    if windows is None:
        windows = os.name == "nt"
    text = str(host_path)
    if not windows:
        return text
    text = text.replace("\\", "/")
    return re.sub(r"^([A-Za-z]):", r"/mnt/\1", text)


class VolumeMountBackend(Backend):
    """
    docker run --rm with the job directory bind-mounted at the same path.

    If the engine socket exists on the host it is mounted as well, so the
    job can start sibling containers itself.
    """

    kind = BackendKind.VOLUME_MOUNT

    def __init__(
        self,
        runner: ProcessRunner = run_process,
        *,
        docker: Optional[str] = None,
        socket: Optional[str] = None,
    ):
        super().__init__(runner)
        self.docker = docker or settings.DOCKER
        self.socket = settings.DOCKER_SOCKET if socket is None else socket

    def _socket_mount(self) -> List[str]:
        if self.socket and Path(self.socket).exists():
            return ["-v", f"{self.socket}:{self.socket}"]
        return []

    def argv(self, job: JobSpec, config: ExecutionConfig) -> List[str]:
        host = str(job.working_directory)
        inside = container_path(job.working_directory)

        cmd = [self.docker, "run", "--rm", "-v", f"{host}:{inside}"]
        cmd.extend(self._socket_mount())
        cmd.extend(["-w", inside])
        cmd.append(config.image)
        cmd.extend(container_shell(job.command))
        return cmd

    def describe(self, job: JobSpec, config: ExecutionConfig) -> str:
        return shlex.join(self.argv(job, config))

    def _run(self, job: JobSpec, config: ExecutionConfig, on_line: LineCallback) -> Tuple[str, Tuple[str, ...]]:
        argv = self.argv(job, config)
        command = shlex.join(argv)
        output = self.runner(argv, None, on_line=on_line)
        return command, self._check(output, "docker run", command)
