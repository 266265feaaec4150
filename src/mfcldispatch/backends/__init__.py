from __future__ import annotations

from typing import Union

from ..model import BackendKind
from .base import Backend, LineCallback, ProcessOutput, ProcessRunner, run_process
from .copy import CopyIsolatedBackend
from .local import LocalBackend
from .volume import VolumeMountBackend, container_path

BACKENDS = {
    BackendKind.LOCAL: LocalBackend,
    BackendKind.VOLUME_MOUNT: VolumeMountBackend,
    BackendKind.COPY_ISOLATED: CopyIsolatedBackend,
}


def make_backend(kind: Union[str, BackendKind], **kwargs) -> Backend:
    """Pick the execution strategy once, for a whole run."""
    return BACKENDS[BackendKind.parse(kind)](**kwargs)


__all__ = [
    "Backend",
    "BACKENDS",
    "CopyIsolatedBackend",
    "LineCallback",
    "LocalBackend",
    "ProcessOutput",
    "ProcessRunner",
    "VolumeMountBackend",
    "container_path",
    "make_backend",
    "run_process",
]
