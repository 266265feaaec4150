# model.py
from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

from . import settings
from .errors import InvalidConcurrency, MissingImage

Command = Union[str, Sequence[str]]


def command_text(command: Command) -> str:
    """Render a command (shell string or argv) as a single display line."""
    if isinstance(command, str):
        return command
    return shlex.join(list(command))


def default_concurrency() -> int:
    c = os.cpu_count() or 2
    return max(1, c - 1)


class BackendKind(str, Enum):
    LOCAL = "local"
    VOLUME_MOUNT = "volume"
    COPY_ISOLATED = "copy"

    @classmethod
    def parse(cls, value: Union[str, BackendKind]) -> BackendKind:
        """
        Accepts an enum member, its value ("local", "volume", "copy"),
        its name, or "auto" (picked once for the host OS).
        """
        if isinstance(value, BackendKind):
            return value
        text = str(value).strip().lower()
        if text == "auto":
            return default_backend_kind()
        for kind in cls:
            if text in (kind.value, kind.name.lower()):
                return kind
        raise ValueError(f"Unknown backend: {value!r} (expected auto, local, volume or copy)")


def default_backend_kind() -> BackendKind:
    # Bind mounts of long Windows paths are unreliable; stage copies instead.
    return BackendKind.COPY_ISOLATED if os.name == "nt" else BackendKind.VOLUME_MOUNT


@dataclass(frozen=True)
class JobSpec:
    """One (working directory, command) pair, resolved at plan-build time."""
    working_directory: Path
    command: Command
    index: int
    sub_dir: str = ""

    @property
    def label(self) -> str:
        return self.sub_dir or "."


@dataclass(frozen=True)
class ExecutionConfig:
    """Immutable settings for a single dispatch run."""
    backend_kind: BackendKind = BackendKind.LOCAL
    image: Optional[str] = None
    concurrency_limit: int = field(default_factory=default_concurrency)
    verbose: bool = True
    log_file: Optional[Path] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "backend_kind", BackendKind.parse(self.backend_kind))
        limit = self.concurrency_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidConcurrency(limit)
        if self.backend_kind is not BackendKind.LOCAL and not self.image:
            raise MissingImage(self.backend_kind.value)
        if self.log_file is not None:
            object.__setattr__(self, "log_file", Path(self.log_file))

    @property
    def sequential(self) -> bool:
        return self.concurrency_limit == 1

    def resolved(self, base_dir: str | Path) -> ExecutionConfig:
        """Fill in the default log file (<base_dir>/output.log) for quiet runs."""
        if self.verbose or self.log_file is not None:
            return self
        log_file = Path(base_dir).expanduser().resolve() / settings.LOG_NAME
        return replace(self, log_file=log_file)


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Success:
    output: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Failure:
    message: str
    exit_code: Optional[int] = None
    output: Tuple[str, ...] = ()


Outcome = Union[Success, Failure]


@dataclass(frozen=True)
class JobResult:
    index: int
    working_directory: Path
    command_executed: str
    outcome: Outcome
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Success)

    @property
    def output(self) -> Tuple[str, ...]:
        if isinstance(self.outcome, Success):
            return self.outcome.output
        return ()

    @property
    def error(self) -> Optional[str]:
        if isinstance(self.outcome, Failure):
            return self.outcome.message
        return None
