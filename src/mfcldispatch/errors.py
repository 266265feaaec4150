# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple


TOOL_HINTS = {
    "docker": "Install Docker and ensure the daemon is running.",
    "podman": "Install Podman or set MFCL_DISPATCH_DOCKER to your engine.",
    "sh": "A POSIX shell is required to run job commands.",
}


class DispatchError(Exception):
    """Base class for every error raised by mfcldispatch."""


# ----------------------------------------------------------------------
# Validation (raised before any job starts)
# ----------------------------------------------------------------------

class ValidationError(DispatchError):
    """The request cannot be turned into a runnable plan."""


@dataclass
class BaseDirNotFound(ValidationError):
    base_dir: Path

    def __str__(self) -> str:
        return f"The project directory does not exist: {self.base_dir}"


@dataclass
class MissingSubdirectories(ValidationError):
    base_dir: Path
    missing: List[str]

    def __str__(self) -> str:
        return (
            f"The following subdirectories do not exist under {self.base_dir}: "
            + ", ".join(repr(m) for m in self.missing)
        )


@dataclass
class SubdirectoryOutsideBase(ValidationError):
    base_dir: Path
    outside: List[str]

    def __str__(self) -> str:
        return (
            f"Subdirectories must stay inside {self.base_dir}: "
            + ", ".join(repr(o) for o in self.outside)
        )


@dataclass
class CommandCountMismatch(ValidationError):
    commands: int
    sub_dirs: int

    def __str__(self) -> str:
        return (
            f"The number of commands ({self.commands}) must be 1 or match "
            f"the number of subdirectories ({self.sub_dirs})"
        )


@dataclass
class OverlappingSubdirectories(ValidationError):
    pairs: List[tuple]

    def __str__(self) -> str:
        shown = "; ".join(f"{a!r} overlaps {b!r}" for a, b in self.pairs)
        return f"Subdirectories must not overlap: {shown}"


@dataclass
class InvalidConcurrency(ValidationError):
    value: object

    def __str__(self) -> str:
        return f"concurrency_limit must be an integer >= 1, got {self.value!r}"


@dataclass
class MissingImage(ValidationError):
    backend: str

    def __str__(self) -> str:
        return f"An image reference is required for the {self.backend} backend"


class MissingLogFile(ValidationError):
    def __str__(self) -> str:
        return "A quiet run (verbose=False) needs a log file; set log_file or use ExecutionConfig.resolved()"


@dataclass
class InvalidPlan(ValidationError):
    indexes: List[int]

    def __str__(self) -> str:
        return f"Plan indexes must be 0..n-1 in some order (use build_plan), got {self.indexes}"


# ----------------------------------------------------------------------
# Per-job errors (captured into JobResult, never raised to the caller)
# ----------------------------------------------------------------------

@dataclass
class ExecutionError(DispatchError):
    message: str
    command: str = ""
    exit_code: Optional[int] = None
    details: dict = field(default_factory=dict)
    output: Tuple[str, ...] = ()

    def __str__(self) -> str:
        text = self.message
        if self.exit_code is not None:
            text = f"{text} (exit={self.exit_code})"
        for k, v in self.details.items():
            text += f"\n{k}={v}"
        return text


@dataclass
class InfrastructureError(ExecutionError):
    """The container engine or the local filesystem could not be used."""

    @classmethod
    def missing_tool(cls, tool: str, command: str = "") -> InfrastructureError:
        name = Path(tool).name
        hint = TOOL_HINTS.get(name, f"Install {name} or fix PATH.")
        return cls(
            message=f"{name} is not available",
            command=command,
            details={"hint": hint},
        )
