# plan.py
from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from .errors import (
    BaseDirNotFound,
    CommandCountMismatch,
    MissingSubdirectories,
    OverlappingSubdirectories,
    SubdirectoryOutsideBase,
)
from .model import Command, JobSpec


def _resolve(base: Path, sub_dir: str) -> Path:
    if sub_dir == "":
        return base
    return Path(os.path.normpath(base / sub_dir))


def _inside(base: Path, path: Path) -> bool:
    return path == base or base in path.parents


def _expand_commands(
    commands: Union[str, Sequence[Command]],
    count: int,
) -> List[Command]:
    # A bare string (or a single-entry list) is broadcast to every subdirectory.
    if isinstance(commands, str):
        return [commands] * count
    commands = list(commands)
    if len(commands) == 1:
        return commands * count
    if len(commands) != count:
        raise CommandCountMismatch(commands=len(commands), sub_dirs=count)
    return commands


def _overlaps(paths: List[Tuple[str, Path]]) -> List[Tuple[str, str]]:
    pairs: List[Tuple[str, str]] = []
    for i, (name_a, a) in enumerate(paths):
        for name_b, b in paths[i + 1:]:
            if a == b or a in b.parents or b in a.parents:
                pairs.append((name_a or ".", name_b or "."))
    return pairs


def build_plan(
    base_dir: str | Path,
    sub_dirs: Optional[Sequence[str]],
    commands: Union[str, Sequence[Command]],
) -> List[JobSpec]:
    """
    Validate a dispatch request and resolve it into an ordered job list.

    Args:
        base_dir: Project directory; must exist.
        sub_dirs: Paths relative to base_dir, which must stay inside it.
                  "" means base_dir itself.
                  None (or empty) runs once in base_dir.
        commands: One command for every subdirectory, or one per subdirectory.

    Returns:
        JobSpecs with absolute working directories, indexed 0..n-1.

    Raises:
        BaseDirNotFound, CommandCountMismatch, MissingSubdirectories,
        OverlappingSubdirectories, SubdirectoryOutsideBase
    """
    base = Path(base_dir).expanduser().resolve()
    if not base.is_dir():
        raise BaseDirNotFound(base)

    sub_dirs = [str(s) for s in (sub_dirs or [""])]
    resolved = [(sd, _resolve(base, sd)) for sd in sub_dirs]

    outside = [sd for sd, path in resolved if not _inside(base, path.resolve())]
    if outside:
        raise SubdirectoryOutsideBase(base_dir=base, outside=outside)

    missing = [sd for sd, path in resolved if not path.is_dir()]
    if missing:
        raise MissingSubdirectories(base_dir=base, missing=missing)

    command_list = _expand_commands(commands, len(sub_dirs))

    # each job owns its directory while it runs
    overlapping = _overlaps([(sd, path.resolve()) for sd, path in resolved])
    if overlapping:
        raise OverlappingSubdirectories(overlapping)

    return [
        JobSpec(working_directory=path.resolve(), command=cmd, index=i, sub_dir=sd)
        for i, ((sd, path), cmd) in enumerate(zip(resolved, command_list))
    ]
