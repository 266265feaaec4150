from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional

import pytest

from mfcldispatch.backends import ProcessOutput
from mfcldispatch.ui.console import Console, set_console


class FakeRunner:
    """
    Stands in for run_process: records every call and answers through an
    optional handler(argv) -> ProcessOutput | None (None means exit 0).
    """

    def __init__(self, handler: Optional[Callable[[List[str]], Optional[ProcessOutput]]] = None):
        self.calls: List[List[str]] = []
        self.handler = handler

    def __call__(self, cmd, cwd: Optional[Path] = None, on_line=None) -> ProcessOutput:
        argv = [cmd] if isinstance(cmd, str) else list(cmd)
        self.calls.append(argv)
        out = self.handler(argv) if self.handler is not None else None
        if out is None:
            out = ProcessOutput(0, ())
        if on_line is not None:
            for line in out.lines:
                on_line(line)
        return out

    def subcommands(self) -> List[str]:
        return [c[1] for c in self.calls]

    def find(self, sub: str) -> List[List[str]]:
        return [c for c in self.calls if len(c) > 1 and c[1] == sub]


@pytest.fixture(autouse=True)
def fresh_console():
    set_console(Console())
    yield


@pytest.fixture
def project(tmp_path):
    """A base directory with job subdirectories a, b and c."""
    for name in ("a", "b", "c"):
        (tmp_path / name).mkdir()
        (tmp_path / name / "input.frq").write_text(f"frq {name}\n")
    return tmp_path
