# logsink.py
from __future__ import annotations

import threading
from pathlib import Path
from typing import Iterable, Optional


class LogSink:
    """
    Append-only, thread-safe output file shared by every job of a run.

    Each call to write_block() lands as one contiguous chunk, so output from
    concurrent jobs never interleaves mid-line. The file is opened in append
    mode per write; earlier runs' content is never truncated.

    One sink is created per run and handed to every job, so all writers of
    that run share its lock.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def write_block(self, header: Optional[str], lines: Iterable[str]) -> None:
        chunk = []
        if header:
            chunk.append(header)
        chunk.extend(line.rstrip("\n") for line in lines)
        if not chunk:
            return
        text = "\n".join(chunk) + "\n"
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(text)
                fh.flush()

    def __repr__(self) -> str:
        return f"LogSink({str(self.path)!r})"
