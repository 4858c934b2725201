"""Human-readable session transcript written next to the structured logs."""

from __future__ import annotations

import re
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, TextIO

from ..utils.constants import utc_now

_ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")
_HEADER_RULE = "=" * 75


def strip_ansi(message: str) -> str:
    return _ANSI_ESCAPE_RE.sub("", message)


class SessionLog:
    """Append-only text file, one per run, named after the session start time."""

    def __init__(self, directory: Path, *, clock: Callable[[], datetime] = utc_now) -> None:
        started = clock()
        directory.mkdir(parents=True, exist_ok=True)
        self._path = directory / f"wallet-tracker-{started.strftime('%Y-%m-%d-%H-%M-%S')}.txt"
        self._lock = threading.Lock()
        self._handle: Optional[TextIO] = self._path.open("a", encoding="utf-8")
        self.write(
            "\n".join(
                [
                    _HEADER_RULE,
                    "WALLET P&L TRACKER - SESSION LOG",
                    _HEADER_RULE,
                    f"Session started: {started.isoformat()}",
                    f"Log file: {self._path.name}",
                    _HEADER_RULE,
                    "",
                ]
            )
        )

    @property
    def path(self) -> Path:
        return self._path

    def write(self, message: str) -> None:
        with self._lock:
            if self._handle is None:
                return
            self._handle.write(strip_ansi(message) + "\n")
            self._handle.flush()

    def close(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.close()
                self._handle = None

    def __enter__(self) -> "SessionLog":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["SessionLog", "strip_ansi"]
