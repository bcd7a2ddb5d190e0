"""File-backed build log.

The build log is the human-facing output of a wrapped run: step output plus
the wrapper's own status lines. Regex descriptions are matched against its
full contents, so the reader strips terminal escape sequences that would
otherwise sit between the text a pattern is written for.
"""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import TextIO

from git_status_wrapper.errors import LogReadError

# CSI sequences (colors, cursor movement) and OSC sequences (hyperlinks, titles)
_ESCAPES = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")


def strip_escapes(text: str) -> str:
    return _ESCAPES.sub("", text)


def read_build_log(path: str | Path) -> str:
    """Return the full build log with escape sequences removed.

    Line terminators are kept as written.

    Raises:
        LogReadError: If the log cannot be read.
    """
    try:
        with open(path, encoding="utf-8", errors="replace", newline="") as fh:
            return strip_escapes(fh.read())
    except OSError as exc:
        raise LogReadError(f"Unable to read build log {path}: {exc}") from exc


class BuildLog:
    """Append-only build log, optionally echoed to a console stream.

    Usage:
        log = BuildLog("build.log")
        log.line("[gitStatusWrapper] starting")
        log.write(chunk_from_subprocess)
        text = log.read()
    """

    def __init__(
        self,
        path: str | Path,
        echo: bool = True,
        stream: TextIO | None = None,
    ) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        self._echo = echo
        self._stream = stream

    def write(self, chunk: str) -> None:
        with open(self.path, "a", encoding="utf-8", newline="") as fh:
            fh.write(chunk)
        if self._echo:
            stream = self._stream or sys.stdout
            stream.write(chunk)
            stream.flush()

    def line(self, text: str) -> None:
        self.write(text + "\n")

    def read(self) -> str:
        return read_build_log(self.path)
