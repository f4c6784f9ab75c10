#!/usr/bin/env python3
"""
KUBENODE LOG SINK - The Flight Recorder
---------------------------------------
One append-only log file inside a private temporary directory. Every
external command writes its stdout/stderr here and the 'kubenode' logger
mirrors its records into the same file while the sink is open.

The file is only read back on failure (or at the end of a verbose run).
The directory is removed exactly once, whichever way the process leaves
the open_log_sink() block.

Author: KubeNode Team
Date: 2026-10-18
"""

import contextlib
import logging
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, Iterator

LOG_PREFIX = "install-kubernetes-"
LOG_NAME = "install.log"

logger = logging.getLogger("kubenode.logsink")
_package_logger = logging.getLogger("kubenode")


class LogSink:
    """Temporary-directory-backed log file with idempotent release."""

    def __init__(self, directory: Path):
        self.directory = directory
        self.path = directory / LOG_NAME
        self.path.touch()
        self._released = False

        self._handler = logging.FileHandler(self.path, encoding="utf-8")
        self._handler.setLevel(logging.DEBUG)
        self._handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        self._previous_level = _package_logger.level
        _package_logger.setLevel(logging.DEBUG)
        _package_logger.addHandler(self._handler)
        logger.debug("Log sink opened at %s", self.path)

    @classmethod
    def open(cls, prefix: str = LOG_PREFIX) -> "LogSink":
        # mkdtemp creates the directory atomically with a random suffix, mode 0700
        directory = Path(tempfile.mkdtemp(prefix=prefix))
        try:
            return cls(directory)
        except BaseException:
            shutil.rmtree(directory, ignore_errors=True)
            raise

    @property
    def released(self) -> bool:
        return self._released

    def append(self, text: str):
        if self._released:
            raise RuntimeError(f"Log sink {self.path} was already released")
        if not text.endswith("\n"):
            text += "\n"
        with self.path.open("a", encoding="utf-8") as f:
            f.write(text)

    @contextlib.contextmanager
    def stream(self) -> Iterator[BinaryIO]:
        """Binary append handle, suitable as stdout/stderr of a child process."""
        if self._released:
            raise RuntimeError(f"Log sink {self.path} was already released")
        with self.path.open("ab") as f:
            yield f

    def dump(self) -> str:
        if self._released:
            return ""
        self._handler.flush()
        return self.path.read_text(encoding="utf-8", errors="replace")

    def release(self):
        if self._released:
            return
        self._released = True
        _package_logger.removeHandler(self._handler)
        _package_logger.setLevel(self._previous_level)
        self._handler.close()
        shutil.rmtree(self.directory, ignore_errors=True)

    def __repr__(self):
        return f"<LogSink {self.path}{' (released)' if self._released else ''}>"


@contextlib.contextmanager
def open_log_sink(prefix: str = LOG_PREFIX) -> Iterator[LogSink]:
    """Scoped acquisition: the sink is released on success, error and interrupt alike."""
    sink = LogSink.open(prefix)
    try:
        yield sink
    finally:
        sink.release()
