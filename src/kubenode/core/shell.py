"""
KUBENODE SHELL - External command execution.

Every command line is logged before it runs and its output is appended to
the log sink. Strict commands raise CommandError on a non-zero exit;
tolerant ones only log the failure.
"""

import logging
import shlex
import subprocess
from typing import Optional, Sequence

from kubenode.core.errors import CommandError
from kubenode.core.logsink import LogSink

logger = logging.getLogger("kubenode.shell")

# Used for commands whose executable is missing from PATH
EXIT_NOT_FOUND = 127


class CommandRunner:

    def __init__(self, sink: LogSink, timeout: Optional[float] = 1800):
        self._sink = sink
        self._timeout = timeout

    def __repr__(self):
        return f'{CommandRunner.__name__}({self._sink!r})'

    def run(self, command: Sequence[str], input: Optional[bytes] = None):
        """Run a command that must succeed."""
        returncode = self._execute(command, input)
        if returncode != 0:
            raise CommandError(command, returncode)

    def run_tolerant(self, command: Sequence[str]) -> bool:
        """Run a command whose failure is acceptable (package or file may be absent)."""
        returncode = self._execute(command)
        if returncode != 0:
            logger.warning("Ignoring failure of %s (exit code %d)", _join(command), returncode)
            return False
        return True

    def capture(self, command: Sequence[str]) -> str:
        return self.capture_bytes(command).decode("utf-8", errors="replace")

    def capture_bytes(self, command: Sequence[str]) -> bytes:
        """Run a command that must succeed and return its stdout; stderr goes to the log."""
        logger.info("Run: %s", _join(command))
        with self._sink.stream() as log:
            try:
                r = subprocess.run(
                    list(command),
                    stdout=subprocess.PIPE,
                    stderr=log,
                    stdin=subprocess.DEVNULL,
                    timeout=self._timeout,
                    )
            except FileNotFoundError:
                logger.error("Executable not found: %s", command[0])
                raise CommandError(command, EXIT_NOT_FOUND)
        if r.returncode != 0:
            raise CommandError(command, r.returncode)
        return r.stdout

    def _execute(self, command: Sequence[str], input: Optional[bytes] = None) -> int:
        logger.info("Run: %s", _join(command))
        with self._sink.stream() as log:
            try:
                r = subprocess.run(
                    list(command),
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    input=input,
                    # apt and friends may wait for input that never comes
                    stdin=None if input is not None else subprocess.DEVNULL,
                    timeout=self._timeout,
                    )
            except FileNotFoundError:
                logger.error("Executable not found: %s", command[0])
                return EXIT_NOT_FOUND
        return r.returncode


def _join(command: Sequence[str]) -> str:
    return shlex.join([str(arg) for arg in command])
