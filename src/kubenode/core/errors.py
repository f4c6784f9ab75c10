"""
KUBENODE ERRORS
---------------
Every fatal condition raised by a step derives from ProvisioningError so the
sequencer can report it with context. Best-effort failures are never raised.
"""

from typing import Sequence


class ProvisioningError(Exception):
    pass


class PreconditionError(ProvisioningError):
    """The host is not something we can provision (wrong OS, no usable IP)."""


class CommandError(ProvisioningError):

    def __init__(self, command: Sequence[str], returncode: int):
        self.command = list(command)
        self.returncode = returncode
        super().__init__(f"Command '{' '.join(self.command)}' failed with exit code {returncode}")


class ReadinessTimeout(ProvisioningError):

    def __init__(self, result):
        self.result = result
        super().__init__(result.describe())


class VersionMismatchError(ProvisioningError):

    def __init__(self, message: str, client: str, server: str, requested: str):
        self.client = client
        self.server = server
        self.requested = requested
        super().__init__(f"{message} (client={client}, server={server}, requested={requested})")
