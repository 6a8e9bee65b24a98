"""Exception hierarchy for dataplayground.

Nearly every failure is caught where it happens and logged. Only the
setup errors (provisioning, pipe creation) abort a session; the rest
leave a channel silent until the session is torn down.
"""

from __future__ import annotations


class DataPlaygroundError(Exception):
    """Base class for all dataplayground errors."""


class ProvisioningError(DataPlaygroundError):
    """Raised when the run directory cannot be created or seeded."""

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path


class PipeCreationError(DataPlaygroundError):
    """Raised when a named pipe special file cannot be created."""

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path


class InterpreterSpawnError(DataPlaygroundError):
    """The interpreter process could not be started.

    Never raised out of a session: it is logged and the session carries
    on around a dead process handle.
    """


class StreamError(DataPlaygroundError):
    """A stdout, stderr or pipe stream failed while reading."""

    def __init__(self, message: str, stream: str = "") -> None:
        super().__init__(message)
        self.stream = stream


class ProtocolError(DataPlaygroundError):
    """An inbound client message could not be understood."""
