"""Domain errors for dbsync."""

from typing import List, Optional, Sequence


class SyncError(RuntimeError):
    """Raised when a dump, transfer or import cannot continue safely."""


class ConfigurationError(SyncError):
    """Missing or invalid connection parameters."""

    def __init__(self, message: str, problems: Optional[Sequence[str]] = None):
        self.problems: List[str] = list(problems or [])
        if self.problems:
            message = f"{message}: {', '.join(self.problems)}"
        super().__init__(message)


class UnknownConnectionError(ConfigurationError):
    """Raised when a connection name is not one of the configured slots."""


class CommandExecutionError(SyncError):
    """An external tool exited with a non-zero status."""

    def __init__(self, message: str, command: str = "", exit_code: Optional[int] = None, stderr: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


class TransferError(CommandExecutionError):
    """Copying a dump from the remote host failed."""


class DumpImportError(CommandExecutionError):
    """Loading a dump into the target database failed."""


class EmptyArtifactError(SyncError):
    """A produced dump contains no data although its command succeeded."""


class CommandTimeoutError(SyncError):
    """A bounded external operation exceeded its allotted time."""

    def __init__(self, message: str, command: str = "", timeout: Optional[float] = None):
        self.command = command
        self.timeout = timeout
        super().__init__(message)


class DumpCollisionError(SyncError):
    """The target dump file already exists and is left untouched."""
