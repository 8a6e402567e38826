"""Shared domain models for dbsync."""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

from dbsync.errors import ConfigurationError, SyncError


@dataclass(frozen=True)
class KeyAuth:
    path: str


@dataclass(frozen=True)
class PasswordAuth:
    secret: str = field(repr=False)


@dataclass(frozen=True)
class ConnectionConfig:
    """Named remote-access profile used to reach a remote installation."""

    name: str
    host: str
    user: str
    port: int
    remote_path: str
    key_file: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    def __post_init__(self):
        if not self.key_file and not self.password:
            raise ConfigurationError(
                f"Invalid connection '{self.name}'", ["either key or password must be set"]
            )
        if not 1 <= self.port <= 65535:
            raise ConfigurationError(
                f"Invalid connection '{self.name}'", [f"port {self.port} is out of range 1-65535"]
            )

    @property
    def auth(self) -> Union[KeyAuth, PasswordAuth]:
        if self.key_file:
            return KeyAuth(self.key_file)
        return PasswordAuth(self.password or "")

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}"


@dataclass(frozen=True)
class DatabaseCredentials:
    """Local database access parameters. The password never appears in logs."""

    host: str
    user: str
    password: str = field(repr=False)
    port: int
    db_name: str


@dataclass(frozen=True)
class DumpLocation:
    host: Optional[str] = None

    @classmethod
    def local(cls) -> "DumpLocation":
        return cls()

    @classmethod
    def remote(cls, host: str) -> "DumpLocation":
        return cls(host=host)

    @property
    def is_remote(self) -> bool:
        return self.host is not None


@dataclass(frozen=True)
class DumpArtifact:
    """A compressed dump file.

    Local artifacts always carry their size and must not be empty. The size of
    a remote artifact is unknown until it has been fetched.
    """

    path: str
    size_bytes: Optional[int]
    created_at: datetime
    location: DumpLocation = field(default_factory=DumpLocation.local)

    def __post_init__(self):
        if not self.location.is_remote and self.size_bytes is None:
            raise SyncError(f"Local dump artifact without size: {self.path}")
        if self.size_bytes is not None and self.size_bytes <= 0:
            raise SyncError(f"Dump artifact must not be empty: {self.path}")


@dataclass(frozen=True)
class CommandResult:
    command: List[str]
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class SyncState(enum.Enum):
    IDLE = "idle"
    CONFIG_RESOLVED = "config_resolved"
    REMOTE_DUMP_CREATED = "remote_dump_created"
    TRANSFERRED = "transferred"
    IMPORTED = "imported"
    CLEANED_UP = "cleaned_up"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass
class SyncOutcome:
    """Result of a sync run. ``error`` is set only when ``state`` is FAILED."""

    state: SyncState = SyncState.IDLE
    connection: Optional[ConnectionConfig] = None
    remote_path: Optional[str] = None
    local_path: Optional[str] = None
    error: Optional[SyncError] = None
    failed_from: Optional[SyncState] = None
    warnings: List[str] = field(default_factory=list)
    history: List[SyncState] = field(default_factory=lambda: [SyncState.IDLE])

    @property
    def succeeded(self) -> bool:
        return self.state in (SyncState.CLEANED_UP, SyncState.ABORTED)

    def advance(self, state: SyncState):
        self.state = state
        self.history.append(state)
