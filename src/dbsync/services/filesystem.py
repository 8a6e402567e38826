"""Filesystem helpers for dbsync."""

import gzip
import logging
import os
import sys
import zlib
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console

from dbsync.constants import DIR_MODE, DUMP_GLOB, DUMP_SUFFIX, TIMESTAMP_FORMAT
from dbsync.errors import EmptyArtifactError, SyncError
from dbsync.models import DumpArtifact, DumpLocation

SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_size(size_bytes: int) -> str:
    size = float(max(size_bytes, 0))
    unit = 0
    while size >= 1024 and unit < len(SIZE_UNITS) - 1:
        size /= 1024
        unit += 1
    return f"{size:.2f} {SIZE_UNITS[unit]}"


class FileSystemService:
    """Encapsulates dump directory and file side effects."""

    def __init__(
        self,
        logger: logging.Logger,
        console: Console,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.logger = logger
        self.console = console
        self.clock = clock

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def ensure_dump_dir(self, dump_dir: str) -> str:
        if not os.path.isdir(dump_dir):
            try:
                os.makedirs(dump_dir, exist_ok=True)
            except OSError as exc:
                raise SyncError(f"Could not create dump directory {dump_dir}: {exc}") from exc
            self.set_permissions(dump_dir, DIR_MODE)
            self.logger.debug("Created dump directory: %s", dump_dir)
        return dump_dir

    def timestamped_dump_path(self, dump_dir: str, prefix: str) -> str:
        stamp = self.clock().strftime(TIMESTAMP_FORMAT)
        return os.path.join(dump_dir, f"{prefix}_{stamp}{DUMP_SUFFIX}")

    def list_dumps(self, dump_dir: str) -> List[Path]:
        """Dump files in ``dump_dir``, oldest first."""
        if not os.path.isdir(dump_dir):
            return []
        files = [path for path in Path(dump_dir).glob(DUMP_GLOB) if path.is_file()]
        return sorted(files, key=lambda path: path.stat().st_mtime)

    def local_artifact(self, path: str) -> DumpArtifact:
        """Builds an artifact for a finished dump, rejecting empty ones."""
        try:
            size = os.path.getsize(path)
        except OSError as exc:
            raise SyncError(f"Dump file is missing: {path}") from exc

        if size == 0 or not self._has_payload(path):
            raise EmptyArtifactError(f"Dump file is empty: {path}")

        return DumpArtifact(
            path=path,
            size_bytes=size,
            created_at=datetime.fromtimestamp(os.path.getmtime(path)),
            location=DumpLocation.local(),
        )

    def _has_payload(self, path: str) -> bool:
        if not path.endswith(".gz"):
            return True
        try:
            with gzip.open(path, "rb") as file_obj:
                return bool(file_obj.read(1))
        except (OSError, EOFError, zlib.error) as exc:
            raise SyncError(f"Dump file is not a valid gzip archive: {path}. {exc}") from exc

    def remove_file(self, path: Optional[str]) -> bool:
        """Best-effort removal. Returns False and warns when the file stays behind."""
        if not path or not os.path.exists(path):
            return True
        try:
            os.remove(path)
            self.logger.debug("Removed file: %s", path)
            return True
        except OSError as exc:
            message = f"Warning: Could not remove {path}: {exc}"
            self.console.print(f"[yellow]{message}[/yellow]")
            self.logger.warning(message)
            return False
