"""Dump creation for the local database and for remote installations."""

import os
import re
import shlex
import tempfile
import uuid
from datetime import datetime
from typing import List, Optional

from dbsync.constants import (
    DEFAULT_REMOTE_DUMP_COMMAND,
    DUMP_SUFFIX,
    LOCAL_DUMP_PREFIX,
)
from dbsync.errors import CommandExecutionError, DumpCollisionError, EmptyArtifactError, SyncError
from dbsync.errors_catalog import actionable_error
from dbsync.models import ConnectionConfig, DatabaseCredentials, DumpArtifact, DumpLocation
from dbsync.services.credentials import option_file

SAFE_REMOTE_PATH = re.compile(r"^[\w./~-]+$")


class DumpProducer:
    """Creates compressed ``mysqldump`` exports.

    Local dumps are written as ``dump_<timestamp>.sql.gz`` into the dump
    directory. Two dumps started within the same second map to the same name;
    the second one fails instead of overwriting the first.
    """

    def __init__(
        self,
        command_runner,
        ssh_client,
        filesystem_service,
        logger,
        console,
        dump_dir: str,
        timeout: Optional[float] = None,
        remote_dump_command: str = DEFAULT_REMOTE_DUMP_COMMAND,
        remote_source_profile: bool = True,
    ):
        self.command_runner = command_runner
        self.ssh_client = ssh_client
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console
        self.dump_dir = dump_dir
        self.timeout = timeout
        self.remote_dump_command = remote_dump_command
        self.remote_source_profile = remote_source_profile

    def build_dump_command(self, credentials: DatabaseCredentials, defaults_file: str, log_path: str) -> List[str]:
        # --defaults-extra-file has to come first or mysqldump rejects it.
        return [
            "mysqldump",
            f"--defaults-extra-file={defaults_file}",
            "--default-character-set=utf8mb4",
            "--lock-tables=false",
            "--no-create-db",
            "--verbose",
            f"--log-error={log_path}",
            credentials.db_name,
        ]

    def produce_local(self, credentials: DatabaseCredentials) -> DumpArtifact:
        self.filesystem_service.ensure_dump_dir(self.dump_dir)
        dump_path = self.filesystem_service.timestamped_dump_path(self.dump_dir, LOCAL_DUMP_PREFIX)
        log_path = os.path.join(tempfile.gettempdir(), f"dbsync-mysqldump-{uuid.uuid4().hex[:10]}.log")

        if os.path.exists(dump_path):
            raise DumpCollisionError(f"Dump file already exists: {dump_path}. Wait a second and retry.")

        self.console.print(f"[blue]Dumping database {credentials.db_name}...[/blue]")
        self.logger.info("Creating dump of %s at %s", credentials.db_name, dump_path)

        with option_file(credentials) as defaults_file:
            try:
                result = self.command_runner.run_pipeline(
                    [self.build_dump_command(credentials, defaults_file, log_path), ["gzip", "-c"]],
                    stdout_path=dump_path,
                    check=False,
                    timeout=self.timeout,
                    env={"LANG": "en_US.UTF-8"},
                    secrets=[credentials.password],
                )
            except DumpCollisionError:
                raise
            except SyncError:
                self.filesystem_service.remove_file(dump_path)
                raise

        if not result.ok:
            self.filesystem_service.remove_file(dump_path)
            message = f"Error creating dump (exit code {result.exit_code}). See {log_path} for details."
            if result.stderr:
                message = f"{message}\n{result.stderr}"
            raise CommandExecutionError(
                message,
                command="mysqldump | gzip",
                exit_code=result.exit_code,
                stderr=result.stderr,
            )

        try:
            artifact = self.filesystem_service.local_artifact(dump_path)
        except SyncError as exc:
            self.filesystem_service.remove_file(dump_path)
            if isinstance(exc, EmptyArtifactError):
                raise EmptyArtifactError(
                    actionable_error("empty_dump", path=dump_path, log_path=log_path)
                ) from exc
            raise

        self.filesystem_service.remove_file(log_path)
        self.logger.info("Database dump created: %s", artifact.path)
        return artifact

    def build_remote_command(self, connection: ConnectionConfig) -> str:
        command = f"cd {shlex.quote(connection.remote_path)} && {self.remote_dump_command}"
        if self.remote_source_profile:
            command = f"if [ -f ~/.profile ]; then . ~/.profile; fi; {command}"
        return command

    def produce_remote(self, connection: ConnectionConfig) -> DumpArtifact:
        """Runs the dump command on the remote host and returns the remote path.

        Nothing is copied here; the returned artifact points at the remote file.
        """
        self.console.print(f"[blue]Creating database dump on {connection.host}...[/blue]")
        self.logger.info("Creating remote dump on %s (%s)", connection.host, connection.name)

        result = self.ssh_client.run_remote(
            connection,
            self.build_remote_command(connection),
            check=True,
            timeout=self.timeout,
        )

        remote_path = self.parse_remote_path(result.stdout)
        if remote_path is None:
            raise CommandExecutionError(
                actionable_error(
                    "invalid_remote_output",
                    host=connection.host,
                    command=self.remote_dump_command,
                ),
                command=self.remote_dump_command,
                exit_code=result.exit_code,
                stderr=result.stderr,
            )

        self.logger.info("Remote dump created: %s", remote_path)
        return DumpArtifact(
            path=remote_path,
            size_bytes=None,
            created_at=datetime.now(),
            location=DumpLocation.remote(connection.host),
        )

    @staticmethod
    def parse_remote_path(stdout: str) -> Optional[str]:
        lines = [line.strip() for line in stdout.splitlines() if line.strip()]
        if not lines:
            return None
        candidate = lines[-1]
        if not candidate.endswith(DUMP_SUFFIX) or not SAFE_REMOTE_PATH.match(candidate):
            return None
        return candidate
