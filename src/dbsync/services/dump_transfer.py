"""Remote-to-local dump transfer."""

from typing import Optional

from dbsync.errors import TransferError
from dbsync.models import ConnectionConfig, DumpArtifact


class DumpTransfer:
    """Copies a remote dump to a local path with ``scp``. Never retries."""

    def __init__(self, ssh_client, filesystem_service, logger, console, timeout: Optional[float] = None):
        self.ssh_client = ssh_client
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console
        self.timeout = timeout

    def fetch(self, remote_path: str, connection: ConnectionConfig, local_path: str) -> DumpArtifact:
        self.console.print("[blue]Downloading the database dump from the remote server...[/blue]")
        self.logger.info("Fetching %s:%s to %s", connection.host, remote_path, local_path)

        result = self.ssh_client.copy_from(connection, remote_path, local_path, timeout=self.timeout)
        if not result.ok:
            message = f"Transfer of {remote_path} from {connection.host} failed ({result.exit_code})."
            stderr = result.stderr.strip()
            if stderr:
                message = f"{message}\n{stderr}"
            raise TransferError(
                message,
                command=" ".join(result.command),
                exit_code=result.exit_code,
                stderr=stderr,
            )

        artifact = self.filesystem_service.local_artifact(local_path)
        self.console.print(f"[green]Database dump downloaded to {local_path}[/green]")
        return artifact
