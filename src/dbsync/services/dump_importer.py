"""Destructive import of a compressed dump into a MySQL database."""

import os
from typing import List, Optional

from dbsync.errors import DumpImportError, EmptyArtifactError, SyncError
from dbsync.models import DatabaseCredentials
from dbsync.services.credentials import option_file


class DumpImporter:
    """Replaces the contents of a database with a ``.sql.gz`` dump.

    Callers must obtain the operator's confirmation first. The client option
    file holding the password exists only while the import pipeline runs.
    """

    def __init__(
        self,
        command_runner,
        logger,
        console,
        timeout: Optional[float] = None,
        credentials_dir: Optional[str] = None,
    ):
        self.command_runner = command_runner
        self.logger = logger
        self.console = console
        self.timeout = timeout
        self.credentials_dir = credentials_dir

    def build_import_commands(self, dump_path: str, defaults_file: str, db_name: str) -> List[List[str]]:
        return [
            ["zcat", dump_path],
            ["mysql", f"--defaults-file={defaults_file}", "--binary-mode", db_name],
        ]

    def import_dump(self, dump_path: str, credentials: DatabaseCredentials):
        if not os.path.isfile(dump_path):
            raise SyncError(f"Dump file not found: {dump_path}")
        if os.path.getsize(dump_path) == 0:
            raise EmptyArtifactError(f"Refusing to import empty dump file: {dump_path}")

        self.console.print("[blue]Importing database dump. This may take a while...[/blue]")
        self.logger.info("Importing %s into database %s", dump_path, credentials.db_name)

        with option_file(credentials, directory=self.credentials_dir) as defaults_file:
            result = self.command_runner.run_pipeline(
                self.build_import_commands(dump_path, defaults_file, credentials.db_name),
                check=False,
                timeout=self.timeout,
                secrets=[credentials.password],
            )

        if not result.ok:
            stderr = result.stderr.strip()
            message = f"Import failed:\nExit Code: {result.exit_code}"
            if stderr:
                message = f"{message}\nError: {stderr}"
            raise DumpImportError(
                message,
                command="zcat | mysql",
                exit_code=result.exit_code,
                stderr=stderr,
            )

        self.console.print(
            f"[bold green]Database {credentials.db_name} has been completely replaced with the new dump.[/bold green]"
        )
        self.logger.info("Database %s imported from %s", credentials.db_name, dump_path)
