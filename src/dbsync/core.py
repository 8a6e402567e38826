import logging
import os
from datetime import datetime
from typing import Callable, Mapping, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .constants import (
    DEFAULT_DUMP_DIR,
    DEFAULT_REMOTE_DUMP_COMMAND,
    DEFAULT_TIMEOUT_SECONDS,
)
from .errors import SyncError
from .errors_catalog import actionable_error
from .models import DumpArtifact, SyncOutcome, SyncState
from .orchestrator import SyncOrchestrator
from .services.command_runner import CommandRunner
from .services.config_store import ConfigStore, load_environment
from .services.credentials import credentials_from_environment
from .services.dump_importer import DumpImporter
from .services.dump_producer import DumpProducer
from .services.dump_transfer import DumpTransfer
from .services.filesystem import FileSystemService, format_size
from .services.prompts import ConsolePrompter
from .services.ssh import SshClient

console = Console()
error_console = Console(stderr=True)
logger = logging.getLogger("dbsync")


class DatabaseSync:
    """Entry point behind the ``dump``, ``import`` and ``sync`` commands."""

    def __init__(
        self,
        dump_dir: str = DEFAULT_DUMP_DIR,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        environ: Optional[Mapping[str, str]] = None,
        prompter=None,
        quiet: bool = False,
        assume_yes: bool = False,
        keep_local: bool = False,
        remote_dump_command: str = DEFAULT_REMOTE_DUMP_COMMAND,
        remote_source_profile: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.dump_dir = os.path.abspath(dump_dir)
        self.timeout = timeout
        self.environ = environ if environ is not None else load_environment()
        self.assume_yes = assume_yes
        self.keep_local = keep_local
        self.console = Console(quiet=True) if quiet else console
        self.error_console = Console(quiet=True) if quiet else error_console
        self.prompter = prompter or ConsolePrompter(self.console)

        self.command_runner = CommandRunner(logger=logger, default_timeout=timeout)
        self.filesystem_service = FileSystemService(logger=logger, console=self.console, clock=clock)
        self.ssh_client = SshClient(command_runner=self.command_runner, logger=logger)
        self.config_store = ConfigStore(self.environ)
        self.dump_producer = DumpProducer(
            command_runner=self.command_runner,
            ssh_client=self.ssh_client,
            filesystem_service=self.filesystem_service,
            logger=logger,
            console=self.console,
            dump_dir=self.dump_dir,
            timeout=timeout,
            remote_dump_command=remote_dump_command,
            remote_source_profile=remote_source_profile,
        )
        self.dump_transfer = DumpTransfer(
            ssh_client=self.ssh_client,
            filesystem_service=self.filesystem_service,
            logger=logger,
            console=self.console,
            timeout=timeout,
        )
        self.dump_importer = DumpImporter(
            command_runner=self.command_runner,
            logger=logger,
            console=self.console,
            timeout=timeout,
        )
        self.last_outcome: Optional[SyncOutcome] = None

    def database_credentials(self):
        return credentials_from_environment(self.environ)

    def create_dump(self) -> DumpArtifact:
        return self.dump_producer.produce_local(self.database_credentials())

    def dump(self) -> int:
        def _dump():
            artifact = self.create_dump()
            self.console.print(
                f"[bold green]Database dump created: {escape(artifact.path)} "
                f"({format_size(artifact.size_bytes)})[/bold green]"
            )

        return self._run(_dump)

    def select_dump(self) -> str:
        dumps = self.filesystem_service.list_dumps(self.dump_dir)
        if not dumps:
            raise SyncError(actionable_error("no_dumps_found"))

        table = Table(title=f"Database dumps in {self.dump_dir}")
        table.add_column("#", justify="right")
        table.add_column("File")
        table.add_column("Modified")
        table.add_column("Size", justify="right")
        for index, path in enumerate(dumps):
            stat = path.stat()
            table.add_row(
                str(index),
                path.name,
                datetime.fromtimestamp(stat.st_mtime).strftime("%Y-%m-%d %H:%M:%S"),
                format_size(stat.st_size),
            )
        self.console.print(table)

        options = [str(index) for index in range(len(dumps))]
        selected = self.prompter.prompt_choice(
            "Please select a dump file to import",
            options,
            default=options[-1],
        )
        return str(dumps[int(selected)])

    def confirm_import(self, db_name: str) -> bool:
        if self.assume_yes:
            return True
        self.console.print(
            f"[yellow]Importing the dump will REPLACE your current local database '{escape(db_name)}'! "
            "Make sure you have a backup if needed.[/yellow]"
        )
        return self.prompter.prompt_confirm("Do you want to import the database dump now?")

    def import_dump(self, dump_path: Optional[str] = None) -> int:
        def _import():
            selected = dump_path or self.select_dump()
            credentials = self.database_credentials()
            if not self.confirm_import(credentials.db_name):
                self.console.print("[yellow]Database import skipped by user.[/yellow]")
                logger.info("Database import skipped by user")
                return
            self.dump_importer.import_dump(selected, credentials)

        return self._run(_import)

    def build_orchestrator(self) -> SyncOrchestrator:
        return SyncOrchestrator(
            config_store=self.config_store,
            dump_producer=self.dump_producer,
            dump_transfer=self.dump_transfer,
            dump_importer=self.dump_importer,
            ssh_client=self.ssh_client,
            filesystem_service=self.filesystem_service,
            prompter=self.prompter,
            logger=logger,
            console=self.console,
            dump_dir=self.dump_dir,
            credentials_provider=self.database_credentials,
            keep_local=self.keep_local,
            assume_yes=self.assume_yes,
        )

    def sync(self, connection_name: Optional[str] = None) -> int:
        logger.info("Starting database sync...")
        outcome = self.build_orchestrator().sync(connection_name)
        self.last_outcome = outcome

        for warning in outcome.warnings:
            self.error_console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")

        if outcome.state == SyncState.FAILED:
            self._report(outcome.error)
            return 1
        return 0

    def _report(self, exc: BaseException):
        self.error_console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        logger.debug("Failure details", exc_info=exc)

    def _run(self, callback) -> int:
        try:
            callback()
            return 0
        except KeyboardInterrupt:
            self.error_console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            return 1
        except SyncError as exc:
            self._report(exc)
            return 1
        except Exception as exc:
            self.error_console.print(f"[bold red]Unexpected error:[/bold red] {escape(str(exc))}")
            logger.exception("Unexpected error")
            return 1
