"""Remote dump, transfer and import orchestration."""

import os
from typing import Callable, Optional

from dbsync.constants import REMOTE_DUMP_PREFIX
from dbsync.errors import SyncError
from dbsync.models import DatabaseCredentials, SyncOutcome, SyncState


class SyncOrchestrator:
    """Replaces the local database with a fresh dump of a remote installation.

    The run walks ``IDLE -> CONFIG_RESOLVED -> REMOTE_DUMP_CREATED ->
    TRANSFERRED -> IMPORTED -> CLEANED_UP``. Each transition waits for its
    commands to finish before the next one starts. A failing transition stops
    the run in ``FAILED`` after removing whatever temporary dumps already
    exist; cleanup problems are collected as warnings and never replace the
    original error. The remote dump is only removed once the local import has
    finished.
    """

    def __init__(
        self,
        config_store,
        dump_producer,
        dump_transfer,
        dump_importer,
        ssh_client,
        filesystem_service,
        prompter,
        logger,
        console,
        dump_dir: str,
        credentials_provider: Callable[[], DatabaseCredentials],
        keep_local: bool = False,
        assume_yes: bool = False,
    ):
        self.config_store = config_store
        self.dump_producer = dump_producer
        self.dump_transfer = dump_transfer
        self.dump_importer = dump_importer
        self.ssh_client = ssh_client
        self.filesystem_service = filesystem_service
        self.prompter = prompter
        self.logger = logger
        self.console = console
        self.dump_dir = dump_dir
        self.credentials_provider = credentials_provider
        self.keep_local = keep_local
        self.assume_yes = assume_yes
        self.credentials: Optional[DatabaseCredentials] = None
        self.confirmed = False

    def sync(self, connection_name: Optional[str] = None) -> SyncOutcome:
        outcome = SyncOutcome()

        error = self._attempt(self._resolve_config, outcome, connection_name)
        if error:
            return self._fail(outcome, error)

        error = self._attempt(self._confirm, outcome)
        if error:
            return self._fail(outcome, error)

        if not self.confirmed:
            self.console.print("[yellow]Database sync skipped by user.[/yellow]")
            self.logger.info("Database sync skipped by user")
            self._advance(outcome, SyncState.ABORTED)
            return outcome

        error = self._attempt(self._create_remote_dump, outcome)
        if error:
            return self._fail(outcome, error)

        error = self._attempt(self._transfer, outcome)
        if error:
            return self._fail(outcome, error, remove_local=True, remove_remote=True)

        error = self._attempt(self._import, outcome)
        if error:
            return self._fail(outcome, error, remove_local=not self.keep_local, remove_remote=True)

        self._cleanup(outcome, remove_local=not self.keep_local, remove_remote=True)
        self._advance(outcome, SyncState.CLEANED_UP)
        self.console.print(
            f"[bold green]Database synchronized from {outcome.connection.name}.[/bold green]"
        )
        return outcome

    def _resolve_config(self, outcome: SyncOutcome, connection_name: Optional[str]):
        if not connection_name:
            connection_name = self.prompter.prompt_choice(
                "Please select the connection to sync from",
                self.config_store.names,
            )
        outcome.connection = self.config_store.resolve(connection_name)
        self.credentials = self.credentials_provider()
        self._advance(outcome, SyncState.CONFIG_RESOLVED)

    def _confirm(self, outcome: SyncOutcome):
        if self.assume_yes:
            self.confirmed = True
            return
        self.console.print(
            f"[yellow]Importing the {outcome.connection.name} dump will REPLACE your local database "
            f"'{self.credentials.db_name}'! Make sure you have a backup if needed.[/yellow]"
        )
        self.confirmed = self.prompter.prompt_confirm("Do you want to continue?")

    def _create_remote_dump(self, outcome: SyncOutcome):
        artifact = self.dump_producer.produce_remote(outcome.connection)
        outcome.remote_path = artifact.path
        self._advance(outcome, SyncState.REMOTE_DUMP_CREATED)

    def _transfer(self, outcome: SyncOutcome):
        self.filesystem_service.ensure_dump_dir(self.dump_dir)
        local_path = self.filesystem_service.timestamped_dump_path(self.dump_dir, REMOTE_DUMP_PREFIX)
        if os.path.exists(local_path):
            raise SyncError(f"Local dump file already exists: {local_path}")
        outcome.local_path = local_path
        self.dump_transfer.fetch(outcome.remote_path, outcome.connection, local_path)
        self._advance(outcome, SyncState.TRANSFERRED)

    def _import(self, outcome: SyncOutcome):
        self.dump_importer.import_dump(outcome.local_path, self.credentials)
        self._advance(outcome, SyncState.IMPORTED)

    def _attempt(self, callback, *args) -> Optional[SyncError]:
        try:
            callback(*args)
        except SyncError as exc:
            return exc
        except KeyboardInterrupt as exc:
            error = SyncError("Operation cancelled by user.")
            error.__cause__ = exc
            return error
        except Exception as exc:
            self.logger.exception("Unexpected error")
            error = SyncError(f"Unexpected error: {exc}")
            error.__cause__ = exc
            return error
        return None

    def _fail(
        self,
        outcome: SyncOutcome,
        error: SyncError,
        remove_local: bool = False,
        remove_remote: bool = False,
    ) -> SyncOutcome:
        outcome.error = error
        outcome.failed_from = outcome.state
        self.logger.error("Sync failed after state %s: %s", outcome.state.value, error)
        self._cleanup(outcome, remove_local=remove_local, remove_remote=remove_remote)
        self._advance(outcome, SyncState.FAILED)
        return outcome

    def _cleanup(self, outcome: SyncOutcome, remove_local: bool, remove_remote: bool):
        if remove_local and outcome.local_path:
            if not self.filesystem_service.remove_file(outcome.local_path):
                outcome.warnings.append(f"Could not remove local dump {outcome.local_path}")

        if remove_remote and outcome.remote_path:
            warning = None
            try:
                result = self.ssh_client.remove_remote(outcome.connection, outcome.remote_path)
            except SyncError as exc:
                warning = f"Could not remove remote dump {outcome.remote_path}: {exc}"
            else:
                if not result.ok:
                    warning = (
                        f"Could not remove remote dump {outcome.remote_path} "
                        f"({result.exit_code}): {result.stderr.strip()}"
                    )
            if warning:
                self.console.print(f"[yellow]Warning: {warning}[/yellow]")
                self.logger.warning(warning)
                outcome.warnings.append(warning)

    def _advance(self, outcome: SyncOutcome, state: SyncState):
        outcome.advance(state)
        self.logger.debug("Sync state: %s", state.value)
