import logging
import os

import click
from rich.console import Console
from rich.logging import RichHandler

from .constants import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_DUMP_DIR,
    DEFAULT_REMOTE_DUMP_COMMAND,
    DEFAULT_TIMEOUT_SECONDS,
)
from .core import DatabaseSync
from .errors import SyncError
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_level=False,
            show_path=False,
        )
    ],
)


def _configure_logging(verbose: bool, log_file, quiet: bool = False):
    logger = logging.getLogger("dbsync")

    if quiet:
        logger.setLevel(logging.CRITICAL + 1)
        return

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)


def _build_sync(ctx: click.Context, quiet: bool = False, **kwargs) -> DatabaseSync:
    settings = ctx.obj
    _configure_logging(settings["verbose"], settings["log_file"], quiet=quiet)
    return DatabaseSync(
        dump_dir=settings["dump_dir"],
        timeout=settings["timeout"],
        quiet=quiet,
        remote_dump_command=settings["remote_dump_command"],
        remote_source_profile=settings["remote_source_profile"],
        **kwargs,
    )


@click.group()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option(
    "--dump-dir",
    required=False,
    type=click.Path(file_okay=False),
    help=f"Directory holding database dumps (default: {DEFAULT_DUMP_DIR}).",
)
@click.option(
    "--timeout",
    required=False,
    type=float,
    default=None,
    help="Upper bound in seconds for every external command (default: 3600).",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.pass_context
def main(ctx, config, dump_dir, timeout, verbose, log_file):
    """Dump, import and synchronize MySQL databases between environments."""
    try:
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = ConfigLoader().load(resolved_config)
    except SyncError as exc:
        raise click.ClickException(str(exc)) from exc

    ctx.obj = {
        "dump_dir": _resolve_option(dump_dir, config_values, "dump_dir", default=DEFAULT_DUMP_DIR),
        "timeout": float(
            _resolve_option(timeout, config_values, "timeout", default=DEFAULT_TIMEOUT_SECONDS)
        ),
        "verbose": bool(_resolve_option(verbose, config_values, "verbose", default=False)),
        "log_file": _resolve_option(log_file, config_values, "log_file"),
        "keep_local": bool(config_values.get("keep_local", False)),
        "remote_dump_command": config_values.get("remote_dump_command", DEFAULT_REMOTE_DUMP_COMMAND),
        "remote_source_profile": bool(config_values.get("remote_source_profile", True)),
    }


@main.command()
@click.option(
    "--path-only",
    is_flag=True,
    default=False,
    help="Only output the path to the dump file.",
)
@click.pass_context
def dump(ctx, path_only):
    """Create a compressed dump of the local database."""
    if not path_only:
        raise SystemExit(_build_sync(ctx).dump())

    try:
        artifact = _build_sync(ctx, quiet=True).create_dump()
    except Exception:
        # Path-only output is parsed by the remote side of `sync`; failures stay silent.
        raise SystemExit(1)
    click.echo(artifact.path)


@main.command("import")
@click.argument("dump_path", required=False, type=click.Path(dir_okay=False))
@click.option("--yes", "-y", is_flag=True, default=False, help="Skip the destructive-import confirmation.")
@click.pass_context
def import_command(ctx, dump_path, yes):
    """Import a dump into the local database, replacing its contents."""
    database_sync = _build_sync(ctx, assume_yes=yes)
    raise SystemExit(database_sync.import_dump(dump_path))


@main.command()
@click.argument("connection_name", required=False)
@click.option("--yes", "-y", is_flag=True, default=False, help="Skip the destructive-import confirmation.")
@click.option(
    "--keep-local",
    is_flag=True,
    default=None,
    help="Keep the downloaded dump in the dump directory after importing it.",
)
@click.pass_context
def sync(ctx, connection_name, yes, keep_local):
    """Replace the local database with a fresh dump of production or staging."""
    keep_local = bool(_resolve_option(keep_local, ctx.obj, "keep_local", default=False))
    database_sync = _build_sync(ctx, assume_yes=yes, keep_local=keep_local)
    raise SystemExit(database_sync.sync(connection_name))


if __name__ == "__main__":
    main()
