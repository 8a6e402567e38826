"""Database credential decoding and transient MySQL option files."""

import os
import tempfile
from contextlib import contextmanager
from typing import Iterator, Mapping, Optional
from urllib.parse import unquote, urlsplit

from dbsync.constants import CREDENTIALS_FILE_MODE, DATABASE_URL_ENV, DEFAULT_MYSQL_PORT
from dbsync.errors import ConfigurationError
from dbsync.errors_catalog import actionable_error
from dbsync.models import DatabaseCredentials


def parse_database_url(url: Optional[str]) -> DatabaseCredentials:
    if not url:
        raise ConfigurationError(actionable_error("missing_database_url"))

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as exc:
        raise ConfigurationError(actionable_error("invalid_database_url", reason=str(exc))) from exc

    db_name = unquote(parts.path.strip("/"))
    missing = [
        label
        for label, value in (("user", parts.username), ("host", parts.hostname), ("database name", db_name))
        if not value
    ]
    if not parts.scheme or missing:
        reason = f"missing {', '.join(missing)}" if missing else "missing scheme"
        raise ConfigurationError(actionable_error("invalid_database_url", reason=reason))

    return DatabaseCredentials(
        host=parts.hostname,
        user=unquote(parts.username),
        password=unquote(parts.password or ""),
        port=port or DEFAULT_MYSQL_PORT,
        db_name=db_name,
    )


def credentials_from_environment(environ: Mapping[str, str]) -> DatabaseCredentials:
    return parse_database_url(environ.get(DATABASE_URL_ENV))


def _option_value(value) -> str:
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_option_file(credentials: DatabaseCredentials) -> str:
    return (
        "[client]\n"
        f"host = {_option_value(credentials.host)}\n"
        f"user = {_option_value(credentials.user)}\n"
        f"password = {_option_value(credentials.password)}\n"
        f"port = {int(credentials.port)}\n"
    )


@contextmanager
def option_file(credentials: DatabaseCredentials, directory: Optional[str] = None) -> Iterator[str]:
    """Writes a client option file readable only by the owner and yields its path.

    The path is unique per call and the file is removed on every exit path.
    """
    fd, path = tempfile.mkstemp(prefix="dbsync-", suffix=".cnf", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
            os.chmod(path, CREDENTIALS_FILE_MODE)
            file_obj.write(render_option_file(credentials))
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
