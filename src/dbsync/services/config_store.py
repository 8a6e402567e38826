"""Environment-backed connection configuration for dbsync."""

import os
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values

from dbsync.constants import CONNECTION_ENV_PREFIXES, DEFAULT_SSH_PORT
from dbsync.errors import ConfigurationError, UnknownConnectionError
from dbsync.errors_catalog import actionable_error
from dbsync.models import ConnectionConfig


def load_environment(env_file: Optional[str] = ".env") -> Dict[str, str]:
    """Returns the process environment layered over the values of ``env_file``."""
    values: Dict[str, str] = {}
    if env_file and os.path.isfile(env_file):
        values.update({key: value for key, value in dotenv_values(env_file).items() if value is not None})
    values.update(os.environ)
    return values


class ConfigStore:
    """Resolves a connection name to a validated ``ConnectionConfig``.

    Each slot reads ``<PREFIX>_HOST``, ``_USER``, ``_PORT``, ``_PATH`` (or
    ``_REMOTE_PATH``), ``_KEY`` and ``_PASSWORD``.
    """

    def __init__(self, environ: Mapping[str, str], prefixes: Optional[Mapping[str, str]] = None):
        self.environ = environ
        self.prefixes = dict(prefixes or CONNECTION_ENV_PREFIXES)

    @property
    def names(self) -> List[str]:
        return list(self.prefixes)

    def _get(self, prefix: str, *suffixes: str) -> Optional[str]:
        for suffix in suffixes:
            value = self.environ.get(f"{prefix}_{suffix}")
            if value is not None and value.strip():
                return value.strip()
        return None

    def resolve(self, name: str) -> ConnectionConfig:
        if name not in self.prefixes:
            raise UnknownConnectionError(
                actionable_error("unknown_connection", name=name, choices=", ".join(self.names))
            )

        prefix = self.prefixes[name]
        host = self._get(prefix, "HOST")
        user = self._get(prefix, "USER")
        remote_path = self._get(prefix, "PATH", "REMOTE_PATH")
        key_file = self._get(prefix, "KEY")
        password = self._get(prefix, "PASSWORD")
        raw_port = self._get(prefix, "PORT")

        problems = []
        if not host:
            problems.append(f"{prefix}_HOST")
        if not user:
            problems.append(f"{prefix}_USER")
        if not remote_path:
            problems.append(f"{prefix}_PATH")
        if not key_file and not password:
            problems.append(f"{prefix}_KEY or {prefix}_PASSWORD")

        port = DEFAULT_SSH_PORT
        if raw_port is not None:
            try:
                port = int(raw_port)
            except ValueError:
                problems.append(f"{prefix}_PORT must be an integer (got '{raw_port}')")
            else:
                if not 1 <= port <= 65535:
                    problems.append(f"{prefix}_PORT must be between 1 and 65535 (got {port})")

        if problems:
            raise ConfigurationError(f"Connection '{name}' is not configured correctly", problems)

        return ConnectionConfig(
            name=name,
            host=host,
            user=user,
            port=port,
            remote_path=remote_path,
            key_file=os.path.expanduser(key_file) if key_file else None,
            password=password,
        )
