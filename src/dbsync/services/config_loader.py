"""YAML defaults file for the dbsync CLI."""

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from dbsync.errors import ConfigurationError, SyncError

_TEXT = (str,)
_NUMBER = (int, float)
_FLAG = (bool,)
_LABELS = {_TEXT: "string", _NUMBER: "number", _FLAG: "boolean"}


class ConfigLoader:
    """Reads ``.dbsync.yml`` style files.

    Only the keys below are accepted. Connection secrets are not among them;
    those come from the environment.
    """

    KEY_TYPES: Dict[str, Tuple[type, ...]] = {
        "dump_dir": _TEXT,
        "timeout": _NUMBER,
        "verbose": _FLAG,
        "log_file": _TEXT,
        "keep_local": _FLAG,
        "remote_dump_command": _TEXT,
        "remote_source_profile": _FLAG,
    }
    SUPPORTED_KEYS = set(KEY_TYPES)

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.is_file():
            raise SyncError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise SyncError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise SyncError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(str(key) for key in set(parsed) - self.SUPPORTED_KEYS)
        if unknown:
            raise SyncError(f"Unknown configuration keys: {', '.join(unknown)}")

        self._check_types(config_path, parsed)
        return parsed

    def _check_types(self, config_path: str, values: Dict[str, Any]):
        problems = []
        for key, value in sorted(values.items()):
            expected = self.KEY_TYPES[key]
            # YAML booleans are ints in Python; never accept them as numbers.
            if isinstance(value, bool) and bool not in expected:
                problems.append(f"{key} must be a {_LABELS[expected]}")
            elif not isinstance(value, expected):
                problems.append(f"{key} must be a {_LABELS[expected]}")
            elif key == "timeout" and value <= 0:
                problems.append("timeout must be greater than zero")
            elif expected is _TEXT and not value.strip():
                problems.append(f"{key} must not be empty")

        if problems:
            raise ConfigurationError(f"Invalid values in config file '{config_path}'", problems)
