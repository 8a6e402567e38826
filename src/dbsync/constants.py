"""Shared constants for dbsync."""

DIR_MODE = 0o777
CREDENTIALS_FILE_MODE = 0o600

DEFAULT_DUMP_DIR = "var/dump"
DEFAULT_TIMEOUT_SECONDS = 3600.0
DEFAULT_SSH_PORT = 22
DEFAULT_MYSQL_PORT = 3306
DEFAULT_REMOTE_DUMP_COMMAND = "dbsync dump --path-only"

DUMP_SUFFIX = ".sql.gz"
DUMP_GLOB = f"*{DUMP_SUFFIX}"
LOCAL_DUMP_PREFIX = "dump"
REMOTE_DUMP_PREFIX = "remote"
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

DEFAULT_CONFIG_FILE = ".dbsync.yml"
DATABASE_URL_ENV = "DATABASE_URL"

CONNECTION_ENV_PREFIXES = {
    "production": "DATABASE_SYNC_PROD",
    "staging": "DATABASE_SYNC_STAGING",
}
