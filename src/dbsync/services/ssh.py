"""SSH and SCP invocation helpers for dbsync."""

import shlex
from typing import Dict, List, Optional, Tuple

from dbsync.models import CommandResult, ConnectionConfig, KeyAuth, PasswordAuth

Invocation = Tuple[List[str], Optional[Dict[str, str]], List[str]]


class SshClient:
    """Builds argument lists for ``ssh``/``scp`` and runs them.

    Key authentication passes ``-i``; password authentication wraps the call in
    ``sshpass -e`` with the secret in ``SSHPASS`` so it never shows up in argv.
    """

    def __init__(self, command_runner, logger):
        self.command_runner = command_runner
        self.logger = logger

    def _auth(self, connection: ConnectionConfig) -> Tuple[List[str], List[str], Optional[Dict[str, str]], List[str]]:
        auth = connection.auth
        if isinstance(auth, KeyAuth):
            return [], ["-i", auth.path, "-o", "BatchMode=yes"], None, []
        if isinstance(auth, PasswordAuth):
            return ["sshpass", "-e"], [], {"SSHPASS": auth.secret}, [auth.secret]
        raise TypeError(f"Unsupported auth type: {type(auth).__name__}")

    def ssh_invocation(self, connection: ConnectionConfig, remote_command: str) -> Invocation:
        wrapper, options, env, secrets = self._auth(connection)
        cmd = wrapper + ["ssh", "-p", str(connection.port)] + options + [
            connection.destination,
            remote_command,
        ]
        return cmd, env, secrets

    def scp_invocation(self, connection: ConnectionConfig, remote_path: str, local_path: str) -> Invocation:
        wrapper, options, env, secrets = self._auth(connection)
        cmd = wrapper + ["scp", "-P", str(connection.port)] + options + [
            f"{connection.destination}:{remote_path}",
            local_path,
        ]
        return cmd, env, secrets

    def run_remote(
        self,
        connection: ConnectionConfig,
        remote_command: str,
        check: bool = True,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        cmd, env, secrets = self.ssh_invocation(connection, remote_command)
        return self.command_runner.run(cmd, check=check, timeout=timeout, env=env, secrets=secrets)

    def copy_from(
        self,
        connection: ConnectionConfig,
        remote_path: str,
        local_path: str,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        cmd, env, secrets = self.scp_invocation(connection, remote_path, local_path)
        return self.command_runner.run(cmd, check=False, timeout=timeout, env=env, secrets=secrets)

    def remove_remote(
        self,
        connection: ConnectionConfig,
        remote_path: str,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        self.logger.debug("Removing remote file %s on %s", remote_path, connection.host)
        return self.run_remote(
            connection,
            f"rm -f -- {shlex.quote(remote_path)}",
            check=False,
            timeout=timeout,
        )
