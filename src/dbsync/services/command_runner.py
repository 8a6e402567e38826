"""Subprocess execution service for dbsync."""

import os
import subprocess
import tempfile
import time
from contextlib import ExitStack
from typing import Dict, List, Optional, Sequence

from dbsync.errors import CommandExecutionError, CommandTimeoutError, DumpCollisionError, SyncError
from dbsync.errors_catalog import actionable_error
from dbsync.models import CommandResult

REDACTED = "******"


def redact(text: str, secrets: Sequence[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text


class CommandRunner:
    """Runs external commands with consistent error handling.

    Commands are always argument lists; nothing is interpreted by a shell.
    """

    def __init__(self, logger, default_timeout: Optional[float] = None):
        self.logger = logger
        self.default_timeout = default_timeout

    def _environment(self, env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        if not env:
            return None
        merged = dict(os.environ)
        merged.update(env)
        return merged

    def describe(self, cmd: List[str], secrets: Sequence[str] = ()) -> str:
        return redact(" ".join(cmd), secrets)

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        secrets: Sequence[str] = (),
    ) -> CommandResult:
        cmd_str = self.describe(cmd, secrets)
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout

        try:
            completed = subprocess.run(
                cmd,
                encoding="utf-8",
                errors="replace",
                capture_output=True,
                timeout=effective_timeout,
                env=self._environment(env),
            )
        except FileNotFoundError as exc:
            raise SyncError(actionable_error("command_not_found", command=cmd[0])) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandTimeoutError(
                f"Command timed out after {effective_timeout}s: {cmd_str}",
                command=cmd_str,
                timeout=effective_timeout,
            ) from exc
        except OSError as exc:
            raise SyncError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        result = CommandResult(
            command=list(cmd),
            stdout=completed.stdout or "",
            stderr=redact(completed.stderr or "", secrets),
            exit_code=completed.returncode,
        )
        if result.stdout:
            self.logger.debug("Command output: %s", redact(result.stdout.strip(), secrets))

        return self._finish(result, cmd_str, check)

    def run_pipeline(
        self,
        commands: List[List[str]],
        stdout_path: Optional[str] = None,
        check: bool = True,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        secrets: Sequence[str] = (),
    ) -> CommandResult:
        """Runs ``commands`` connected stdout-to-stdin, like a shell pipe.

        The exit code is the first non-zero status of any stage. When
        ``stdout_path`` is given the last stage writes to that file, which must
        not exist yet.
        """
        if not commands:
            raise ValueError("run_pipeline requires at least one command")

        cmd_str = " | ".join(self.describe(cmd, secrets) for cmd in commands)
        if stdout_path:
            cmd_str = f"{cmd_str} > {stdout_path}"
        self.logger.debug("Executing pipeline: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout
        process_env = self._environment(env)
        processes: List[subprocess.Popen] = []

        with ExitStack() as stack:
            if stdout_path:
                try:
                    sink = stack.enter_context(open(stdout_path, "xb"))
                except FileExistsError as exc:
                    raise DumpCollisionError(f"Refusing to overwrite existing file: {stdout_path}") from exc
            else:
                sink = subprocess.PIPE

            stderr_files = []
            upstream = None
            try:
                for index, cmd in enumerate(commands):
                    is_last = index == len(commands) - 1
                    stderr_file = stack.enter_context(tempfile.TemporaryFile())
                    stderr_files.append(stderr_file)
                    process = subprocess.Popen(
                        cmd,
                        stdin=upstream,
                        stdout=sink if is_last else subprocess.PIPE,
                        stderr=stderr_file,
                        env=process_env,
                    )
                    if upstream is not None:
                        # Let the upstream stage receive SIGPIPE if this one exits early.
                        upstream.close()
                    upstream = None if is_last else process.stdout
                    processes.append(process)

                started = time.monotonic()
                output, _ = processes[-1].communicate(timeout=effective_timeout)
                for process in processes[:-1]:
                    remaining = None
                    if effective_timeout is not None:
                        remaining = max(0.0, effective_timeout - (time.monotonic() - started))
                    process.wait(timeout=remaining)
            except FileNotFoundError as exc:
                self._kill(processes, upstream)
                missing = commands[len(processes)][0]
                raise SyncError(actionable_error("command_not_found", command=missing)) from exc
            except subprocess.TimeoutExpired as exc:
                self._kill(processes, upstream)
                raise CommandTimeoutError(
                    f"Command timed out after {effective_timeout}s: {cmd_str}",
                    command=cmd_str,
                    timeout=effective_timeout,
                ) from exc
            except OSError as exc:
                self._kill(processes, upstream)
                raise SyncError(f"Failed to execute command: {cmd_str}. {exc}") from exc

            stderr_chunks = []
            for stderr_file in stderr_files:
                stderr_file.seek(0)
                chunk = stderr_file.read().decode("utf-8", errors="replace").strip()
                if chunk:
                    stderr_chunks.append(chunk)

        exit_code = next((p.returncode for p in processes if p.returncode != 0), 0)
        result = CommandResult(
            command=[part for cmd in commands for part in cmd + ["|"]][:-1],
            stdout=(output or b"").decode("utf-8", errors="replace"),
            stderr=redact("\n".join(stderr_chunks), secrets),
            exit_code=exit_code,
        )
        return self._finish(result, cmd_str, check)

    def _finish(self, result: CommandResult, cmd_str: str, check: bool) -> CommandResult:
        if result.ok:
            return result

        stderr = result.stderr.strip()
        message = f"Command failed ({result.exit_code}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"

        if check:
            raise CommandExecutionError(
                message, command=cmd_str, exit_code=result.exit_code, stderr=stderr
            )

        self.logger.warning(message)
        return result

    @staticmethod
    def _kill(processes: List[subprocess.Popen], upstream=None):
        if upstream is not None:
            upstream.close()
        for process in processes:
            if process.poll() is None:
                process.kill()
        for process in processes:
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                pass
