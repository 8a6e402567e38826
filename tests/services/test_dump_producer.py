import gzip
import os
import re
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from rich.console import Console

from dbsync.errors import CommandExecutionError, DumpCollisionError, EmptyArtifactError, SyncError
from dbsync.models import CommandResult, ConnectionConfig, DatabaseCredentials
from dbsync.services.command_runner import CommandRunner
from dbsync.services.dump_producer import DumpProducer
from dbsync.services.filesystem import FileSystemService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class FakePipelineRunner:
    """Writes ``payload`` through gzip into the requested file."""

    def __init__(self, payload=b"CREATE TABLE t (id int);\n", exit_code=0, raw=None):
        self.payload = payload
        self.exit_code = exit_code
        self.raw = raw
        self.calls = []

    def run_pipeline(self, commands, stdout_path=None, check=True, timeout=None, env=None, secrets=()):
        defaults_arg = commands[0][1]
        defaults_file = defaults_arg.split("=", 1)[1]
        self.calls.append(
            {
                "commands": commands,
                "env": env,
                "secrets": list(secrets),
                "defaults_existed": os.path.exists(defaults_file),
                "defaults_file": defaults_file,
            }
        )
        if self.raw is not None:
            Path(stdout_path).write_bytes(self.raw)
        else:
            with gzip.open(stdout_path, "wb") as file_obj:
                file_obj.write(self.payload)
        stderr = "" if self.exit_code == 0 else "mysqldump: Got error: 1045"
        return CommandResult(command=["mysqldump"], stdout="", stderr=stderr, exit_code=self.exit_code)


class FakeSshClient:
    def __init__(self, stdout):
        self.stdout = stdout
        self.commands = []

    def run_remote(self, connection, remote_command, check=True, timeout=None):
        self.commands.append(remote_command)
        return CommandResult(command=["ssh"], stdout=self.stdout, stderr="", exit_code=0)


class TickingClock:
    def __init__(self):
        self.now = datetime(2024, 5, 17, 9, 30, 5)

    def __call__(self):
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


def _credentials():
    return DatabaseCredentials(host="localhost", user="u", password="pw-s3cret", port=3306, db_name="app")


def _connection():
    return ConnectionConfig(
        name="staging",
        host="staging.example.com",
        user="deploy",
        port=22,
        remote_path="/var/www/my shop",
        key_file="/keys/id",
    )


def _producer(tmp_path, runner=None, ssh_client=None, clock=None, **kwargs):
    filesystem = FileSystemService(
        logger=DummyLogger(),
        console=Console(quiet=True),
        clock=clock or TickingClock(),
    )
    return DumpProducer(
        command_runner=runner or FakePipelineRunner(),
        ssh_client=ssh_client,
        filesystem_service=filesystem,
        logger=DummyLogger(),
        console=Console(quiet=True),
        dump_dir=str(tmp_path / "var" / "dump"),
        timeout=3600,
        **kwargs,
    )


def test_produce_local_writes_timestamped_dump(tmp_path):
    runner = FakePipelineRunner()
    artifact = _producer(tmp_path, runner=runner).produce_local(_credentials())

    assert re.fullmatch(r"dump_\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}\.sql\.gz", os.path.basename(artifact.path))
    assert artifact.size_bytes > 0
    assert os.path.exists(artifact.path)

    call = runner.calls[0]
    mysqldump, gzip_cmd = call["commands"]
    assert mysqldump[0] == "mysqldump"
    assert mysqldump[1].startswith("--defaults-extra-file=")
    assert "--default-character-set=utf8mb4" in mysqldump
    assert "--lock-tables=false" in mysqldump
    assert "--no-create-db" in mysqldump
    assert mysqldump[-1] == "app"
    assert not any("pw-s3cret" in arg for arg in mysqldump)
    assert call["secrets"] == ["pw-s3cret"]
    assert gzip_cmd == ["gzip", "-c"]
    assert call["env"] == {"LANG": "en_US.UTF-8"}
    assert call["defaults_existed"] is True
    assert not os.path.exists(call["defaults_file"])


def test_produce_local_twice_yields_distinct_dumps(tmp_path):
    producer = _producer(tmp_path)

    first = producer.produce_local(_credentials())
    second = producer.produce_local(_credentials())

    assert first.path != second.path
    assert os.path.getsize(first.path) > 0
    assert os.path.getsize(second.path) > 0


def test_produce_local_refuses_same_second_collision(tmp_path):
    frozen = lambda: datetime(2024, 5, 17, 9, 30, 5)  # noqa: E731
    producer = _producer(tmp_path, clock=frozen)

    first = producer.produce_local(_credentials())

    with pytest.raises(SyncError, match="already exists"):
        producer.produce_local(_credentials())
    assert os.path.getsize(first.path) > 0


def test_produce_local_rejects_zero_byte_output(tmp_path):
    producer = _producer(tmp_path, runner=FakePipelineRunner(raw=b""))

    with pytest.raises(EmptyArtifactError, match="empty"):
        producer.produce_local(_credentials())

    assert list((tmp_path / "var" / "dump").glob("*.sql.gz")) == []


def test_produce_local_rejects_empty_compressed_stream(tmp_path):
    producer = _producer(tmp_path, runner=FakePipelineRunner(payload=b""))

    with pytest.raises(EmptyArtifactError):
        producer.produce_local(_credentials())

    assert list((tmp_path / "var" / "dump").glob("*.sql.gz")) == []


def test_produce_local_raises_on_failed_export(tmp_path):
    producer = _producer(tmp_path, runner=FakePipelineRunner(exit_code=2))

    with pytest.raises(CommandExecutionError, match="1045") as error:
        producer.produce_local(_credentials())

    assert error.value.exit_code == 2
    assert list((tmp_path / "var" / "dump").glob("*.sql.gz")) == []


def test_build_remote_command_quotes_path_and_sources_profile(tmp_path):
    producer = _producer(tmp_path)

    command = producer.build_remote_command(_connection())

    assert command == (
        "if [ -f ~/.profile ]; then . ~/.profile; fi; "
        "cd '/var/www/my shop' && dbsync dump --path-only"
    )


def test_build_remote_command_without_profile(tmp_path):
    producer = _producer(tmp_path, remote_source_profile=False, remote_dump_command="bin/console database:dump --path-only")

    assert producer.build_remote_command(_connection()) == (
        "cd '/var/www/my shop' && bin/console database:dump --path-only"
    )


def test_produce_remote_returns_remote_artifact(tmp_path):
    ssh_client = FakeSshClient("/var/www/shop/var/dump/dump_2024-05-17_09-30-05.sql.gz\n")
    producer = _producer(tmp_path, ssh_client=ssh_client)

    artifact = producer.produce_remote(_connection())

    assert artifact.path == "/var/www/shop/var/dump/dump_2024-05-17_09-30-05.sql.gz"
    assert artifact.location.host == "staging.example.com"
    assert artifact.size_bytes is None


def test_produce_remote_rejects_unexpected_output(tmp_path):
    producer = _producer(tmp_path, ssh_client=FakeSshClient("Welcome!\n"))

    with pytest.raises(CommandExecutionError, match="did not report a dump path"):
        producer.produce_remote(_connection())


@pytest.mark.parametrize(
    "stdout, expected",
    [
        ("/srv/var/dump/dump_1.sql.gz", "/srv/var/dump/dump_1.sql.gz"),
        ("motd line\n/srv/var/dump/dump_1.sql.gz\n\n", "/srv/var/dump/dump_1.sql.gz"),
        ("", None),
        ("/srv/var/dump/dump_1.sql", None),
        ("/srv/dump; rm -rf ~.sql.gz", None),
    ],
)
def test_parse_remote_path(stdout, expected):
    assert DumpProducer.parse_remote_path(stdout) == expected


class ConcurrentDumpRunner:
    """Another run finishes the same file before this pipeline opens it."""

    def run_pipeline(self, commands, stdout_path=None, check=True, timeout=None, env=None, secrets=()):
        with gzip.open(stdout_path, "wb") as file_obj:
            file_obj.write(b"-- written by the other run\n")
        return CommandRunner(logger=DummyLogger()).run_pipeline(
            [["gzip", "-c"]], stdout_path=stdout_path, check=check, timeout=timeout
        )


def test_produce_local_keeps_dump_written_concurrently(tmp_path):
    frozen = lambda: datetime(2024, 5, 17, 9, 30, 5)  # noqa: E731
    producer = _producer(tmp_path, runner=ConcurrentDumpRunner(), clock=frozen)
    existing = tmp_path / "var" / "dump" / "dump_2024-05-17_09-30-05.sql.gz"

    with pytest.raises(DumpCollisionError, match="Refusing to overwrite"):
        producer.produce_local(_credentials())

    assert existing.exists()
    with gzip.open(existing, "rb") as file_obj:
        assert file_obj.read() == b"-- written by the other run\n"
