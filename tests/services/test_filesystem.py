import gzip
import os
import stat
from datetime import datetime

import pytest
from rich.console import Console

from dbsync.errors import EmptyArtifactError
from dbsync.services.filesystem import FileSystemService, format_size


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


def _service(clock=None):
    return FileSystemService(
        logger=DummyLogger(),
        console=Console(quiet=True),
        clock=clock or (lambda: datetime(2024, 5, 17, 9, 30, 5)),
    )


def test_timestamped_dump_path_uses_second_resolution(tmp_path):
    path = _service().timestamped_dump_path(str(tmp_path), "dump")

    assert path == str(tmp_path / "dump_2024-05-17_09-30-05.sql.gz")


def test_ensure_dump_dir_creates_world_writable_directory(tmp_path):
    dump_dir = tmp_path / "var" / "dump"

    _service().ensure_dump_dir(str(dump_dir))

    assert dump_dir.is_dir()
    assert stat.S_IMODE(dump_dir.stat().st_mode) == 0o777


def test_list_dumps_sorts_by_modification_time(tmp_path):
    newer = tmp_path / "dump_b.sql.gz"
    older = tmp_path / "dump_a.sql.gz"
    newer.write_bytes(b"x")
    older.write_bytes(b"x")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")
    os.utime(older, (1_000_000, 1_000_000))
    os.utime(newer, (2_000_000, 2_000_000))

    dumps = _service().list_dumps(str(tmp_path))

    assert [path.name for path in dumps] == ["dump_a.sql.gz", "dump_b.sql.gz"]


def test_list_dumps_handles_missing_directory(tmp_path):
    assert _service().list_dumps(str(tmp_path / "missing")) == []


def test_local_artifact_reports_size(tmp_path):
    dump = tmp_path / "dump.sql.gz"
    with gzip.open(dump, "wb") as file_obj:
        file_obj.write(b"CREATE TABLE t (id int);\n")

    artifact = _service().local_artifact(str(dump))

    assert artifact.size_bytes == dump.stat().st_size
    assert not artifact.location.is_remote


def test_local_artifact_rejects_zero_byte_file(tmp_path):
    dump = tmp_path / "dump.sql.gz"
    dump.write_bytes(b"")

    with pytest.raises(EmptyArtifactError):
        _service().local_artifact(str(dump))


def test_local_artifact_rejects_gzip_without_payload(tmp_path):
    dump = tmp_path / "dump.sql.gz"
    with gzip.open(dump, "wb"):
        pass

    assert dump.stat().st_size > 0
    with pytest.raises(EmptyArtifactError):
        _service().local_artifact(str(dump))


def test_remove_file_returns_false_when_removal_fails(tmp_path, monkeypatch):
    target = tmp_path / "dump.sql.gz"
    target.write_bytes(b"x")

    def failing_remove(_path):
        raise PermissionError("read-only filesystem")

    monkeypatch.setattr(os, "remove", failing_remove)

    assert _service().remove_file(str(target)) is False
    assert target.exists()


def test_remove_file_ignores_missing_paths(tmp_path):
    assert _service().remove_file(str(tmp_path / "gone.sql.gz")) is True
    assert _service().remove_file(None) is True


def test_format_size():
    assert format_size(0) == "0.00 B"
    assert format_size(1536) == "1.50 KB"
    assert format_size(5 * 1024 * 1024) == "5.00 MB"
