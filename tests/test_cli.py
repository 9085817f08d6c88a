"""Tests for the command line interface."""

import pytest
from click.testing import CliRunner

import multipart_transport.cli.main as cli_main
from multipart_transport.core.exceptions import StorageClientError
from multipart_transport.core.headers import META_FROM, TRANSPORT_ORIGIN


@pytest.fixture
def runner(storage, monkeypatch):
    monkeypatch.setattr(cli_main, "build_storage_client", lambda ctx: storage)
    return CliRunner()


def test_upload_completes(runner, storage, make_file):
    path = make_file(3000)

    result = runner.invoke(
        cli_main.cli, ["upload", str(path), "bucket", "remote.bin", "--part-size", "1024"]
    )

    assert result.exit_code == 0, result.output
    assert "Upload completed" in result.output
    assert storage.objects[("bucket", "remote.bin")][0] == path.read_bytes()
    assert len(storage.calls_named("put_part")) == 3


def test_upload_defaults_key_to_file_name(runner, storage, make_file):
    path = make_file(10, name="notes.txt")

    result = runner.invoke(cli_main.cli, ["upload", str(path), "bucket"])

    assert result.exit_code == 0, result.output
    assert ("bucket", "notes.txt") in storage.objects


def test_upload_failure_exits_non_zero(runner, storage, make_file):
    path = make_file(2000)
    storage.fail_on_part[1] = StorageClientError("denied", 403)

    result = runner.invoke(
        cli_main.cli, ["upload", str(path), "bucket", "k", "--part-size", "1024"]
    )

    assert result.exit_code == 1
    assert "Upload failed" in result.output


def test_upload_rejects_invalid_part_size(runner, make_file):
    path = make_file(10)

    result = runner.invoke(
        cli_main.cli, ["upload", str(path), "bucket", "k", "--part-size", "0"]
    )

    assert result.exit_code == 1
    assert "Invalid transport settings" in result.output


def test_upload_resumes_given_upload_id(runner, storage, make_file):
    path = make_file(2048)
    storage.uploads["upload-9"] = {1: path.read_bytes()[:1024]}

    result = runner.invoke(
        cli_main.cli,
        ["upload", str(path), "bucket", "k", "--part-size", "1024", "--upload-id", "upload-9"],
    )

    assert result.exit_code == 0, result.output
    assert [c[1] for c in storage.calls_named("put_part")] == [2]


def test_status_of_missing_object(runner):
    result = runner.invoke(cli_main.cli, ["status", "bucket", "nothing"])

    assert result.exit_code == 0
    assert "not found" in result.output


def test_status_shows_transport_tags(runner, storage):
    storage.put_object("bucket", "k", b"abc", {META_FROM: TRANSPORT_ORIGIN})

    result = runner.invoke(cli_main.cli, ["status", "bucket", "k"])

    assert result.exit_code == 0
    assert TRANSPORT_ORIGIN in result.output
