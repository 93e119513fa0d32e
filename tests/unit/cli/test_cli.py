"""
Tests for the upload-mover CLI.
"""

from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from upload_mover.cli.app import cli
from upload_mover.core.errors import BatchPartialFailureError, ConnectionRefreshError
from upload_mover.types import MigrationStats, SyncResult


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Handlers bound to the runner's stdout would outlive the invocation."""
    with patch("upload_mover.cli.app.setup_mover_logging"):
        yield


@pytest.fixture
def configured(clean_env):
    clean_env.setenv("MANIFEST_TABLE", "manifests")
    clean_env.setenv("MANIFEST_FILE_TABLE", "manifest-files")
    clean_env.setenv("UPLOAD_BUCKET", "uploads-use1")
    clean_env.setenv("STORAGE_BUCKET", "storage-use1")
    return clean_env


class TestCli:
    def test_help_lists_commands_in_order(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert result.output.index("run") < result.output.index("region") < result.output.index("requeue")

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert "upload-mover" in result.output


class TestRegionCommand:
    def test_resolves_buckets(self, runner):
        result = runner.invoke(cli, ["region", "storage-use1", "storage-euw2"])

        assert result.exit_code == 0
        assert "us-east-1" in result.output
        assert "eu-west-2" in result.output

    def test_unresolvable_bucket_fails(self, runner):
        result = runner.invoke(cli, ["region", "storage-use1", "storage-moon1"])

        assert result.exit_code == 1
        assert "unresolvable" in result.output


class TestRunCommand:
    def test_missing_configuration(self, runner, clean_env):
        result = runner.invoke(cli, ["run"])

        assert result.exit_code == 1
        assert "MANIFEST_TABLE" in result.output

    def test_successful_run(self, runner, configured):
        stats = MigrationStats(moved=3)
        with patch("upload_mover.cli.app.run_mover", new_callable=AsyncMock, return_value=stats) as run:
            result = runner.invoke(cli, ["run", "--workers", "4", "--timeout", "5", "--keep-source"])

        assert result.exit_code == 0, result.output
        config = run.await_args.args[0]
        assert config.workers == 4
        assert config.file_move_timeout_minutes == 5
        assert config.delete_source is False
        assert "Moved" in result.output

    def test_failed_files_exit_code(self, runner, configured):
        stats = MigrationStats(moved=1, failed=1)
        with patch("upload_mover.cli.app.run_mover", new_callable=AsyncMock, return_value=stats):
            result = runner.invoke(cli, ["run"])

        assert result.exit_code == 2

    def test_setup_error(self, runner, configured):
        error = ConnectionRefreshError("Failed to open connection pool: denied")
        with patch("upload_mover.cli.app.run_mover", new_callable=AsyncMock, side_effect=error):
            result = runner.invoke(cli, ["run"])

        assert result.exit_code == 1
        assert "connection" in result.output


class TestRequeueCommand:
    def test_requeue(self, runner, configured):
        with patch(
            "upload_mover.cli.app.requeue",
            new_callable=AsyncMock,
            return_value=(SyncResult(updated=2), []),
        ) as requeue:
            result = runner.invoke(cli, ["requeue", "m1", "u1", "u2"])

        assert result.exit_code == 0, result.output
        assert requeue.await_args.args[1:] == ("m1", ("u1", "u2"))
        assert "Requeued 2 files" in result.output

    def test_partial_failure(self, runner, configured):
        error = BatchPartialFailureError(["u2"], 3)
        with patch("upload_mover.cli.app.requeue", new_callable=AsyncMock, side_effect=error):
            result = runner.invoke(cli, ["requeue", "m1", "u1", "u2"])

        assert result.exit_code == 1
        assert "u2" in result.output
