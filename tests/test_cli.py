"""Tests for the CLI module."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from devrunner.cli import _parse_params, main


class TestCLI:
    """Test CLI commands."""

    @pytest.fixture
    def runner(self):
        """Create CLI test runner."""
        return CliRunner()

    def test_main_help(self, runner):
        """Main command shows help."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "devrunner" in result.output
        for command in ("serve", "list", "run", "logs"):
            assert command in result.output

    def test_version(self, runner):
        """Version flag works."""
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestListCommand:
    """Test list command."""

    @pytest.fixture
    def runner(self):
        return CliRunner()

    def test_list_formatted(self, runner, scripts_dir):
        result = runner.invoke(main, ["list", "--scripts-dir", str(scripts_dir)])

        assert result.exit_code == 0
        assert "hello.py" in result.output
        assert "[testing]" in result.output
        assert "name: string, required" in result.output
        assert "plain.py" not in result.output

    def test_list_raw(self, runner, scripts_dir):
        result = runner.invoke(main, ["list", "--raw", "--scripts-dir", str(scripts_dir)])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert {s["fileName"] for s in data} >= {"hello.py", "mixed.py"}
        assert all("filePath" in s for s in data)

    def test_list_empty(self, runner, tmp_path):
        result = runner.invoke(main, ["list", "--scripts-dir", str(tmp_path)])
        assert result.exit_code == 0
        assert "No scripts found" in result.output

    def test_list_missing_dir(self, runner, tmp_path):
        result = runner.invoke(main, ["list", "--scripts-dir", str(tmp_path / "missing")])
        assert result.exit_code == 2


class TestRunCommand:
    """Test run command."""

    @pytest.fixture
    def runner(self):
        return CliRunner()

    def test_run_streams_output(self, runner, scripts_dir, log_path):
        result = runner.invoke(main, [
            "run", "hello.py",
            "-p", "name=Ada", "-p", "excited=true",
            "--scripts-dir", str(scripts_dir),
            "--log-file", str(log_path),
        ])

        assert result.exit_code == 0
        assert "Hello, Ada!!!" in result.output
        assert "[Process exited with code 0]" in result.output
        assert "Executed: Hello" in log_path.read_text()

    def test_run_exits_with_script_code(self, runner, scripts_dir, log_path):
        result = runner.invoke(main, [
            "run", "mixed.py",
            "--scripts-dir", str(scripts_dir),
            "--log-file", str(log_path),
        ])

        assert result.exit_code == 3
        assert "[stderr] err-line" in result.output

    def test_run_missing_param(self, runner, scripts_dir, log_path):
        result = runner.invoke(main, [
            "run", "hello.py",
            "--scripts-dir", str(scripts_dir),
            "--log-file", str(log_path),
        ])

        assert result.exit_code == 1
        assert "Required parameter 'name' is missing" in result.output
        assert not log_path.exists()

    def test_run_unknown_script(self, runner, scripts_dir, log_path):
        result = runner.invoke(main, [
            "run", "nope.py",
            "--scripts-dir", str(scripts_dir),
            "--log-file", str(log_path),
        ])

        assert result.exit_code == 1
        assert "Script not found: nope.py" in result.output

    def test_run_bad_param_format(self, runner, scripts_dir):
        result = runner.invoke(main, ["run", "hello.py", "-p", "name", "--scripts-dir", str(scripts_dir)])

        assert result.exit_code == 2
        assert "NAME=VALUE" in result.output


class TestParseParams:
    """Test NAME=VALUE parsing."""

    def test_pairs(self):
        assert _parse_params(("name=Ada", "msg=a=b", "empty=")) == {"name": "Ada", "msg": "a=b", "empty": ""}

    def test_missing_separator(self):
        import click

        with pytest.raises(click.BadParameter):
            _parse_params(("name",))


class TestLogsCommand:
    """Test logs command."""

    @pytest.fixture
    def runner(self):
        return CliRunner()

    def test_logs_without_file(self, runner, tmp_path):
        result = runner.invoke(main, ["logs", "--log-file", str(tmp_path / "none.log")])
        assert result.exit_code == 0
        assert "No logs yet" in result.output


class TestServeCommand:
    """Test serve command."""

    @pytest.fixture
    def runner(self):
        return CliRunner()

    @patch("uvicorn.run")
    def test_serve_default(self, mock_uvicorn_run, runner, scripts_dir, log_path):
        """Serve starts uvicorn with the configured host and port."""
        result = runner.invoke(main, [
            "serve", "--port", "3100",
            "--scripts-dir", str(scripts_dir),
            "--log-file", str(log_path),
        ])

        assert result.exit_code == 0
        assert "Starting devrunner on http://127.0.0.1:3100" in result.output
        mock_uvicorn_run.assert_called_once()
        _, kwargs = mock_uvicorn_run.call_args
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 3100

    @patch("uvicorn.run")
    def test_serve_envvar_port(self, mock_uvicorn_run, runner, scripts_dir):
        result = runner.invoke(
            main,
            ["serve", "--scripts-dir", str(scripts_dir)],
            env={"DEVRUNNER_PORT": "4100"},
        )

        assert result.exit_code == 0
        assert mock_uvicorn_run.call_args.kwargs["port"] == 4100
