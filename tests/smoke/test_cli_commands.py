"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import os
import subprocess
import sys
from pathlib import Path

import pytest

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


@pytest.fixture
def cli_env(tmp_path):
    """Environment pointing the JSON store at a temporary directory."""
    env = os.environ.copy()
    env["STORAGE_BACKEND"] = "json"
    env["STATE_DIR"] = str(tmp_path / "state")
    env["LOG_LEVEL"] = "WARNING"
    env["PYTHONIOENCODING"] = "utf-8"
    return env


def run_cli_command(command: str, env: dict, stdin: str = "", timeout: int = 60) -> tuple[int, str, str]:
    """
    Run a CLI command and return exit code, stdout, stderr.

    Args:
        command: The command to run (after 'python -m src.fluency.fluency_cli')
        env: Environment for the child process
        stdin: Text piped to the command's prompts
        timeout: Maximum time to wait

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    full_command = f"{sys.executable} -m src.fluency.fluency_cli {command}"

    result = subprocess.run(
        full_command,
        shell=True,
        cwd=PROJECT_ROOT,
        env=env,
        input=stdin,
        capture_output=True,
        text=True,
        timeout=timeout,
    )

    return result.returncode, result.stdout, result.stderr


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self, cli_env):
        """Main help should display without errors."""
        code, stdout, stderr = run_cli_command("--help", cli_env)

        assert code == 0, f"Help failed: {stderr}"
        assert "fluency" in stdout.lower()
        assert "play" in stdout

    @pytest.mark.parametrize("command", ["play", "stats", "inspect", "reset"])
    def test_command_help(self, cli_env, command):
        code, stdout, stderr = run_cli_command(f"{command} --help", cli_env)
        assert code == 0, f"{command} help failed: {stderr}"


class TestCLISession:
    """Run short sessions against a temporary JSON store."""

    def test_play_then_stats(self, cli_env, tmp_path):
        code, stdout, stderr = run_cli_command("play --speed-run -n 2", cli_env, stdin="1\n" * 20)

        assert code == 0, f"Play failed: {stderr}"
        assert "Session complete" in stdout
        assert (tmp_path / "state" / "FluencyState.json").exists()

        code, stdout, stderr = run_cli_command("stats --speed-run", cli_env)
        assert code == 0, f"Stats failed: {stderr}"
        assert "Fact sets" in stdout

    def test_inspect_fresh_record(self, cli_env):
        code, stdout, stderr = run_cli_command("inspect --speed-run", cli_env)

        assert code == 0, f"Inspect failed: {stderr}"
        assert "total_facts" in stdout

    def test_reset_without_record(self, cli_env):
        code, stdout, stderr = run_cli_command("reset --yes", cli_env)

        assert code == 0, f"Reset failed: {stderr}"
        assert "No learner record found" in stdout
