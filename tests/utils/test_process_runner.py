"""Tests for ProcessRunner and CancellationToken."""

import subprocess
from unittest.mock import MagicMock, Mock, patch

from manifestor.utils.process_runner import (
    CancellationToken,
    ProcessOptions,
    ProcessRunner,
)


def fake_process(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    process = MagicMock()
    process.communicate.return_value = (stdout, stderr)
    process.returncode = returncode
    process.poll.return_value = None
    process.pid = 4242
    return process


class TestCancellationToken:
    def test_callbacks_run_once(self) -> None:
        token = CancellationToken()
        callback = Mock()
        token.register(callback)

        token.cancel()
        token.cancel()

        assert token.cancelled
        callback.assert_called_once()

    def test_register_after_cancel_runs_immediately(self) -> None:
        token = CancellationToken()
        token.cancel()
        callback = Mock()
        token.register(callback)
        callback.assert_called_once()


class TestProcessRunner:
    """Test cases for ProcessRunner with subprocess mocked out."""

    @patch("manifestor.utils.process_runner.shutil.which")
    def test_is_available(self, mock_which) -> None:
        mock_which.return_value = "/usr/bin/podman"
        availability = ProcessRunner().is_available("podman")
        assert availability.available
        assert availability.path == "/usr/bin/podman"

        mock_which.return_value = None
        assert not ProcessRunner().is_available("podman").available

    @patch("manifestor.utils.process_runner.subprocess.Popen")
    def test_execute_collects_output(self, mock_popen) -> None:
        mock_popen.return_value = fake_process(0, "ok\n", "")
        result = ProcessRunner().execute(
            "docker", ["info"], ProcessOptions(cwd="/tmp", timeout=5)
        )

        assert result.success
        assert result.stdout == "ok\n"
        args, kwargs = mock_popen.call_args
        assert args[0] == ["docker", "info"]
        assert kwargs["cwd"] == "/tmp"

    @patch("manifestor.utils.process_runner.subprocess.Popen")
    def test_missing_binary(self, mock_popen) -> None:
        mock_popen.side_effect = FileNotFoundError("docker")
        assert ProcessRunner().execute("docker", ["info"]).exit_code == 127

    @patch("manifestor.utils.process_runner.subprocess.Popen")
    def test_timeout_kills_process(self, mock_popen) -> None:
        process = fake_process()
        process.communicate.side_effect = [
            subprocess.TimeoutExpired("docker", 1),
            ("", ""),
        ]
        mock_popen.return_value = process

        result = ProcessRunner().execute("docker", ["build"], ProcessOptions(timeout=1))
        assert result.exit_code == 124
        process.kill.assert_called_once()

    @patch("manifestor.utils.process_runner.subprocess.Popen")
    def test_cancelled_runner_refuses_work(self, mock_popen) -> None:
        token = CancellationToken()
        runner = ProcessRunner(token)
        token.cancel()

        assert runner.execute("docker", ["build"]).exit_code == 130
        mock_popen.assert_not_called()

    def test_cancel_all_terminates_tracked_processes(self) -> None:
        runner = ProcessRunner()
        process = fake_process()
        runner._processes.add(process)

        runner.cancel_all()
        process.terminate.assert_called_once()
        process.wait.assert_called_once()

    def test_cancel_all_kills_stubborn_processes(self) -> None:
        runner = ProcessRunner()
        process = fake_process()
        process.wait.side_effect = subprocess.TimeoutExpired("dotnet", 5)
        runner._processes.add(process)

        runner.cancel_all()
        process.kill.assert_called_once()
