"""Unit tests for ofco/sandbox/runner.py.

All process execution is mocked.
"""

import asyncio
import signal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ofco.sandbox.outcomes import Completed, RunnerStartFailure, TimedOut
from ofco.sandbox.policies import get_policy
from ofco.sandbox.runner import ProcessRunner


def _stream(data: bytes = b"", eof: bool = True) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    if eof:
        reader.feed_eof()
    return reader


def _finished_process(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> MagicMock:
    process = MagicMock()
    process.pid = 4242
    process.returncode = returncode
    process.stdout = _stream(stdout)
    process.stderr = _stream(stderr)
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.wait = AsyncMock(return_value=returncode)
    return process


def _hanging_process() -> MagicMock:
    process = MagicMock()
    process.pid = 4242
    process.returncode = None
    process.stdout = _stream(b"partial", eof=False)
    process.stderr = _stream(eof=False)
    process.wait = AsyncMock(return_value=-9)
    return process


@pytest.fixture
def workspace(workspace_manager):
    return workspace_manager.acquire("print('hi')", "py")


class TestProcessRunnerInit:
    def test_defaults(self):
        runner = ProcessRunner()
        assert runner.engine_path == "podman"
        assert runner.policy.name == "standard"
        assert runner.isolated is True

    def test_custom(self):
        runner = ProcessRunner("docker", get_policy("minimal"), isolated=False)
        assert runner.engine_path == "docker"
        assert runner.policy.name == "minimal"
        assert runner.isolated is False


class TestBuildCommand:
    async def test_mounts_only_workspace_read_only(self, python_profile, workspace):
        runner = ProcessRunner()
        cmd = await runner._build_command(python_profile, workspace, "ofco-test")

        assert cmd[:5] == ["podman", "run", "--rm", "--name", "ofco-test"]
        volumes = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "--volume"]
        assert volumes == [f"{workspace.directory}:/workspace:ro"]
        assert cmd[cmd.index("--workdir") + 1] == "/workspace"
        assert "--network=none" in cmd

    async def test_image_and_entrypoint_last(self, python_profile, workspace):
        runner = ProcessRunner()
        cmd = await runner._build_command(python_profile, workspace, "ofco-test")
        assert cmd[-4:] == ["python:3.12-slim", "python", "-u", f"/workspace/{workspace.filename}"]

    async def test_gvisor_dropped_when_unavailable(self, python_profile, workspace):
        runner = ProcessRunner(policy=get_policy("extended"))
        runner._gvisor_available = False
        cmd = await runner._build_command(python_profile, workspace, "ofco-test")
        assert "runsc" not in cmd

    async def test_gvisor_kept_when_available(self, python_profile, workspace):
        runner = ProcessRunner(policy=get_policy("extended"))
        runner._gvisor_available = True
        cmd = await runner._build_command(python_profile, workspace, "ofco-test")
        assert cmd[cmd.index("--runtime") + 1] == "runsc"


class TestRun:
    async def test_completed(self, python_profile, workspace):
        runner = ProcessRunner()
        process = _finished_process(b"hi\n", b"", 0)

        with patch("asyncio.create_subprocess_exec", return_value=process) as mock_exec:
            outcome = await runner.run(python_profile, workspace, timeout=5)

        assert isinstance(outcome, Completed)
        assert outcome.stdout == "hi\n"
        assert outcome.stderr == ""
        assert outcome.exit_code == 0
        assert mock_exec.call_args.args[0] == "podman"
        assert mock_exec.call_args.kwargs["start_new_session"] is True

    async def test_non_zero_exit_is_data(self, python_profile, workspace):
        runner = ProcessRunner()
        process = _finished_process(b"", b"Traceback...\nNameError", 1)

        with patch("asyncio.create_subprocess_exec", return_value=process):
            outcome = await runner.run(python_profile, workspace, timeout=5)

        assert isinstance(outcome, Completed)
        assert outcome.exit_code == 1
        assert "NameError" in outcome.stderr

    async def test_invalid_utf8_is_replaced(self, python_profile, workspace):
        runner = ProcessRunner()
        process = _finished_process(b"ok \xff\n", b"", 0)

        with patch("asyncio.create_subprocess_exec", return_value=process):
            outcome = await runner.run(python_profile, workspace, timeout=5)

        assert outcome.stdout == "ok \ufffd\n"

    async def test_output_capped_per_stream(self, python_profile, workspace):
        runner = ProcessRunner(max_output_bytes=4)
        process = _finished_process(b"abcdefgh", b"xy", 0)

        with patch("asyncio.create_subprocess_exec", return_value=process):
            outcome = await runner.run(python_profile, workspace, timeout=5)

        assert isinstance(outcome, Completed)
        assert outcome.stdout == "abcd"
        assert outcome.stderr == "xy"
        assert outcome.truncated is True
        process.wait.assert_awaited()

    async def test_output_within_cap_not_truncated(self, python_profile, workspace):
        runner = ProcessRunner(max_output_bytes=4)
        process = _finished_process(b"abcd", b"", 0)

        with patch("asyncio.create_subprocess_exec", return_value=process):
            outcome = await runner.run(python_profile, workspace, timeout=5)

        assert outcome.stdout == "abcd"
        assert outcome.truncated is False

    async def test_engine_not_found(self, python_profile, workspace):
        runner = ProcessRunner()

        with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError()):
            outcome = await runner.run(python_profile, workspace, timeout=5)

        assert isinstance(outcome, RunnerStartFailure)
        assert "'podman' not found" in outcome.reason

    async def test_permission_denied(self, python_profile, workspace):
        runner = ProcessRunner()

        with patch("asyncio.create_subprocess_exec", side_effect=PermissionError("denied")):
            outcome = await runner.run(python_profile, workspace, timeout=5)

        assert isinstance(outcome, RunnerStartFailure)
        assert outcome.reason == "denied"

    async def test_timeout_kills_group_and_removes_container(self, python_profile, workspace):
        runner = ProcessRunner()
        process = _hanging_process()
        rm_process = _finished_process()

        with (
            patch("asyncio.create_subprocess_exec", side_effect=[process, rm_process]) as mock_exec,
            patch("ofco.sandbox.runner.os.killpg") as mock_killpg,
        ):
            outcome = await runner.run(python_profile, workspace, timeout=0.1)

        assert outcome == TimedOut(timeout_seconds=0.1)
        mock_killpg.assert_called_once_with(4242, signal.SIGKILL)
        process.wait.assert_awaited()
        rm_args = mock_exec.call_args_list[1].args
        assert rm_args == ("podman", "rm", "--force", f"ofco-{workspace.id}")

    async def test_timeout_on_host_skips_container_removal(self, python_profile, workspace):
        runner = ProcessRunner(isolated=False)
        process = _hanging_process()

        with (
            patch("asyncio.create_subprocess_exec", return_value=process) as mock_exec,
            patch("ofco.sandbox.runner.os.killpg"),
        ):
            outcome = await runner.run(python_profile, workspace, timeout=0.1)

        assert isinstance(outcome, TimedOut)
        assert mock_exec.call_count == 1

    async def test_host_mode_runs_in_workspace(self, python_profile, workspace):
        runner = ProcessRunner(isolated=False)
        process = _finished_process(b"hi\n")

        with patch("asyncio.create_subprocess_exec", return_value=process) as mock_exec:
            await runner.run(python_profile, workspace, timeout=5)

        assert mock_exec.call_args.args[-1] == str(workspace.source_file)
        assert mock_exec.call_args.kwargs["cwd"] == str(workspace.directory)

    async def test_supervision_failure(self, python_profile, workspace):
        runner = ProcessRunner(isolated=False)
        process = _finished_process()
        process.returncode = None
        process.stdout = MagicMock()
        process.stdout.read = AsyncMock(side_effect=BrokenPipeError("pipe closed"))

        with (
            patch("asyncio.create_subprocess_exec", return_value=process),
            patch("ofco.sandbox.runner.os.killpg") as mock_killpg,
        ):
            outcome = await runner.run(python_profile, workspace, timeout=5)

        assert isinstance(outcome, RunnerStartFailure)
        assert "pipe closed" in outcome.reason
        mock_killpg.assert_called_once()


class TestIsGvisorAvailable:
    async def test_cached_result(self):
        runner = ProcessRunner()
        runner._gvisor_available = True
        assert await runner._is_gvisor_available() is True

    async def test_detects_runsc(self):
        runner = ProcessRunner()
        process = _finished_process(b'{"runtimes": {"runsc": {}}}')

        with patch("asyncio.create_subprocess_exec", return_value=process):
            assert await runner._is_gvisor_available() is True

    async def test_no_gvisor(self):
        runner = ProcessRunner()
        process = _finished_process(b'{"runtimes": {"crun": {}}}')

        with patch("asyncio.create_subprocess_exec", return_value=process):
            assert await runner._is_gvisor_available() is False

    async def test_exception_handling(self):
        runner = ProcessRunner()

        with patch("asyncio.create_subprocess_exec", side_effect=Exception("not found")):
            assert await runner._is_gvisor_available() is False


class TestCheckRuntime:
    async def test_host_mode(self):
        status = await ProcessRunner(isolated=False).check_runtime(["python:3.12-slim"])
        assert status["isolated"] is False
        assert status["engine_available"] is False

    async def test_engine_missing(self):
        runner = ProcessRunner()

        with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError()):
            status = await runner.check_runtime(["python:3.12-slim"])

        assert status["engine_available"] is False
        assert "Container engine 'podman' not found" in status["errors"]

    async def test_engine_and_images(self):
        runner = ProcessRunner()
        runner._gvisor_available = False
        version = _finished_process(b"podman version 5.0.0\n")
        present = _finished_process(returncode=0)
        missing = _finished_process(returncode=1)

        with patch("asyncio.create_subprocess_exec", side_effect=[version, present, missing]):
            status = await runner.check_runtime(["python:3.12-slim", "node:20-alpine"])

        assert status["engine_available"] is True
        assert status["engine_version"] == "podman version 5.0.0"
        assert status["images"] == {"python:3.12-slim": True, "node:20-alpine": False}
        assert "Image 'node:20-alpine' not found locally" in status["errors"]
