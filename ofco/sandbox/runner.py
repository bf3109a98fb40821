"""Container-backed process runner.

Runs one program per call inside a throwaway container (podman or
docker) that sees nothing but the request's workspace directory,
mounted read-only. Output is drained from both pipes concurrently, each
capped at ``max_output_bytes`` (the excess is read and dropped so the
program never blocks on a full pipe), and the whole run is bounded by a
wall-clock timeout; on expiry the process group is killed and the
container force-removed.

With ``isolated=False`` the profile's local entrypoint runs directly on
the host in its own session. That mode exists for development and tests
and is refused in production by the coordinator.
"""

import asyncio
import logging
import os
import signal
from typing import Any

from ofco.sandbox.outcomes import Completed, ExecutionOutcome, RunnerStartFailure, TimedOut
from ofco.sandbox.policies import SandboxPolicy, get_default_policy
from ofco.sandbox.profiles import ExecutionProfile
from ofco.sandbox.workspace import Workspace

logger = logging.getLogger(__name__)


class ProcessRunner:
    """Runs a workspace's source file under an execution profile.

    Usage:
        runner = ProcessRunner()
        outcome = await runner.run(profile, workspace, timeout=30)

        # Host execution for development
        runner = ProcessRunner(isolated=False)
    """

    # Where the workspace directory appears inside the container
    CONTAINER_MOUNT = "/workspace"

    # Timeout for engine housekeeping calls (info, rm, image inspect)
    _ENGINE_CHECK_TIMEOUT = 10  # seconds

    DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024
    _READ_CHUNK = 64 * 1024

    def __init__(
        self,
        engine_path: str = "podman",
        policy: SandboxPolicy | None = None,
        *,
        isolated: bool = True,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ) -> None:
        """Initialize the runner.

        Args:
            engine_path: Path or name of the container engine executable
            policy: Security policy (defaults to the standard policy)
            isolated: Run inside containers; False runs on the host
            max_output_bytes: Bytes kept per stream before truncating
        """
        self.engine_path = engine_path
        self.policy = policy or get_default_policy()
        self.isolated = isolated
        self.max_output_bytes = max_output_bytes
        self._gvisor_available: bool | None = None  # Cached check result

    async def run(
        self,
        profile: ExecutionProfile,
        workspace: Workspace,
        timeout: float,
    ) -> ExecutionOutcome:
        """Execute the workspace's source file.

        Args:
            profile: Execution profile for the source language
            workspace: Workspace holding the source file
            timeout: Wall-clock budget in seconds

        Returns:
            Completed, TimedOut or RunnerStartFailure
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        container_name: str | None = None
        if self.isolated:
            container_name = f"ofco-{workspace.id}"
            cmd = await self._build_command(profile, workspace, container_name)
            cwd = None
        else:
            cmd = profile.command_for(str(workspace.source_file), local=True)
            cwd = str(workspace.directory)

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                start_new_session=True,
            )
        except FileNotFoundError:
            logger.error("Runner executable '%s' not found", cmd[0])
            return RunnerStartFailure(reason=f"Executable '{cmd[0]}' not found")
        except OSError as e:
            logger.error("Failed to start runner: %s", e)
            return RunnerStartFailure(reason=str(e))

        try:
            (stdout_bytes, stdout_cut), (stderr_bytes, stderr_cut) = await asyncio.wait_for(
                self._collect(process),
                timeout=timeout,
            )
        except TimeoutError:
            logger.info("Workspace %s timed out after %ss", workspace.id, timeout)
            await self._terminate(process, container_name)
            return TimedOut(timeout_seconds=timeout)
        except asyncio.CancelledError:
            await self._terminate(process, container_name)
            raise
        except Exception as e:
            logger.exception("Lost supervision of workspace %s", workspace.id)
            await self._terminate(process, container_name)
            return RunnerStartFailure(reason=f"Runner supervision failed: {e!s}")

        if stdout_cut or stderr_cut:
            logger.warning(
                "Workspace %s output exceeded %d bytes per stream; truncated",
                workspace.id,
                self.max_output_bytes,
            )

        return Completed(
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr=stderr_bytes.decode("utf-8", errors="replace"),
            exit_code=process.returncode if process.returncode is not None else -1,
            duration_seconds=loop.time() - start_time,
            truncated=stdout_cut or stderr_cut,
        )

    async def _collect(
        self,
        process: asyncio.subprocess.Process,
    ) -> tuple[tuple[bytes, bool], tuple[bytes, bool]]:
        """Drain stdout and stderr together, then reap the process."""
        stdout, stderr = await asyncio.gather(
            self._read_capped(process.stdout),
            self._read_capped(process.stderr),
        )
        await process.wait()
        return stdout, stderr

    async def _read_capped(self, stream: asyncio.StreamReader) -> tuple[bytes, bool]:
        """Read a stream to EOF, keeping at most ``max_output_bytes``."""
        kept = bytearray()
        truncated = False
        while True:
            chunk = await stream.read(self._READ_CHUNK)
            if not chunk:
                break
            room = self.max_output_bytes - len(kept)
            if len(chunk) > room:
                truncated = True
            if room > 0:
                kept.extend(chunk[:room])
        return bytes(kept), truncated

    async def _terminate(
        self,
        process: asyncio.subprocess.Process,
        container_name: str | None,
    ) -> None:
        """Kill the process group, reap the child and tear down its container."""
        if process.returncode is None:
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            except OSError:
                process.kill()
        await process.wait()

        if container_name:
            await self._remove_container(container_name)

    async def _remove_container(self, container_name: str) -> None:
        """Force-remove a container left behind by a killed engine client."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.engine_path,
                "rm",
                "--force",
                container_name,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self._ENGINE_CHECK_TIMEOUT
            )
        except (OSError, TimeoutError) as e:
            logger.warning("Failed to remove container %s: %s", container_name, e)
            return

        if process.returncode != 0:
            logger.warning(
                "Failed to remove container %s: %s",
                container_name,
                stderr.decode("utf-8", errors="replace").strip(),
            )

    async def _is_gvisor_available(self) -> bool:
        """Check if the engine has the gVisor (runsc) runtime configured."""
        if self._gvisor_available is not None:
            return self._gvisor_available

        try:
            process = await asyncio.create_subprocess_exec(
                self.engine_path,
                "info",
                "--format",
                "json",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, _ = await asyncio.wait_for(
                process.communicate(), timeout=self._ENGINE_CHECK_TIMEOUT
            )
            self._gvisor_available = b"runsc" in stdout
        except Exception as e:
            logger.warning("Failed to check gVisor availability: %s", e)
            self._gvisor_available = False

        if not self._gvisor_available:
            logger.warning("gVisor (runsc) not available - running with standard container isolation")

        return self._gvisor_available

    async def _build_command(
        self,
        profile: ExecutionProfile,
        workspace: Workspace,
        container_name: str,
    ) -> list[str]:
        """Build the container-engine command.

        Args:
            profile: Execution profile providing image and entrypoint
            workspace: Workspace whose directory is the only mount
            container_name: Unique container name for later teardown

        Returns:
            Complete command as list of strings
        """
        policy = self.policy
        if policy.use_gvisor and not await self._is_gvisor_available():
            policy = policy.model_copy(update={"use_gvisor": False})

        cmd = [self.engine_path, "run", "--rm", "--name", container_name]
        cmd.extend(policy.to_container_args())
        cmd.extend(
            [
                "--volume",
                f"{workspace.directory}:{self.CONTAINER_MOUNT}:ro",
                "--workdir",
                self.CONTAINER_MOUNT,
            ]
        )
        cmd.append(profile.image)
        cmd.extend(profile.command_for(f"{self.CONTAINER_MOUNT}/{workspace.filename}"))
        return cmd

    async def _image_exists(self, image: str) -> bool:
        """Check if a container image is present locally, with timeout."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.engine_path,
                "image",
                "inspect",
                image,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            await asyncio.wait_for(process.wait(), timeout=self._ENGINE_CHECK_TIMEOUT)
            return process.returncode == 0
        except TimeoutError:
            logger.warning("Timed out checking image '%s'", image)
            return False
        except OSError:
            return False

    async def check_runtime(self, images: list[str] | None = None) -> dict[str, Any]:
        """Check if the container engine and images are available.

        Args:
            images: Images to look for locally

        Returns:
            Dictionary with runtime status information
        """
        result: dict[str, Any] = {
            "isolated": self.isolated,
            "engine": self.engine_path,
            "engine_available": False,
            "gvisor_available": False,
            "images": {},
            "errors": [],
        }

        if not self.isolated:
            return result

        try:
            process = await asyncio.create_subprocess_exec(
                self.engine_path,
                "version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, _ = await asyncio.wait_for(
                process.communicate(), timeout=self._ENGINE_CHECK_TIMEOUT
            )
            if process.returncode == 0:
                result["engine_available"] = True
                result["engine_version"] = stdout.decode("utf-8", errors="replace").strip()
            else:
                result["errors"].append(f"'{self.engine_path} version' exited with {process.returncode}")
        except FileNotFoundError:
            result["errors"].append(f"Container engine '{self.engine_path}' not found")
        except (OSError, TimeoutError) as e:
            result["errors"].append(f"Error checking container engine: {e}")

        if result["engine_available"]:
            result["gvisor_available"] = await self._is_gvisor_available()
            for image in images or []:
                present = await self._image_exists(image)
                result["images"][image] = present
                if not present:
                    result["errors"].append(f"Image '{image}' not found locally")

        return result


__all__ = ["ProcessRunner"]
