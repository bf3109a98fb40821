"""Sandbox runner test doubles.

Provides a runner that records its calls and returns canned outcomes
so coordinator and API tests never spawn processes.
"""

from typing import Any

from ofco.sandbox.outcomes import Completed, ExecutionOutcome
from ofco.sandbox.profiles import ExecutionProfile
from ofco.sandbox.workspace import Workspace


class FakeRunner:
    """Records calls and returns a canned outcome (or raises)."""

    def __init__(
        self,
        outcome: ExecutionOutcome | None = None,
        exc: BaseException | None = None,
    ) -> None:
        self.outcome = outcome or Completed(stdout="ok\n", exit_code=0)
        self.exc = exc
        self.isolated = False
        self.calls: list[tuple[ExecutionProfile, Workspace, float]] = []
        self.source_seen: list[str] = []

    async def run(
        self,
        profile: ExecutionProfile,
        workspace: Workspace,
        timeout: float,
    ) -> ExecutionOutcome:
        self.calls.append((profile, workspace, timeout))
        self.source_seen.append(workspace.source_file.read_text(encoding="utf-8"))
        if self.exc is not None:
            raise self.exc
        return self.outcome

    async def check_runtime(self, images: list[str] | None = None) -> dict[str, Any]:
        return {
            "isolated": self.isolated,
            "engine": "podman",
            "engine_available": not self.isolated,
            "gvisor_available": False,
            "images": {},
            "errors": [] if not self.isolated else ["Container engine 'podman' not found"],
        }
