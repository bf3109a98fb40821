"""Sandbox infrastructure for isolated code execution.

Submitted programs run in throwaway containers with no network, a
read-only root filesystem and only their own workspace mounted.
"""

from ofco.sandbox.coordinator import ExecutionCoordinator, execute_code, get_coordinator
from ofco.sandbox.outcomes import (
    Completed,
    ExecutionOutcome,
    ExecutionRequest,
    RunnerStartFailure,
    TimedOut,
    UnsupportedLanguage,
)
from ofco.sandbox.policies import SandboxPolicy, get_default_policy, get_policy
from ofco.sandbox.profiles import ExecutionProfile, RuntimeRegistry, get_default_registry
from ofco.sandbox.runner import ProcessRunner
from ofco.sandbox.workspace import Workspace, WorkspaceManager

__all__ = [
    # Outcomes
    "Completed",
    "ExecutionOutcome",
    "ExecutionRequest",
    "RunnerStartFailure",
    "TimedOut",
    "UnsupportedLanguage",
    # Policies
    "SandboxPolicy",
    "get_default_policy",
    "get_policy",
    # Registry
    "ExecutionProfile",
    "RuntimeRegistry",
    "get_default_registry",
    # Workspaces
    "Workspace",
    "WorkspaceManager",
    # Execution
    "ExecutionCoordinator",
    "ProcessRunner",
    "execute_code",
    "get_coordinator",
]
