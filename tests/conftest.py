"""Shared test fixtures for ofco.

Provides settings pointed at a per-test scratch root and coordinators
wired either to a fake runner or to real host execution.
"""

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

from ofco.sandbox.coordinator import ExecutionCoordinator, get_coordinator
from ofco.sandbox.profiles import ExecutionProfile, RuntimeRegistry, get_default_registry
from ofco.sandbox.runner import ProcessRunner
from ofco.sandbox.workspace import WorkspaceManager
from ofco.settings import Settings, get_settings
from tests.mocks import FakeRunner

# =============================================================================
# SETTINGS
# =============================================================================


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    """Scratch root for workspaces; not created until first use."""
    return tmp_path / "workspaces"


@pytest.fixture
def test_settings(workspace_root: Path) -> Settings:
    """Provide test settings with safe defaults."""
    return Settings(
        _env_file=None,
        environment="testing",
        debug=True,
        workspace_root=workspace_root,
        sandbox_enabled=False,  # Host execution in tests
        sandbox_timeout_seconds=10,
        sandbox_max_timeout_seconds=30,
        sandbox_max_concurrency=4,
    )


@pytest.fixture
def env_settings(workspace_root: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Settings]:
    """Point the cached settings, registry and coordinator at test values."""
    monkeypatch.setenv("ENVIRONMENT", "testing")
    monkeypatch.setenv("SANDBOX_ENABLED", "false")
    monkeypatch.setenv("WORKSPACE_ROOT", str(workspace_root))

    caches = (get_settings, get_default_registry, get_coordinator)
    for cached in caches:
        cached.cache_clear()
    yield get_settings()
    for cached in caches:
        cached.cache_clear()


# =============================================================================
# SANDBOX
# =============================================================================


@pytest.fixture
def python_profile() -> ExecutionProfile:
    return ExecutionProfile(
        language="python",
        file_extension="py",
        image="python:3.12-slim",
        entrypoint=("python", "-u", "{file}"),
        local_entrypoint=(sys.executable, "-u", "{file}"),
    )


@pytest.fixture
def registry(python_profile: ExecutionProfile) -> RuntimeRegistry:
    return RuntimeRegistry([python_profile])


@pytest.fixture
def workspace_manager(workspace_root: Path) -> WorkspaceManager:
    return WorkspaceManager(workspace_root)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_coordinator(
    registry: RuntimeRegistry,
    workspace_manager: WorkspaceManager,
    fake_runner: FakeRunner,
) -> ExecutionCoordinator:
    """Coordinator whose runner never spawns a process."""
    return ExecutionCoordinator(
        registry,
        workspace_manager,
        fake_runner,  # type: ignore[arg-type]
        default_timeout=30,
        max_timeout=60,
        max_concurrency=2,
    )


@pytest.fixture
def local_coordinator(
    registry: RuntimeRegistry,
    workspace_manager: WorkspaceManager,
) -> ExecutionCoordinator:
    """Coordinator running real interpreters on the host."""
    return ExecutionCoordinator(
        registry,
        workspace_manager,
        ProcessRunner(isolated=False),
        default_timeout=10,
        max_timeout=30,
        max_concurrency=4,
    )
