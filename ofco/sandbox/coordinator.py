"""Execution coordinator: the public entry point of the sandbox.

A request moves through
``Received -> Validated -> Provisioned -> Running -> <outcome> -> Cleaned``.
Validation and language resolution happen before anything touches the
filesystem; once a workspace exists it is released on every path before
the outcome is returned, and a failed release never replaces the outcome.
"""

import asyncio
import logging
from functools import lru_cache

from ofco.exceptions import ConfigurationError, UnsupportedLanguageError, ValidationError
from ofco.sandbox.outcomes import ExecutionOutcome, ExecutionRequest, TimedOut, UnsupportedLanguage
from ofco.sandbox.policies import get_policy
from ofco.sandbox.profiles import ExecutionProfile, RuntimeRegistry, get_default_registry
from ofco.sandbox.runner import ProcessRunner
from ofco.sandbox.workspace import Workspace, WorkspaceManager
from ofco.settings import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class ExecutionCoordinator:
    """Validates, provisions, runs and cleans up one request at a time.

    Instances hold no per-request state and can serve concurrent calls.
    The only shared mutable piece is the semaphore bounding how many
    programs run at once.
    """

    def __init__(
        self,
        registry: RuntimeRegistry,
        workspaces: WorkspaceManager,
        runner: ProcessRunner,
        *,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_timeout: float = 120.0,
        max_concurrency: int = 4,
    ) -> None:
        if max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1")
        if default_timeout <= 0 or default_timeout > max_timeout:
            raise ConfigurationError(
                f"default_timeout must be in (0, {max_timeout}], got {default_timeout}"
            )

        self.registry = registry
        self.workspaces = workspaces
        self.runner = runner
        self.default_timeout = default_timeout
        self.max_timeout = max_timeout
        self.max_concurrency = max_concurrency
        self._slots = asyncio.Semaphore(max_concurrency)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ExecutionCoordinator":
        """Build a coordinator from application settings.

        Raises:
            ConfigurationError: If the sandbox is disabled in production
                or the configured policy does not exist
        """
        settings = settings or get_settings()

        if not settings.sandbox_enabled and settings.environment == "production":
            raise ConfigurationError(
                "Sandbox MUST be enabled in production (SANDBOX_ENABLED=true). "
                "Unsandboxed execution is only permitted in development."
            )

        try:
            policy = get_policy(settings.sandbox_policy)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        return cls(
            registry=get_default_registry(),
            workspaces=WorkspaceManager(settings.workspace_root),
            runner=ProcessRunner(
                engine_path=settings.container_engine,
                policy=policy,
                isolated=settings.sandbox_enabled,
                max_output_bytes=settings.sandbox_max_output_bytes,
            ),
            default_timeout=settings.sandbox_timeout_seconds,
            max_timeout=settings.sandbox_max_timeout_seconds,
            max_concurrency=settings.sandbox_max_concurrency,
        )

    def resolve_timeout(self, override: float | None) -> float:
        """Return the caller's timeout if it is within bounds, else the default."""
        if override is None:
            return self.default_timeout
        if 0 < override <= self.max_timeout:
            return override
        logger.warning(
            "Ignoring timeout override %ss outside (0, %ss]; using %ss",
            override,
            self.max_timeout,
            self.default_timeout,
        )
        return self.default_timeout

    async def execute(self, request: ExecutionRequest) -> ExecutionOutcome:
        """Run one request to a terminal outcome.

        The timeout covers the whole stay of a request: time spent queued
        behind ``max_concurrency`` running programs is deducted from the
        budget handed to the runner, and a request that never gets a slot
        within its timeout ends as ``TimedOut`` without being launched.

        Raises:
            ValidationError: If language or source is missing or empty
            WorkspaceError: If scratch storage cannot be written
        """
        if not request.language or not request.language.strip() or not request.source:
            raise ValidationError("Missing language or code in request body")

        try:
            profile = self.registry.resolve(request.language)
        except UnsupportedLanguageError:
            logger.info("Rejected unsupported language '%s'", request.language)
            return UnsupportedLanguage(language=request.language)

        timeout = self.resolve_timeout(request.timeout_seconds)

        workspace = self.workspaces.acquire(request.source, profile.file_extension)
        logger.debug("Workspace %s provisioned for %s", workspace.id, profile.language)
        try:
            outcome = await self._run_in_slot(profile, workspace, timeout)
            logger.debug("Workspace %s finished: %s", workspace.id, outcome.kind)
            return outcome
        finally:
            self._release(workspace)

    async def _run_in_slot(
        self,
        profile: ExecutionProfile,
        workspace: Workspace,
        timeout: float,
    ) -> ExecutionOutcome:
        budget = timeout
        if self._slots.locked():
            loop = asyncio.get_running_loop()
            queued_at = loop.time()
            logger.debug("Workspace %s queued for a free slot", workspace.id)
            try:
                async with asyncio.timeout(timeout):
                    await self._slots.acquire()
            except TimeoutError:
                logger.info("Workspace %s found no free slot within %ss", workspace.id, timeout)
                return TimedOut(timeout_seconds=timeout)
            budget = timeout - (loop.time() - queued_at)
        else:
            await self._slots.acquire()

        try:
            if budget <= 0:
                return TimedOut(timeout_seconds=timeout)
            logger.debug("Workspace %s running (timeout=%ss)", workspace.id, budget)
            outcome = await self.runner.run(profile, workspace, budget)
        finally:
            self._slots.release()

        if isinstance(outcome, TimedOut):
            # Report the caller's budget, not what was left after queueing
            return TimedOut(timeout_seconds=timeout)
        return outcome

    def _release(self, workspace: Workspace) -> None:
        try:
            self.workspaces.release(workspace)
        except Exception:
            logger.exception("Cleanup of workspace %s failed", workspace.id)
        else:
            logger.debug("Workspace %s cleaned", workspace.id)


@lru_cache
def get_coordinator() -> ExecutionCoordinator:
    """Get the process-wide coordinator built from settings."""
    return ExecutionCoordinator.from_settings()


# Convenience function
async def execute_code(
    language: str,
    source: str,
    timeout_seconds: float | None = None,
) -> ExecutionOutcome:
    """Execute source code with the default coordinator.

    Convenience wrapper around ExecutionCoordinator.execute().
    """
    request = ExecutionRequest(language=language, source=source, timeout_seconds=timeout_seconds)
    return await get_coordinator().execute(request)


__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "ExecutionCoordinator",
    "execute_code",
    "get_coordinator",
]
