"""Container security policies for sandbox isolation.

Each policy bounds what a submitted program may consume and touch:
network access, root filesystem writes, memory, CPU, process count and
Linux capabilities. Policies render themselves as container-engine
arguments understood by both podman and docker.
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class PolicyLevel(StrEnum):
    """Security policy levels from most to least restrictive."""

    MINIMAL = "minimal"
    STANDARD = "standard"
    EXTENDED = "extended"


class ResourceLimits(BaseModel):
    """Container resource limits."""

    model_config = ConfigDict(frozen=True)

    memory_mb: int = Field(default=256, ge=32, le=4096, description="Memory limit in MB")
    cpus: float = Field(default=0.5, gt=0, le=8, description="CPU quota in cores")
    pids_limit: int = Field(default=64, ge=8, le=512, description="Maximum number of processes")
    nofile_soft: int = Field(default=256, description="Soft limit on open files")
    nofile_hard: int = Field(default=512, description="Hard limit on open files")


class SandboxPolicy(BaseModel):
    """Complete sandbox security policy.

    Policies are immutable after creation.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Policy identifier")
    level: PolicyLevel = Field(..., description="Security level")

    temp_dir_mb: int = Field(default=32, ge=1, le=1024, description="Size of the /tmp tmpfs in MB")
    resources: ResourceLimits = Field(default_factory=ResourceLimits)

    user: str = Field(default="nobody", description="User to run as")
    read_only_root: bool = Field(default=True, description="Make root filesystem read-only")

    use_gvisor: bool = Field(default=False, description="Use the gVisor (runsc) runtime")
    drop_all_caps: bool = Field(default=True, description="Drop all Linux capabilities")
    no_new_privileges: bool = Field(default=True, description="Prevent privilege escalation")

    def to_container_args(self) -> list[str]:
        """Convert the policy to container-engine command-line arguments."""
        args: list[str] = []

        if self.use_gvisor:
            args.extend(["--runtime", "runsc"])

        args.extend(
            [
                "--memory",
                f"{self.resources.memory_mb}m",
                "--cpus",
                str(self.resources.cpus),
                "--pids-limit",
                str(self.resources.pids_limit),
                "--ulimit",
                f"nofile={self.resources.nofile_soft}:{self.resources.nofile_hard}",
            ]
        )

        # Submissions never get network access
        args.append("--network=none")

        if self.read_only_root:
            args.append("--read-only")

        args.extend(["--tmpfs", f"/tmp:size={self.temp_dir_mb}m,mode=1777"])  # nosec B108

        args.extend(["--user", self.user])

        if self.drop_all_caps:
            args.append("--cap-drop=ALL")

        if self.no_new_privileges:
            args.append("--security-opt=no-new-privileges")

        return args


# =============================================================================
# PREDEFINED POLICIES
# =============================================================================


def _minimal_policy() -> SandboxPolicy:
    """Most restrictive policy for small snippets."""
    return SandboxPolicy(
        name="minimal",
        level=PolicyLevel.MINIMAL,
        resources=ResourceLimits(memory_mb=128, cpus=0.25, pids_limit=16),
        temp_dir_mb=8,
    )


def _standard_policy() -> SandboxPolicy:
    """Default policy for editor submissions."""
    return SandboxPolicy(
        name="standard",
        level=PolicyLevel.STANDARD,
        resources=ResourceLimits(memory_mb=256, cpus=0.5, pids_limit=64),
        temp_dir_mb=32,
    )


def _extended_policy() -> SandboxPolicy:
    """More memory and CPU, still isolated, under gVisor."""
    return SandboxPolicy(
        name="extended",
        level=PolicyLevel.EXTENDED,
        resources=ResourceLimits(memory_mb=1024, cpus=1.0, pids_limit=128),
        temp_dir_mb=128,
        use_gvisor=True,
    )


_POLICIES: dict[str, SandboxPolicy] = {
    "minimal": _minimal_policy(),
    "standard": _standard_policy(),
    "extended": _extended_policy(),
}


def get_policy(name: str) -> SandboxPolicy:
    """Get a predefined policy by name.

    Raises:
        ValueError: If policy name is unknown
    """
    if name not in _POLICIES:
        available = ", ".join(_POLICIES.keys())
        msg = f"Unknown policy '{name}'. Available: {available}"
        raise ValueError(msg)

    return _POLICIES[name]


def get_default_policy() -> SandboxPolicy:
    """Get the default sandbox policy."""
    return get_policy("standard")


__all__ = [
    "PolicyLevel",
    "ResourceLimits",
    "SandboxPolicy",
    "get_default_policy",
    "get_policy",
]
