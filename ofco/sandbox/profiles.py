"""Runtime registry: language identifier to execution profile.

Profiles are loaded once at startup and only read afterwards, so the
registry is safe to share between concurrent requests without locking.
Supporting a new language means registering a profile; neither the
coordinator nor the runner branch on language names.
"""

import sys
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ofco.exceptions import UnsupportedLanguageError
from ofco.settings import Settings, get_settings

# Placeholder substituted with the path of the source file
FILE_PLACEHOLDER = "{file}"


class ExecutionProfile(BaseModel):
    """How to run source code of one language inside the sandbox."""

    model_config = ConfigDict(frozen=True)

    language: str = Field(..., description="Language identifier")
    file_extension: str = Field(..., description="Extension of the source file, without dot")
    image: str = Field(..., description="Container image providing the interpreter")
    entrypoint: tuple[str, ...] = Field(
        ...,
        description="Command run inside the container; '{file}' is the mounted source path",
    )
    local_entrypoint: tuple[str, ...] | None = Field(
        default=None,
        description="Command used when the sandbox is disabled (development only)",
    )

    @field_validator("language")
    @classmethod
    def _normalize_language(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("file_extension")
    @classmethod
    def _strip_dot(cls, value: str) -> str:
        return value.lstrip(".")

    def command_for(self, file_path: str, *, local: bool = False) -> list[str]:
        """Render the entrypoint template against a source file path."""
        template = self.local_entrypoint if local and self.local_entrypoint else self.entrypoint
        return [part.replace(FILE_PLACEHOLDER, file_path) for part in template]


class RuntimeRegistry:
    """Lookup table of execution profiles keyed by language."""

    def __init__(self, profiles: list[ExecutionProfile] | None = None) -> None:
        self._profiles: dict[str, ExecutionProfile] = {}
        for profile in profiles or []:
            self.register(profile)

    def register(self, profile: ExecutionProfile) -> None:
        """Add a profile, replacing any existing one for the same language."""
        self._profiles[profile.language] = profile

    def resolve(self, language: str) -> ExecutionProfile:
        """Return the profile for ``language``.

        Raises:
            UnsupportedLanguageError: If no profile is registered
        """
        profile = self._profiles.get(language.strip().lower())
        if profile is None:
            raise UnsupportedLanguageError(language)
        return profile

    def for_extension(self, extension: str) -> ExecutionProfile:
        """Return the profile whose source files use ``extension``."""
        ext = extension.lstrip(".").lower()
        for profile in self._profiles.values():
            if profile.file_extension == ext:
                return profile
        raise UnsupportedLanguageError(f".{ext}")

    def languages(self) -> list[str]:
        return sorted(self._profiles)

    def __contains__(self, language: object) -> bool:
        return isinstance(language, str) and language.strip().lower() in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)


def build_default_profiles(settings: Settings) -> list[ExecutionProfile]:
    """Profiles for the languages supported out of the box."""
    return [
        ExecutionProfile(
            language="python",
            file_extension="py",
            image=settings.sandbox_python_image,
            entrypoint=("python", "-u", FILE_PLACEHOLDER),
            local_entrypoint=(sys.executable, "-u", FILE_PLACEHOLDER),
        ),
        ExecutionProfile(
            language="javascript",
            file_extension="js",
            image=settings.sandbox_node_image,
            entrypoint=("node", FILE_PLACEHOLDER),
            local_entrypoint=("node", FILE_PLACEHOLDER),
        ),
    ]


@lru_cache
def get_default_registry() -> RuntimeRegistry:
    """Get the cached registry built from application settings."""
    return RuntimeRegistry(build_default_profiles(get_settings()))


__all__ = [
    "FILE_PLACEHOLDER",
    "ExecutionProfile",
    "RuntimeRegistry",
    "build_default_profiles",
    "get_default_registry",
]
