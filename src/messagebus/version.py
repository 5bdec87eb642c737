from __future__ import annotations

import platform
import sys

from pydantic import BaseModel

VERSION = "1.1.0"

# Overridden at build time.
GIT_COMMIT = "unknown"
BUILD_DATE = "unknown"


class VersionInfo(BaseModel):
    """Version and build information for the client."""

    version: str
    git_commit: str
    build_date: str
    python_version: str
    platform: str

    model_config = {"extra": "forbid"}

    def __str__(self) -> str:
        return (
            f"EdgeX MessageBus Client v{self.version} (commit: {self.git_commit}, "
            f"built: {self.build_date}, python: {self.python_version}, platform: {self.platform})"
        )


def get_version() -> VersionInfo:
    return VersionInfo(
        version=VERSION,
        git_commit=GIT_COMMIT,
        build_date=BUILD_DATE,
        python_version=platform.python_version(),
        platform=f"{sys.platform}/{platform.machine() or 'unknown'}",
    )


def get_version_string() -> str:
    return f"v{VERSION}"


__all__ = ["BUILD_DATE", "GIT_COMMIT", "VERSION", "VersionInfo", "get_version", "get_version_string"]
