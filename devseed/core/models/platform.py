"""
Platform model — the capability enum the core consumes.

OS and package-manager detection is reduced to this small value object,
probed once at startup (see ``devseed.core.services.platform_probe``).
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class OsKind(StrEnum):
    MACOS = "macos"
    LINUX = "linux"


class PackageManagerKind(StrEnum):
    APT = "apt"        # Debian / Ubuntu
    DNF = "dnf"        # Fedora / RHEL / CentOS / Rocky / Alma
    PACMAN = "pacman"  # Arch / Omarchy
    BREW = "brew"      # Homebrew (macOS native, Linux secondary)


class PlatformInfo(BaseModel):
    """What the startup probe learned about this machine."""

    os: OsKind
    arch: str = ""
    package_manager: PackageManagerKind
    user: str = ""
    login_shell: str = ""
    is_root: bool = False

    @property
    def is_macos(self) -> bool:
        return self.os == OsKind.MACOS

    @property
    def is_linux(self) -> bool:
        return self.os == OsKind.LINUX

    @property
    def is_apple_silicon(self) -> bool:
        return self.is_macos and self.arch == "arm64"

    @property
    def display_name(self) -> str:
        return "Mac" if self.is_macos else "Linux"
