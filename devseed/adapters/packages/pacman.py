"""
pacman adapter — Arch and derivatives.
"""

from __future__ import annotations

from devseed.adapters.packages.system import SystemPackageManager
from devseed.core.models.platform import PackageManagerKind


class PacmanPackageManager(SystemPackageManager):
    """``pacman -Qi`` to query, ``pacman -S --noconfirm`` to install."""

    kind = PackageManagerKind.PACMAN
    binary = "pacman"
    toolchain_probe = ["base-devel", "curl", "git"]

    def query_command(self, packages: list[str]) -> list[str]:
        return ["pacman", "-Qi", *packages]

    def install_command(self, packages: list[str]) -> list[str]:
        return ["pacman", "-S", "--noconfirm", *packages]

    def toolchain_commands(self) -> list[list[str]]:
        return [["pacman", "-Sy", "--noconfirm", "base-devel", "procps-ng", "curl", "git"]]
