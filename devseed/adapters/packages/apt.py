"""
apt adapter — Debian, Ubuntu and derivatives.
"""

from __future__ import annotations

from devseed.adapters.packages.system import SystemPackageManager
from devseed.core.models.platform import PackageManagerKind


class AptPackageManager(SystemPackageManager):
    """``dpkg -s`` to query, ``apt-get install -y`` to install."""

    kind = PackageManagerKind.APT
    binary = "apt-get"
    toolchain_probe = ["build-essential", "curl", "git"]

    def query_command(self, packages: list[str]) -> list[str]:
        return ["dpkg", "-s", *packages]

    def install_command(self, packages: list[str]) -> list[str]:
        return ["apt-get", "install", "-y", *packages]

    def toolchain_commands(self) -> list[list[str]]:
        return [
            ["apt-get", "update"],
            self.install_command(["build-essential", "procps", "curl", "file", "git"]),
        ]
