"""
dnf adapter — Fedora, RHEL, CentOS, Rocky and Alma.
"""

from __future__ import annotations

from devseed.adapters.packages.system import SystemPackageManager
from devseed.core.models.platform import PackageManagerKind


class DnfPackageManager(SystemPackageManager):
    """``rpm -q`` to query, ``dnf install -y`` to install."""

    kind = PackageManagerKind.DNF
    binary = "dnf"
    toolchain_probe = ["gcc", "make", "curl", "git"]

    def query_command(self, packages: list[str]) -> list[str]:
        return ["rpm", "-q", *packages]

    def install_command(self, packages: list[str]) -> list[str]:
        return ["dnf", "install", "-y", *packages]

    def toolchain_commands(self) -> list[list[str]]:
        return [
            ["dnf", "groupinstall", "-y", "Development Tools"],
            self.install_command(["procps-ng", "curl", "file", "git"]),
        ]
