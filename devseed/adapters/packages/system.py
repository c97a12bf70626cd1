"""
Native Linux package managers — shared install/query mechanics.

Each distribution family gets its own subclass (apt, dnf, pacman) that only
declares its commands: how to query one package, how to install a list, and
which build toolchain packages the bootstrap needs. Mutating commands run
through sudo unless the process is root; queries never do.
"""

from __future__ import annotations

import logging

from devseed.adapters.base import BuildToolchain, PackageManager
from devseed.adapters.shell.command import CommandEnvironment, run_command
from devseed.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class SystemPackageManager(PackageManager, BuildToolchain):
    """A distribution package manager that also provides the build toolchain."""

    binary: str = ""

    # Packages probed to decide whether the toolchain is present.
    toolchain_probe: list[str] = []

    def __init__(self, env: CommandEnvironment, use_sudo: bool = True):
        self._env = env
        self._use_sudo = use_sudo

    @property
    def name(self) -> str:
        return self.kind.value

    def is_available(self) -> bool:
        return self._env.which(self.binary) is not None

    # ── Commands (per distribution) ─────────────────────────────

    def query_command(self, packages: list[str]) -> list[str]:
        raise NotImplementedError

    def install_command(self, packages: list[str]) -> list[str]:
        raise NotImplementedError

    def toolchain_commands(self) -> list[list[str]]:
        raise NotImplementedError

    # ── Queries ─────────────────────────────────────────────────

    def is_installed(self, package: str) -> bool:
        return self._query([package])

    def toolchain_satisfied(self) -> bool:
        return self._query(self.toolchain_probe)

    def _query(self, packages: list[str]) -> bool:
        receipt = run_command(
            self.query_command(packages),
            adapter=self.name,
            operation=f"query {' '.join(packages)}",
            env=self._env,
            timeout=60,
        )
        return receipt.ok

    # ── Mutations ───────────────────────────────────────────────

    def install(self, packages: list[str]) -> Receipt:
        logger.info("Installing with %s: %s", self.name, ", ".join(packages))
        return self._run(self.install_command(packages))

    def install_toolchain(self) -> Receipt:
        receipt = Receipt.skip(self.name, "build toolchain", reason="no commands")
        for command in self.toolchain_commands():
            receipt = self._run(command)
            if receipt.failed:
                return receipt
        return receipt

    def toolchain_intents(self) -> list[str]:
        prefix = "sudo " if self._use_sudo else ""
        return [prefix + " ".join(_quote(a) for a in cmd) for cmd in self.toolchain_commands()]

    def _run(self, command: list[str]) -> Receipt:
        return run_command(
            command,
            adapter=self.name,
            operation=" ".join(command[:3]),
            env=self._env,
            sudo=self._use_sudo,
        )


def _quote(arg: str) -> str:
    return f'"{arg}"' if " " in arg else arg
