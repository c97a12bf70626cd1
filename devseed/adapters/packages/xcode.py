"""
Xcode Command Line Tools — the macOS build toolchain.

``xcode-select --install`` only opens the system installer dialog, so the
install waits for the user to confirm on the terminal that it finished.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from devseed.adapters.base import BuildToolchain
from devseed.adapters.shell.command import CommandEnvironment, run_command
from devseed.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class XcodeCommandLineTools(BuildToolchain):
    """Build toolchain backed by ``xcode-select``."""

    def __init__(
        self,
        env: CommandEnvironment,
        wait_for_user: Callable[[str], None] | None = None,
    ):
        self._env = env
        self._wait = wait_for_user

    @property
    def name(self) -> str:
        return "xcode-select"

    def is_available(self) -> bool:
        return self._env.which("xcode-select") is not None

    def toolchain_satisfied(self) -> bool:
        receipt = run_command(
            ["xcode-select", "-p"],
            adapter=self.name,
            operation="xcode-select -p",
            env=self._env,
            timeout=30,
        )
        return receipt.ok

    def install_toolchain(self) -> Receipt:
        receipt = run_command(
            ["xcode-select", "--install"],
            adapter=self.name,
            operation="xcode-select --install",
            env=self._env,
            interactive=True,
        )
        if receipt.failed:
            return receipt
        if self._wait is not None:
            self._wait("Press Enter after the Xcode Command Line Tools installation completes...")
        if not self.toolchain_satisfied():
            return Receipt.failure(
                adapter=self.name,
                operation="xcode-select --install",
                error="Command Line Tools still not installed",
            )
        return receipt

    def toolchain_intents(self) -> list[str]:
        return ["xcode-select --install", "Wait for the Command Line Tools installer"]
