"""
Sudo adapter — privileged commands and credential caching.

The password is never handled here: ``sudo -v`` prompts on the terminal
itself, and afterwards ``sudo -n`` relies on the cached credential.
"""

from __future__ import annotations

import logging
import os

from devseed.adapters.base import PrivilegeHelper
from devseed.adapters.shell.command import CommandEnvironment, run_command
from devseed.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class SudoHelper(PrivilegeHelper):
    """Runs privileged commands through sudo (or directly as root)."""

    def __init__(self, env: CommandEnvironment, euid: int | None = None):
        self._env = env
        self._euid = os.geteuid() if euid is None else euid

    @property
    def name(self) -> str:
        return "sudo"

    def is_available(self) -> bool:
        return self._env.which("sudo") is not None

    @property
    def is_root(self) -> bool:
        return self._euid == 0

    def validate(self) -> Receipt:
        if self.is_root:
            return Receipt.skip(self.name, "sudo -v", reason="running as root")
        return run_command(
            ["sudo", "-v"],
            adapter=self.name,
            operation="sudo -v",
            env=self._env,
            interactive=True,
        )

    def refresh(self) -> Receipt:
        if self.is_root:
            return Receipt.skip(self.name, "sudo -n -v", reason="running as root")
        return run_command(
            ["sudo", "-n", "-v"],
            adapter=self.name,
            operation="sudo -n -v",
            env=self._env,
            timeout=30,
        )

    def run(self, args: list[str], operation: str, input_text: str | None = None) -> Receipt:
        return run_command(
            args,
            adapter=self.name,
            operation=operation,
            env=self._env,
            input_text=input_text,
            sudo=not self.is_root,
        )
