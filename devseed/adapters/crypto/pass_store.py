"""
pass adapter — read entries from the password store.

Entry contents are written straight to a 0600 file from ``pass``'s stdout
and never pass through Python.
"""

from __future__ import annotations

import logging
from pathlib import Path

from devseed.adapters.base import PasswordStore
from devseed.adapters.shell.command import CommandEnvironment, run_command
from devseed.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class PassCli(PasswordStore):
    """The ``pass`` password manager."""

    def __init__(self, env: CommandEnvironment, store_dir: Path):
        self._env = env
        self._store_dir = store_dir

    @property
    def name(self) -> str:
        return "pass"

    def is_available(self) -> bool:
        return self._env.which("pass") is not None

    def show(self, entry: str, output: Path) -> Receipt:
        env = self._env.derive(PASSWORD_STORE_DIR=str(self._store_dir))
        return run_command(
            ["pass", "show", entry],
            adapter=self.name,
            operation=f"pass show {entry}",
            env=env,
            stdout_path=output,
            interactive=True,
        )
