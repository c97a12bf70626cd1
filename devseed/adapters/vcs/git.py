"""
Git adapter — clone, fast-forward and freshness check.

Uses the git CLI only. Updates are ``pull --ff-only`` so a working copy with
local commits or uncommitted changes is never rewritten.
"""

from __future__ import annotations

import logging
from pathlib import Path

from devseed.adapters.base import VCSClient
from devseed.adapters.shell.command import CommandEnvironment, run_command
from devseed.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class GitClient(VCSClient):
    """Version control through the ``git`` binary."""

    def __init__(self, env: CommandEnvironment, timeout: int = 300):
        self._env = env
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "git"

    def is_available(self) -> bool:
        return self._env.which("git") is not None

    # ── Queries ─────────────────────────────────────────────────

    def is_repository(self, path: Path) -> bool:
        return (path / ".git").exists()

    def is_current(self, path: Path) -> bool:
        """HEAD equals the upstream branch tip reported by ``ls-remote``."""
        if not self.is_repository(path):
            return False

        head = self._git(["rev-parse", "HEAD"], path, "rev-parse HEAD")
        branch = self._git(["rev-parse", "--abbrev-ref", "HEAD"], path, "rev-parse branch")
        if head.failed or branch.failed or branch.output == "HEAD":
            return False

        remote = self._git(
            ["ls-remote", "origin", f"refs/heads/{branch.output}"],
            path,
            "ls-remote origin",
            timeout=60,
        )
        if remote.failed or not remote.output:
            return False
        remote_sha = remote.output.split()[0]
        return remote_sha == head.output

    # ── Mutations ───────────────────────────────────────────────

    def clone(self, url: str, path: Path) -> Receipt:
        logger.info("Cloning %s into %s", url, path)
        return self._git(["clone", url, str(path)], None, f"clone {url}", interactive=True)

    def update(self, path: Path) -> Receipt:
        logger.info("Updating %s", path)
        return self._git(["pull", "--ff-only"], path, f"pull {path.name}", interactive=True)

    # ── Helpers ─────────────────────────────────────────────────

    def _git(
        self,
        args: list[str],
        cwd: Path | None,
        operation: str,
        timeout: int | None = None,
        interactive: bool = False,
    ) -> Receipt:
        prefix = ["git", "-C", str(cwd)] if cwd is not None else ["git"]
        return run_command(
            [*prefix, *args],
            adapter=self.name,
            operation=operation,
            env=self._env,
            timeout=timeout or self._timeout,
            interactive=interactive,
        )
