"""
Shell command runner — execute external tools and capture the result.

This is the most fundamental adapter piece: every other adapter runs its
tool through ``run_command`` and gets a Receipt back. Nothing here raises
for a failing tool, a missing binary, or a timeout.

Commands never go through a shell (argv lists only), and secret material
is never placed on argv: it travels through files (``--passphrase-file``)
or stdin (``input_text``), and decrypted output goes straight to a private
file (``stdout_path``) instead of through Python strings.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path

from devseed.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600


@dataclass
class CommandEnvironment:
    """The explicit environment external commands run with.

    Instead of exporting variables into the process environment (brew's
    ``shellenv``, ``eval $(ssh-agent -s)``), adapters record what they
    discovered here and every command picks it up. The process's own
    ``os.environ`` is never modified.
    """

    path_extras: list[str] = field(default_factory=list)
    overrides: dict[str, str] = field(default_factory=dict)
    base: dict[str, str] | None = None

    def prepend_path(self, directory: str | Path) -> None:
        directory = str(directory)
        if directory not in self.path_extras:
            self.path_extras.insert(0, directory)

    def set(self, key: str, value: str) -> None:
        self.overrides[key] = value

    def derive(self, **overrides: str) -> CommandEnvironment:
        """A copy with extra overrides, for one command family."""
        return CommandEnvironment(
            path_extras=list(self.path_extras),
            overrides={**self.overrides, **overrides},
            base=self.base,
        )

    def get(self, key: str) -> str | None:
        if key in self.overrides:
            return self.overrides[key]
        return self._base().get(key)

    def _base(self) -> dict[str, str]:
        return dict(os.environ) if self.base is None else dict(self.base)

    @property
    def path(self) -> str:
        parts = list(self.path_extras)
        inherited = self.get("PATH") or os.defpath
        parts.extend(p for p in inherited.split(os.pathsep) if p and p not in parts)
        return os.pathsep.join(parts)

    def build(self) -> dict[str, str]:
        """Full environment mapping for ``subprocess``."""
        env = self._base()
        env.update(self.overrides)
        env["PATH"] = self.path
        return env

    def which(self, name: str) -> str | None:
        """``command -v`` against this environment's PATH."""
        return shutil.which(name, path=self.path)


def run_command(
    args: list[str],
    *,
    adapter: str,
    operation: str,
    env: CommandEnvironment | None = None,
    cwd: Path | None = None,
    timeout: int = DEFAULT_TIMEOUT,
    input_text: str | None = None,
    stdout_path: Path | None = None,
    sudo: bool = False,
    interactive: bool = False,
) -> Receipt:
    """Run ``args`` and return a Receipt.

    Args:
        args: argv list. Never a shell string.
        adapter: Name recorded on the receipt.
        operation: Human label recorded on the receipt. Must not contain secrets.
        env: Command environment. Defaults to the inherited one.
        cwd: Working directory.
        timeout: Seconds before the process is killed.
        input_text: Text fed on stdin.
        stdout_path: Write stdout to this file (created 0600) instead of capturing it.
        sudo: Prefix the command with ``sudo``.
        interactive: Inherit stdin so the tool can prompt on the terminal.

    Returns:
        Receipt — success when the exit code is 0.
    """
    env = env or CommandEnvironment()
    argv = ["sudo", *args] if sudo else list(args)

    logger.debug("Executing: %s (cwd=%s)", " ".join(argv[:3]), cwd)
    start = time.monotonic()

    # Interactive commands keep the terminal on stdin (sudo, pinentry).
    stdin = None if (interactive or sudo or input_text is not None) else subprocess.DEVNULL

    out_fd: int | None = None
    try:
        if stdout_path is not None:
            out_fd = os.open(stdout_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)

        result = subprocess.run(
            argv,
            cwd=str(cwd) if cwd else None,
            env=env.build(),
            input=input_text,
            stdin=stdin,
            stdout=out_fd if out_fd is not None else subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout,
        )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = (result.stdout or "").strip()
        stderr = (result.stderr or "").strip()

        if result.returncode == 0:
            return Receipt.success(
                adapter=adapter,
                operation=operation,
                output=output,
                duration_ms=elapsed_ms,
                return_code=0,
                metadata={"stderr": stderr} if stderr else {},
            )
        return Receipt.failure(
            adapter=adapter,
            operation=operation,
            error=stderr or f"Command exited with code {result.returncode}",
            duration_ms=elapsed_ms,
            return_code=result.returncode,
            output=output,
        )

    except FileNotFoundError:
        return Receipt.failure(
            adapter=adapter,
            operation=operation,
            error=f"Command not found: {argv[0]}",
            return_code=127,
        )
    except subprocess.TimeoutExpired:
        return Receipt.failure(
            adapter=adapter,
            operation=operation,
            error=f"Command timed out after {timeout}s",
        )
    except OSError as e:
        return Receipt.failure(
            adapter=adapter,
            operation=operation,
            error=f"Command execution error: {e}",
        )
    finally:
        if out_fd is not None:
            os.close(out_fd)
