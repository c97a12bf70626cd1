"""
GnuPG adapter — decrypt oracle and trust importer.

The passphrase only ever reaches gpg through ``--passphrase-file``; the
decrypted key goes straight from gpg's stdout into a private file. Import
runs with loopback pinentry enabled for the duration of a context manager
that removes exactly the config lines it added and restarts gpg-agent on
both edges, so the agent never keeps the temporary behaviour.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from devseed.adapters.base import DecryptOracle, TrustImporter
from devseed.adapters.shell.command import CommandEnvironment, run_command
from devseed.core.errors import ExternalCapabilityFailed
from devseed.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

AGENT_LOOPBACK_LINE = "allow-loopback-pinentry"
GPG_LOOPBACK_LINE = "pinentry-mode loopback"

# What gpg prints when the listing worked but the key is not there.
_MISSING_KEY = re.compile(r"No secret key|not found", re.IGNORECASE)


class GnuPG(DecryptOracle, TrustImporter):
    """Both secret-handling capabilities through the ``gpg`` CLI."""

    def __init__(self, env: CommandEnvironment, gnupg_home: Path):
        self._env = env
        self._home = gnupg_home

    @property
    def name(self) -> str:
        return "gpg"

    @property
    def gnupg_home(self) -> Path:
        return self._home

    def is_available(self) -> bool:
        return self._env.which("gpg") is not None

    # ── DecryptOracle ───────────────────────────────────────────

    def decrypt(self, passphrase_file: Path, blob: Path, output: Path) -> Receipt:
        return self._gpg(
            ["--batch", "--yes", "--passphrase-file", str(passphrase_file), "--decrypt", str(blob)],
            "decrypt key blob",
            stdout_path=output,
        )

    # ── TrustImporter ───────────────────────────────────────────

    def has_secret_key(self, key_id: str, *, read_only: bool = False) -> bool:
        """Query the keyring without creating it.

        A missing GnuPG home means no key; gpg is not run, since it would
        create the home and an empty keyring. ``read_only`` also keeps gpg
        from autostarting an agent.

        Raises:
            ExternalCapabilityFailed: The keyring could not be queried.
        """
        if not self.is_available() or not os.path.lexists(self._home):
            return False
        if not self._home.is_dir():
            raise ExternalCapabilityFailed(f"GnuPG home {self._home} is not a directory")

        args = ["--batch", "--list-secret-keys", key_id]
        if read_only:
            args.insert(1, "--no-autostart")
        receipt = self._gpg(args, "list secret keys", timeout=30)
        if receipt.ok:
            return True
        if receipt.return_code == 2 and _MISSING_KEY.search(receipt.error or ""):
            return False
        receipt.raise_for_status()
        return False

    def import_key(self, key_file: Path) -> Receipt:
        receipt = self._gpg(["--batch", "--import", str(key_file)], "import key")
        if receipt.ok:
            return receipt
        logger.warning("Key import failed, retrying with --no-autostart")
        return self._gpg(["--batch", "--no-autostart", "--import", str(key_file)], "import key")

    def elevate_trust(self, key_id: str) -> Receipt:
        receipt = self._gpg(["--import-ownertrust"], "import ownertrust", input_text=f"{key_id}:6:\n")
        if receipt.ok:
            return receipt
        logger.warning("--import-ownertrust failed, falling back to --edit-key trust")
        return self._gpg(
            ["--command-fd", "0", "--expert", "--edit-key", key_id, "trust"],
            "edit-key trust",
            input_text="5\ny\n",
        )

    @contextmanager
    def loopback_pinentry(self) -> Iterator[None]:
        self._home.mkdir(mode=0o700, parents=True, exist_ok=True)
        os.chmod(self._home, 0o700)

        agent_conf = self._home / "gpg-agent.conf"
        gpg_conf = self._home / "gpg.conf"
        added: list[tuple[Path, str]] = []

        try:
            if _append_line(agent_conf, AGENT_LOOPBACK_LINE):
                added.append((agent_conf, AGENT_LOOPBACK_LINE))
            if _append_line(gpg_conf, GPG_LOOPBACK_LINE):
                added.append((gpg_conf, GPG_LOOPBACK_LINE))
            self.kill_agent()
            yield
        finally:
            for path, line in reversed(added):
                _remove_line(path, line)
            if added:
                logger.debug("Removed temporary loopback pinentry config")
            self.kill_agent()

    def kill_agent(self) -> Receipt:
        """Stop gpg-agent; the next gpg call starts a fresh one."""
        receipt = run_command(
            ["gpgconf", "--kill", "gpg-agent"],
            adapter=self.name,
            operation="gpgconf --kill gpg-agent",
            env=self._env.derive(GNUPGHOME=str(self._home)),
            timeout=30,
        )
        if receipt.failed:
            logger.debug("gpgconf --kill gpg-agent: %s", receipt.error)
        return receipt

    # ── Helpers ─────────────────────────────────────────────────

    def _gpg(
        self,
        args: list[str],
        operation: str,
        *,
        stdout_path: Path | None = None,
        input_text: str | None = None,
        timeout: int = 120,
    ) -> Receipt:
        env = self._env.derive(GNUPGHOME=str(self._home))
        return run_command(
            ["gpg", *args],
            adapter=self.name,
            operation=operation,
            env=env,
            stdout_path=stdout_path,
            input_text=input_text,
            timeout=timeout,
        )


def _has_line(path: Path, line: str) -> bool:
    if not path.is_file():
        return False
    return any(existing.strip() == line for existing in path.read_text(encoding="utf-8").splitlines())


def _append_line(path: Path, line: str) -> bool:
    """Append ``line`` unless present. Returns True if this call added it."""
    if _has_line(path, line):
        return False
    existing = path.read_text(encoding="utf-8") if path.is_file() else ""
    separator = "" if not existing or existing.endswith("\n") else "\n"
    with open(path, "a", encoding="utf-8") as f:
        f.write(f"{separator}{line}\n")
    return True


def _remove_line(path: Path, line: str) -> None:
    """Remove one occurrence of ``line`` (the one we appended)."""
    if not path.is_file():
        return
    lines = path.read_text(encoding="utf-8").splitlines(keepends=True)
    for i in range(len(lines) - 1, -1, -1):
        if lines[i].strip() == line:
            del lines[i]
            break
    path.write_text("".join(lines), encoding="utf-8")
