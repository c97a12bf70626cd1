"""
OpenSSH adapter — agent discovery, key loading and public-key derivation.

An agent is located once, at construction, by probing the usual socket
locations. The socket that answers is recorded on the CommandEnvironment
(``SSH_AUTH_SOCK``) so git-over-ssh and ``ssh-add`` both see it. Starting a
new agent is a mutation and only happens from ``ensure_started()``.

``ssh-add -l`` exit codes: 0 = keys listed, 1 = agent up but empty,
2 = no agent reachable.
"""

from __future__ import annotations

import glob
import logging
import os
import re
import stat
from pathlib import Path

from devseed.adapters.base import SshAgent
from devseed.adapters.shell.command import CommandEnvironment, run_command
from devseed.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

_AGENT_VAR = re.compile(r"(SSH_AUTH_SOCK|SSH_AGENT_PID)=([^;]+);")


def _is_socket(path: Path) -> bool:
    try:
        return stat.S_ISSOCK(path.stat().st_mode)
    except OSError:
        return False


class OpenSshAgent(SshAgent):
    """ssh-agent, ssh-add and ssh-keygen."""

    def __init__(
        self,
        env: CommandEnvironment,
        home: Path,
        use_keychain: bool = False,
        discover: bool = True,
    ):
        self._env = env
        self._home = home
        self._use_keychain = use_keychain
        if discover:
            self.discover()

    @property
    def name(self) -> str:
        return "ssh"

    def is_available(self) -> bool:
        return self._env.which("ssh-add") is not None

    # ── Agent ───────────────────────────────────────────────────

    def socket_candidates(self) -> list[Path]:
        candidates = [Path(p) for p in sorted(glob.glob("/tmp/ssh-*/agent.*"))]
        runtime_dir = self._env.get("XDG_RUNTIME_DIR")
        if runtime_dir:
            candidates.append(Path(runtime_dir) / "ssh-agent.socket")
        candidates.append(self._home / ".ssh" / "ssh-agent.sock")
        return candidates

    def _agent_status(self, sock: str | None = None) -> int | None:
        env = self._env.derive(SSH_AUTH_SOCK=sock) if sock else self._env
        receipt = run_command(
            ["ssh-add", "-l"],
            adapter=self.name,
            operation="ssh-add -l",
            env=env,
            timeout=10,
        )
        return receipt.return_code

    def is_running(self) -> bool:
        sock = self._env.get("SSH_AUTH_SOCK")
        if not sock or not _is_socket(Path(sock)):
            return False
        return self._agent_status() in (0, 1)

    def discover(self) -> str | None:
        """Find a reachable agent and record its socket. Read-only otherwise."""
        if self.is_running():
            return self._env.get("SSH_AUTH_SOCK")
        for candidate in self.socket_candidates():
            if _is_socket(candidate) and self._agent_status(str(candidate)) in (0, 1):
                logger.info("Found existing SSH agent at %s", candidate)
                self._env.set("SSH_AUTH_SOCK", str(candidate))
                return str(candidate)
        return None

    def ensure_started(self) -> Receipt:
        if self.discover():
            return Receipt.skip(self.name, "ssh-agent", reason="agent already running")

        logger.info("Starting new SSH agent")
        receipt = run_command(["ssh-agent", "-s"], adapter=self.name, operation="ssh-agent -s", env=self._env)
        if receipt.failed:
            return receipt

        found = dict(_AGENT_VAR.findall(receipt.output))
        if "SSH_AUTH_SOCK" not in found:
            return Receipt.failure(self.name, "ssh-agent -s", error="could not parse ssh-agent output")
        for key, value in found.items():
            self._env.set(key, value.strip())
        return receipt

    # ── Keys ────────────────────────────────────────────────────

    def has_key(self, name: str) -> bool:
        if not self.is_running():
            return False
        receipt = run_command(["ssh-add", "-l"], adapter=self.name, operation="ssh-add -l", env=self._env, timeout=10)
        return receipt.ok and name in receipt.output

    def add_key(self, key_file: Path) -> Receipt:
        if self._use_keychain:
            receipt = run_command(
                ["ssh-add", "--apple-use-keychain", str(key_file)],
                adapter=self.name,
                operation=f"ssh-add --apple-use-keychain {key_file.name}",
                env=self._env,
                interactive=True,
            )
            if receipt.ok:
                return receipt
            logger.debug("ssh-add --apple-use-keychain failed, retrying without keychain")
        return run_command(
            ["ssh-add", str(key_file)],
            adapter=self.name,
            operation=f"ssh-add {key_file.name}",
            env=self._env,
            interactive=True,
        )

    def derive_public_key(self, private_key: Path, public_key: Path) -> Receipt:
        receipt = run_command(
            ["ssh-keygen", "-y", "-f", str(private_key)],
            adapter=self.name,
            operation=f"ssh-keygen -y {private_key.name}",
            env=self._env,
            stdout_path=public_key,
            interactive=True,
        )
        if receipt.ok:
            os.chmod(public_key, 0o644)
        return receipt
