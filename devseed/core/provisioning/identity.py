"""
Identity steps — the GPG key import gate and SSH key material.

The GPG key gate is the one step that handles a secret. Its predicate
("is the secret key already in the keyring?") is strict: if the keyring
cannot be queried the run aborts instead of prompting blindly. The
passphrase is collected up front by ``SecretGate.prepare()``, before any
other step runs, and only when the key is not yet imported; a machine that
already has the key is never asked.

SSH keys are read out of the password store, which needs the imported GPG
key, so these steps come after the gate.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from devseed.core.errors import BootstrapError, PreconditionMissing
from devseed.core.models.step import Step
from devseed.core.provisioning.context import ProvisionContext
from devseed.core.services.secret_lifecycle import PlaceholderPrompt

logger = logging.getLogger(__name__)

PHASE_GPG_KEY = "GPG Key Import"
PHASE_SSH = "SSH Keys"


class SecretGate:
    """Decides when to ask for the passphrase and runs the import step.

    The passphrase itself is held by the ``SecretLifecycle`` between
    ``prepare()`` and the import.
    """

    def __init__(self, ctx: ProvisionContext):
        self._ctx = ctx

    @property
    def holds_secret(self) -> bool:
        return self._ctx.lifecycle.holds_secret

    def key_present(self) -> bool:
        ctx = self._ctx
        return ctx.caps.trust_importer.has_secret_key(ctx.config.key_id, read_only=ctx.dry_run)

    def prepare(self) -> bool:
        """Collect the passphrase if the key still has to be imported.

        Under dry-run the placeholder is used and the terminal is never
        touched. A keyring that cannot be queried is left to the strict
        predicate of the ``gpg-key`` step, so nothing is asked for.
        Returns True if a passphrase is now held.
        """
        ctx = self._ctx
        if ctx.dry_run:
            ctx.lifecycle.hold(ctx.lifecycle.acquire(PlaceholderPrompt()))
            return True
        try:
            if self.key_present():
                logger.debug("GPG key already imported, not asking for a password")
                return False
        except BootstrapError as e:
            logger.warning("Cannot query the GPG keyring yet: %s", e)
            return False
        ctx.lifecycle.hold(ctx.lifecycle.acquire(ctx.prompt))
        return True

    def discard(self) -> None:
        self._ctx.lifecycle.discard()

    def _import(self) -> str:
        ctx = self._ctx
        secret = ctx.lifecycle.take()
        if secret is None:
            secret = ctx.lifecycle.acquire(ctx.prompt)
        result = ctx.lifecycle.decrypt_and_import(secret, ctx.encrypted_key, ctx.config.key_id)
        return result.detail

    def step(self) -> Step:
        shown = self._ctx.display(self._ctx.encrypted_key)
        return Step(
            name="gpg-key",
            phase=PHASE_GPG_KEY,
            description=f"Import GPG key {self._ctx.config.key_id}",
            predicate=self.key_present,
            action=self._import,
            strict_predicate=True,
            describe=lambda: [
                f"Decrypt {shown}",
                "Import GPG key",
                "Set trust level to ultimate",
                "Delete temp decrypted key",
            ],
        )


# ── SSH ─────────────────────────────────────────────────────────


def _non_empty(path: Path) -> bool:
    return path.is_file() and path.stat().st_size > 0


def _extract(ctx: ProvisionContext, entry: str, target: Path, mode: int) -> None:
    receipt = ctx.caps.password_store.show(entry, target)
    if receipt.failed:
        target.unlink(missing_ok=True)
        receipt.raise_for_status()
    os.chmod(target, mode)


def ssh_steps(ctx: ProvisionContext) -> list[Step]:
    ssh = ctx.config.ssh
    ssh_dir = ctx.ssh_dir
    agent = ctx.caps.ssh_agent
    steps: list[Step] = []

    def make_dir() -> str:
        ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        os.chmod(ssh_dir, 0o700)
        return f"{ctx.display(ssh_dir)} (0700)"

    steps.append(
        Step(
            name="ssh-directory",
            phase=PHASE_SSH,
            description=f"chmod 700 {ctx.display(ssh_dir)}",
            predicate=lambda: ssh_dir.is_dir() and (ssh_dir.stat().st_mode & 0o777) == 0o700,
            action=make_dir,
        )
    )

    for name in ssh.keys:
        key_path = ssh_dir / name
        pub_path = ssh_dir / f"{name}.pub"
        entry = ssh.entry(name)

        def extract_key(entry: str = entry, key_path: Path = key_path, pub_path: Path = pub_path) -> str:
            _extract(ctx, entry, key_path, 0o600)
            agent.derive_public_key(key_path, pub_path).raise_for_status()
            os.chmod(pub_path, 0o644)
            return f"{ctx.display(key_path)} + .pub"

        steps.append(
            Step(
                name=f"ssh-key:{name}",
                phase=PHASE_SSH,
                description=f"Extract SSH key {name}",
                predicate=lambda key_path=key_path: _non_empty(key_path),
                action=extract_key,
                describe=lambda entry=entry, key_path=key_path, pub_path=pub_path: [
                    f"pass {entry} > {ctx.display(key_path)}",
                    f"chmod 600 {ctx.display(key_path)}",
                    f"ssh-keygen -y -f {ctx.display(key_path)} > {ctx.display(pub_path)}",
                ],
            )
        )

    config_path = ssh_dir / ssh.config_entry
    config_entry = ssh.entry(ssh.config_entry)

    def extract_config() -> str:
        _extract(ctx, config_entry, config_path, 0o644)
        return ctx.display(config_path)

    steps.append(
        Step(
            name="ssh-config",
            phase=PHASE_SSH,
            description=f"pass {config_entry} > {ctx.display(config_path)}",
            predicate=config_path.is_file,
            action=extract_config,
        )
    )

    if ssh.agent_key:
        agent_key_path = ssh_dir / ssh.agent_key

        def load_key() -> str:
            if not agent_key_path.is_file():
                raise PreconditionMissing(f"SSH key {ctx.display(agent_key_path)} not found")
            agent.ensure_started().raise_for_status()
            agent.add_key(agent_key_path).raise_for_status()
            return f"{ssh.agent_key} loaded into ssh-agent"

        steps.append(
            Step(
                name="ssh-agent",
                phase=PHASE_SSH,
                description=f"Reuse or start ssh-agent and add {ssh.agent_key} key",
                predicate=lambda: agent.has_key(ssh.agent_key),
                action=load_key,
                advisory=True,
            )
        )

    return steps
