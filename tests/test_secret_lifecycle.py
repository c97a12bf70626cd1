"""
Tests for devseed.core.services.secret_lifecycle — passphrase and key handling.

Covers:
  - Secret buffer masking and wipe
  - Prompt sources (terminal unavailable, placeholder)
  - Secure delete (shred and overwrite fallback)
  - Decrypt + import with the right and the wrong passphrase
  - Private file modes and transient cleanup on every path
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from devseed.adapters.mock import FakeGpg
from devseed.core.errors import AuthenticationFailed, ExternalCapabilityFailed, PreconditionMissing
from devseed.core.services import secret_lifecycle
from devseed.core.services.secret_lifecycle import (
    DRY_RUN_PLACEHOLDER,
    PlaceholderPrompt,
    Secret,
    SecretLifecycle,
    TerminalPrompt,
    secure_delete,
)

KEY_ID = "E84B48EB778BF9E6"


@pytest.fixture()
def blob(tmp_path: Path) -> Path:
    path = tmp_path / "store" / "gpg-key.enc"
    path.parent.mkdir()
    path.write_text("-----BEGIN PGP MESSAGE-----\n")
    return path


@pytest.fixture()
def tmp_root(tmp_path: Path) -> Path:
    root = tmp_path / "tmp"
    root.mkdir()
    return root


@pytest.fixture()
def gpg() -> FakeGpg:
    return FakeGpg(KEY_ID)


@pytest.fixture()
def lifecycle(gpg: FakeGpg, tmp_root: Path) -> SecretLifecycle:
    return SecretLifecycle(gpg, gpg, tmp_root=tmp_root)


# ── Secret buffer ───────────────────────────────────────────────────


class TestSecret:
    def test_repr_is_masked(self):
        secret = Secret("hunter2")
        assert "hunter2" not in repr(secret)
        assert "hunter2" not in str(secret)
        assert repr(secret) == "<Secret ***>"

    def test_wipe(self):
        secret = Secret("hunter2")
        secret.wipe()
        assert secret.wiped
        assert len(secret) == 0
        assert repr(secret) == "<Secret wiped>"

    def test_context_manager_wipes(self):
        with Secret(b"hunter2") as secret:
            assert len(secret) == 7
        assert secret.wiped

    def test_secret_never_logged(self, lifecycle, blob, caplog):
        caplog.set_level(logging.DEBUG)
        with pytest.raises(AuthenticationFailed):
            lifecycle.decrypt_and_import(Secret("wrong-pass"), blob, KEY_ID)
        lifecycle.decrypt_and_import(Secret("hunter2"), blob, KEY_ID)
        assert "wrong-pass" not in caplog.text
        assert "hunter2" not in caplog.text


# ── Prompts ─────────────────────────────────────────────────────────


class TestPrompts:
    def test_terminal_unavailable(self, tmp_path):
        prompt = TerminalPrompt(tty_path=str(tmp_path / "no-tty"))
        with pytest.raises(PreconditionMissing, match="No interactive terminal"):
            prompt.read_secret("Enter encryption password: ")

    def test_placeholder_never_prompts(self):
        secret = PlaceholderPrompt().read_secret("Enter encryption password: ")
        assert len(secret) == len(DRY_RUN_PLACEHOLDER)
        PlaceholderPrompt().pause("Press Enter")

    def test_acquire_uses_prompt(self, lifecycle):
        secret = lifecycle.acquire(PlaceholderPrompt())
        assert not secret.wiped


# ── Secure delete ───────────────────────────────────────────────────


class TestSecureDelete:
    def test_removes_file(self, tmp_path):
        path = tmp_path / "key"
        path.write_text("plaintext key")
        secure_delete(path)
        assert not path.exists()

    def test_overwrite_fallback(self, tmp_path, monkeypatch):
        monkeypatch.setattr(secret_lifecycle.shutil, "which", lambda name: None)
        path = tmp_path / "key"
        path.write_text("plaintext key")
        secure_delete(path)
        assert not path.exists()

    def test_missing_file_ignored(self, tmp_path):
        secure_delete(tmp_path / "absent")

    def test_symlink_removed_target_kept(self, tmp_path):
        target = tmp_path / "target"
        target.write_text("keep me")
        link = tmp_path / "link"
        link.symlink_to(target)
        secure_delete(link)
        assert not link.is_symlink()
        assert target.read_text() == "keep me"


# ── Decrypt + import ────────────────────────────────────────────────


class TestDecryptAndImport:
    def test_correct_passphrase_imports(self, lifecycle, gpg, blob, tmp_root):
        secret = Secret("hunter2")
        result = lifecycle.decrypt_and_import(secret, blob, KEY_ID)
        assert result.imported
        assert result.trust_elevated
        assert result.destroyed == ["passphrase", "key"]
        assert KEY_ID in gpg.keyring
        assert KEY_ID in gpg.trusted
        assert secret.wiped
        assert list(tmp_root.iterdir()) == []

    def test_private_file_modes(self, lifecycle, gpg, blob):
        lifecycle.decrypt_and_import(Secret("hunter2"), blob, KEY_ID)
        assert gpg.file_modes == {"passphrase": 0o600, "output": 0o600, "workdir": 0o700}
        assert all(not p.exists() for p in gpg.seen_files)

    def test_loopback_only_during_import(self, lifecycle, gpg, blob):
        lifecycle.decrypt_and_import(Secret("hunter2"), blob, KEY_ID)
        assert gpg.loopback_during_import == [True]
        assert not gpg.loopback_active
        names = gpg.call_names()
        assert names.index("loopback_on") < names.index("import_key") < names.index("loopback_off")

    def test_wrong_passphrase(self, lifecycle, gpg, blob, tmp_root):
        secret = Secret("wrong")
        with pytest.raises(AuthenticationFailed, match="wrong password"):
            lifecycle.decrypt_and_import(secret, blob, KEY_ID)
        assert secret.wiped
        assert gpg.keyring == set()
        assert "import_key" not in gpg.call_names()
        assert list(tmp_root.iterdir()) == []
        assert lifecycle.transient_dirs == []

    def test_missing_blob(self, lifecycle, gpg, tmp_path, tmp_root):
        secret = Secret("hunter2")
        with pytest.raises(PreconditionMissing, match="Encrypted GPG key not found"):
            lifecycle.decrypt_and_import(secret, tmp_path / "absent.enc", KEY_ID)
        assert secret.wiped
        assert gpg.calls == []
        assert list(tmp_root.iterdir()) == []

    def test_import_failure_cleans_up(self, lifecycle, gpg, blob, tmp_root):
        gpg.fail.add("import")
        with pytest.raises(ExternalCapabilityFailed):
            lifecycle.decrypt_and_import(Secret("hunter2"), blob, KEY_ID)
        assert not gpg.loopback_active
        assert list(tmp_root.iterdir()) == []

    def test_trust_failure_cleans_up(self, lifecycle, gpg, blob, tmp_root):
        gpg.fail.add("trust")
        with pytest.raises(ExternalCapabilityFailed, match="ownertrust"):
            lifecycle.decrypt_and_import(Secret("hunter2"), blob, KEY_ID)
        assert list(tmp_root.iterdir()) == []

    def test_destroy_transients_idempotent(self, lifecycle, tmp_root):
        lifecycle.destroy_transients()
        lifecycle.destroy_transients()
        assert list(tmp_root.iterdir()) == []
