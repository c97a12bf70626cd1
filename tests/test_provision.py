"""
Tests for the provision use case — whole runs against capability fakes.

Covers:
  - First run converges a bare machine
  - Second run changes nothing and never prompts
  - Dry-run mutates nothing and records intents
  - Wrong, empty and absent passphrases
  - Fatal vs advisory step failures, and resuming after a fix
  - Interrupts and cleanup
"""

from __future__ import annotations

import os
import threading

from devseed.adapters.mock import FAKE_PRIVATE_KEY
from devseed.core.errors import (
    EXIT_AUTH_FAILED,
    EXIT_EMPTY_INPUT,
    EXIT_INTERRUPTED,
    EXIT_OK,
    EXIT_PRECONDITION,
    EXIT_STEP_FAILED,
    EmptyInput,
)
from devseed.core.models.outcome import OutcomeStatus
from devseed.core.use_cases.provision import run_provision
from tests.conftest import DOTFILES_TREE, ScriptedPrompt, find_bytes

READ_ONLY_CALLS = {"is_current", "validate", "refresh", "bundle_check"}


def _statuses(result) -> dict[str, OutcomeStatus]:
    return {o.step: o.status for o in result.report.outcomes}


def _keepalive_threads() -> list[threading.Thread]:
    return [t for t in threading.enumerate() if t.name == "sudo-keepalive"]


# ── First run ───────────────────────────────────────────────────────


class TestFirstRun:
    def test_converges(self, machine):
        result = machine.provision()
        assert result.exit_code == EXIT_OK, result.error
        assert result.ok
        assert result.report.already_satisfied + result.report.applied == result.report.total_steps
        assert machine.prompt.asked == 1

    def test_installs_tools(self, machine):
        machine.provision()
        for binary in ("git", "gpg", "zsh", "pass", "stow"):
            assert (machine.bin_dir / binary).is_file(), binary
        assert machine.brew.present
        assert machine.toolchain.installed == {"zsh"}
        assert machine.brew.installed == {"gnupg", "pass", "stow"}

    def test_imports_key_with_ultimate_trust(self, machine):
        machine.provision()
        key = machine.config.key_id
        assert key in machine.gpg.keyring
        assert key in machine.gpg.trusted
        assert machine.gpg.loopback_during_import == [True]
        assert not machine.gpg.loopback_active

    def test_no_plaintext_left_behind(self, machine):
        machine.provision()
        assert list(machine.tmp_root.iterdir()) == []
        assert find_bytes(b"hunter2", machine.root) == []
        assert find_bytes(b"PGP PRIVATE KEY", machine.root) == []
        assert machine.gpg.file_modes == {"passphrase": 0o600, "output": 0o600, "workdir": 0o700}

    def test_ssh_material(self, machine):
        machine.provision()
        ssh = machine.home / ".ssh"
        assert ssh.stat().st_mode & 0o777 == 0o700
        for name in machine.config.ssh.keys:
            assert (ssh / name).stat().st_mode & 0o777 == 0o600
            assert (ssh / f"{name}.pub").stat().st_mode & 0o777 == 0o644
        assert (ssh / "config").read_text().startswith("Host github.com")
        assert machine.ssh.keys == {"victorstein-GitHub"}

    def test_default_shell(self, machine):
        machine.provision()
        zsh = str(machine.bin_dir / "zsh")
        assert machine.privilege.login_shell == zsh
        assert zsh in machine.etc_shells.read_text().splitlines()

    def test_homebrew_shellenv(self, machine):
        machine.provision()
        line = machine.brew.shellenv_line()
        assert line in (machine.home / ".zprofile").read_text()
        backup = next(p for p in machine.home.iterdir() if p.name.startswith(".zshrc.backup."))
        assert line in backup.read_text()

    def test_dotfiles_linked(self, machine):
        machine.provision()
        home = machine.home
        dotfiles = home / ".dotfiles"
        assert os.path.realpath(home / ".gitconfig") == str((dotfiles / ".gitconfig").resolve())
        assert os.path.realpath(home / ".config" / "nvim") == str((dotfiles / ".config" / "nvim").resolve())
        assert not os.path.lexists(home / ".gitignore")
        assert not os.path.lexists(home / "README.md")

    def test_zshrc_from_shellenv_step_backed_up(self, machine):
        machine.provision()
        backups = [p for p in machine.home.iterdir() if p.name.startswith(".zshrc.backup.")]
        assert len(backups) == 1
        assert (machine.home / ".zshrc").is_symlink()

    def test_brewfile_for_linux(self, machine):
        machine.provision()
        assert machine.brew.bundled == {machine.home / ".dotfiles" / "Brewfile.linux"}

    def test_keepalive_stopped(self, machine):
        machine.provision()
        assert "validate" in machine.privilege.call_names()
        assert _keepalive_threads() == []

    def test_mac(self, mac_machine):
        result = mac_machine.provision()
        assert result.exit_code == EXIT_OK, result.error
        statuses = _statuses(result)
        assert "linuxbrew-zsh-permissions" not in statuses
        assert "homebrew-shellenv:.zshrc" not in statuses
        assert mac_machine.toolchain.installed == set()
        assert "zsh" in mac_machine.brew.installed
        assert mac_machine.brew.bundled == {mac_machine.home / ".dotfiles" / "Brewfile"}
        assert result.platform.display_name == "Mac"


# ── Second run ──────────────────────────────────────────────────────


class TestIdempotence:
    def test_second_run_changes_nothing(self, machine):
        machine.provision()
        before = machine.digest()
        machine.reset_calls()

        result = machine.provision()
        assert result.exit_code == EXIT_OK
        assert result.report.applied == 0
        assert set(_statuses(result).values()) == {OutcomeStatus.ALREADY_SATISFIED}
        assert machine.digest() == before
        for fake in machine.fakes:
            assert set(fake.call_names()) <= READ_ONLY_CALLS, fake.name

    def test_second_run_never_prompts(self, machine):
        machine.provision()
        machine.provision()
        assert machine.prompt.asked == 1

    def test_linked_zshrc_never_written(self, machine):
        machine.provision()
        result = machine.provision()
        assert _statuses(result)["homebrew-shellenv:.zshrc"] == OutcomeStatus.ALREADY_SATISFIED
        assert (machine.home / ".dotfiles" / ".zshrc").read_text() == DOTFILES_TREE[".zshrc"]
        assert (machine.home / ".zshrc").is_symlink()

    def test_key_already_present(self, machine):
        machine.gpg.keyring.add(machine.config.key_id)
        result = machine.provision()
        assert result.ok
        assert machine.prompt.asked == 0
        assert _statuses(result)["gpg-key"] == OutcomeStatus.ALREADY_SATISFIED
        assert "decrypt" not in machine.gpg.call_names()


# ── Dry-run ─────────────────────────────────────────────────────────


class TestDryRun:
    def test_mutates_nothing(self, machine):
        before = machine.digest()
        result = machine.provision(dry_run=True)
        assert result.exit_code == EXIT_OK
        assert result.dry_run
        assert machine.digest() == before
        for fake in machine.fakes:
            assert fake.calls == [], fake.name

    def test_never_prompts(self, machine):
        machine.provision(dry_run=True)
        assert machine.prompt.asked == 0

    def test_reports_would_apply(self, machine):
        result = machine.provision(dry_run=True)
        statuses = _statuses(result)
        assert statuses["linuxbrew-zsh-permissions"] == OutcomeStatus.ALREADY_SATISFIED
        assert statuses["gpg-key"] == OutcomeStatus.WOULD_APPLY
        assert statuses["dotfiles-update"] == OutcomeStatus.WOULD_APPLY
        assert result.report.would_apply == result.report.total_steps - 1

    def test_journal(self, machine):
        result = machine.provision(dry_run=True)
        gpg_lines = [line for step, line in result.journal if step == "gpg-key"]
        assert gpg_lines == [
            "Decrypt ~/.password-store/gpg-key.enc",
            "Import GPG key",
            "Set trust level to ultimate",
            "Delete temp decrypted key",
        ]
        link_lines = [line for step, line in result.journal if step == "link-dotfiles"]
        assert link_lines[0] == "mkdir -p ~/.config"

    def test_after_full_run_everything_satisfied(self, machine):
        machine.provision()
        result = machine.provision(dry_run=True)
        statuses = _statuses(result)
        assert result.report.would_apply == 3
        assert statuses["password-store-update"] == OutcomeStatus.WOULD_APPLY
        assert statuses["dotfiles-update"] == OutcomeStatus.WOULD_APPLY
        assert statuses["brewfile"] == OutcomeStatus.WOULD_APPLY

    def test_brewfile_not_checked(self, machine):
        machine.provision()
        machine.reset_calls()
        result = machine.provision(dry_run=True)
        assert _statuses(result)["brewfile"] == OutcomeStatus.WOULD_APPLY
        assert "bundle_check" not in machine.brew.call_names()

    def test_dry_run_names_foreign_backup(self, machine):
        machine.provision()
        link = machine.home / ".gitconfig"
        link.unlink()
        link.write_text("local edits\n")
        result = machine.provision(dry_run=True)
        lines = [line for step, line in result.journal if step == "link-dotfiles"]
        assert len(lines) == 1
        assert lines[0].startswith(f"Back up {link}")
        assert link.read_text() == "local edits\n"


# ── Passphrase failures ─────────────────────────────────────────────


class EmptyPrompt(ScriptedPrompt):
    def read_secret(self, message):
        self.asked += 1
        raise EmptyInput("No password provided")


class TestPassphrase:
    def test_wrong_passphrase(self, machine):
        machine.prompt = ScriptedPrompt("not-the-passphrase")
        result = machine.provision()
        assert result.exit_code == EXIT_AUTH_FAILED
        assert result.error_kind == "authentication_failed"
        assert result.error == "gpg-key: Authentication failed: wrong password"
        assert result.report.failed_outcome.step == "gpg-key"
        assert machine.gpg.keyring == set()
        assert not (machine.bin_dir / "zsh").exists()
        assert list(machine.tmp_root.iterdir()) == []
        assert find_bytes(b"not-the-passphrase", machine.root) == []

    def test_retry_after_wrong_passphrase(self, machine):
        machine.prompt = ScriptedPrompt("not-the-passphrase")
        machine.provision()
        machine.prompt = ScriptedPrompt("hunter2")
        machine.reset_calls()
        result = machine.provision()
        assert result.ok
        assert "install_toolchain" not in machine.toolchain.call_names()
        assert _statuses(result)["build-tools"] == OutcomeStatus.ALREADY_SATISFIED

    def test_empty_passphrase(self, machine):
        machine.prompt = EmptyPrompt()
        result = machine.provision()
        assert result.exit_code == EXIT_EMPTY_INPUT
        assert result.error == "No password provided"
        assert result.report is None
        assert machine.toolchain.calls == []

    def test_missing_encrypted_key(self, machine):
        del machine.vcs.trees[machine.config.seed.url][machine.config.encrypted_key]
        result = machine.provision()
        assert result.exit_code == EXIT_PRECONDITION
        assert "Encrypted GPG key not found" in result.error


# ── Step failures ───────────────────────────────────────────────────


class TestFailures:
    def test_fatal_failure_aborts(self, machine):
        machine.vcs.fail.add(machine.config.dotfiles.url)
        result = machine.provision()
        assert result.exit_code == EXIT_STEP_FAILED
        assert result.report.failed_outcome.step == "dotfiles"
        assert "link-dotfiles" not in _statuses(result)
        assert machine.brew.bundled == set()

    def test_resume_after_fix(self, machine):
        machine.vcs.fail.add(machine.config.dotfiles.url)
        machine.provision()
        machine.vcs.fail.clear()
        machine.reset_calls()
        result = machine.provision()
        assert result.ok
        statuses = _statuses(result)
        assert statuses["gpg-key"] == OutcomeStatus.ALREADY_SATISFIED
        assert statuses["dotfiles"] == OutcomeStatus.APPLIED
        assert statuses["link-dotfiles"] == OutcomeStatus.APPLIED
        assert machine.prompt.asked == 1

    def test_advisory_failure_warns(self, machine):
        machine.brew.fail.add("bundle")
        machine.ssh.fail.add("add_key")
        result = machine.provision()
        assert result.exit_code == EXIT_OK
        assert {w.step for w in result.report.warnings} == {"brewfile", "ssh-agent"}

    def test_missing_brewfile_is_a_warning(self, machine):
        del machine.vcs.trees[machine.config.dotfiles.url]["Brewfile.linux"]
        result = machine.provision()
        assert result.ok
        warning = result.report.warnings[0]
        assert warning.step == "brewfile"
        assert "Brewfile not found" in warning.reason

    def test_chsh_failure_is_a_warning(self, machine):
        machine.privilege.fail.add("chsh")
        result = machine.provision()
        assert result.ok
        assert [w.step for w in result.report.warnings] == ["default-shell"]
        assert "sudo chsh -s" in result.report.warnings[0].reason

    def test_sudo_validation_failure(self, machine):
        machine.privilege.fail.add("validate")
        result = machine.provision()
        assert result.exit_code == EXIT_PRECONDITION
        assert result.report is None
        assert machine.toolchain.calls == []

    def test_no_sudo_needed_as_root(self, machine):
        machine.privilege.root = True
        result = machine.provision()
        assert result.ok
        assert "validate" not in machine.privilege.call_names()

    def test_unreadable_keyring_aborts_at_gpg_key(self, machine):
        machine.gpg.fail.add("list")
        result = machine.provision()
        assert result.exit_code == EXIT_STEP_FAILED
        assert result.report.failed_outcome.step == "gpg-key"
        assert result.error.startswith("gpg-key: ")
        assert "keyring unreadable" in result.error
        assert machine.prompt.asked == 0
        assert "decrypt" not in machine.gpg.call_names()
        assert "zsh" not in _statuses(result)

    def test_non_repository_moved_aside(self, machine):
        stray = machine.home / ".dotfiles"
        stray.mkdir()
        (stray / "notes.txt").write_text("keep\n")
        result = machine.provision()
        assert result.ok
        backups = [p for p in machine.home.iterdir() if p.name.startswith(".dotfiles.backup.")]
        assert len(backups) == 1
        assert (backups[0] / "notes.txt").read_text() == "keep\n"


# ── Interrupts ──────────────────────────────────────────────────────


class TestInterrupt:
    def test_keyboard_interrupt_cleans_up(self, machine, monkeypatch):
        def interrupted():
            raise KeyboardInterrupt

        monkeypatch.setattr(machine.toolchain, "install_toolchain", interrupted)
        result = machine.provision()
        assert result.exit_code == EXIT_INTERRUPTED
        assert result.error_kind == "interrupted"
        assert list(machine.tmp_root.iterdir()) == []
        assert _keepalive_threads() == []

    def test_interrupt_during_decrypt(self, machine, monkeypatch):
        def interrupted(passphrase_file, blob, output):
            output.write_text(FAKE_PRIVATE_KEY)
            raise KeyboardInterrupt

        monkeypatch.setattr(machine.gpg, "decrypt", interrupted)
        result = machine.provision()
        assert result.exit_code == EXIT_INTERRUPTED
        assert list(machine.tmp_root.iterdir()) == []
        assert find_bytes(b"hunter2", machine.root) == []
        assert find_bytes(b"PGP PRIVATE KEY", machine.root) == []
        assert _keepalive_threads() == []

    def test_interrupt_during_key_import(self, machine, monkeypatch):
        seen_loopback = []

        def interrupted(key_file):
            seen_loopback.append(machine.gpg.loopback_active)
            raise KeyboardInterrupt

        monkeypatch.setattr(machine.gpg, "import_key", interrupted)
        result = machine.provision()
        assert result.exit_code == EXIT_INTERRUPTED
        assert result.error_kind == "interrupted"
        assert seen_loopback == [True]
        assert not machine.gpg.loopback_active
        assert machine.gpg.call_names()[-1] == "loopback_off"
        assert machine.gpg.keyring == set()
        assert list(machine.tmp_root.iterdir()) == []
        assert find_bytes(b"hunter2", machine.root) == []
        assert find_bytes(b"PGP PRIVATE KEY", machine.root) == []
        assert _keepalive_threads() == []
        assert "validate" in machine.privilege.call_names()


# ── Startup failures ────────────────────────────────────────────────


class TestStartup:
    def test_unsupported_platform(self, machine, monkeypatch):
        from devseed.core.errors import EnvironmentUnsupported
        from devseed.core.use_cases import provision

        def unsupported():
            raise EnvironmentUnsupported("Unsupported operating system: Plan9")

        monkeypatch.setattr(provision, "probe_platform", unsupported)
        result = run_provision(home=machine.home, config=machine.config, prompt=machine.prompt)
        assert result.exit_code == 4
        assert result.error_kind == "environment_unsupported"
        assert machine.prompt.asked == 0

    def test_to_dict(self, machine):
        d = machine.provision(dry_run=True).to_dict()
        assert d["dry_run"] is True
        assert d["exit_code"] == 0
        assert d["platform"]["os"] == "linux"
        assert d["report"]["state"] == "completed"
