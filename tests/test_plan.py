"""
Tests for devseed.core.provisioning — plan shape, step flags and ordering.
"""

from __future__ import annotations

import pytest

from devseed.core.provisioning.context import ProvisionContext
from devseed.core.provisioning.plan import TOTAL_PHASES, build_plan
from devseed.core.provisioning.repositories import move_aside
from devseed.core.services.secret_lifecycle import SecretLifecycle


def _ctx(machine, dry_run=False) -> ProvisionContext:
    caps = machine.caps()
    return ProvisionContext(
        config=machine.config,
        platform=machine.platform,
        home=machine.home,
        caps=caps,
        lifecycle=SecretLifecycle(caps.decrypt_oracle, caps.trust_importer, tmp_root=machine.tmp_root),
        prompt=machine.prompt,
        dry_run=dry_run,
        etc_shells=machine.etc_shells,
        login_shell=lambda: machine.privilege.login_shell,
        clock=lambda: 1700000000,
    )


LINUX_ORDER = [
    "build-tools",
    "git-available",
    "homebrew",
    "homebrew-shellenv:.zshrc",
    "homebrew-shellenv:.zprofile",
    "gnupg",
    "password-store",
    "password-store-update",
    "gpg-key",
    "zsh",
    "default-shell",
    "linuxbrew-zsh-permissions",
    "package:pass",
    "package:stow",
    "ssh-directory",
    "ssh-key:victorstein-GitHub",
    "ssh-key:coolify",
    "ssh-key:stein-coolify",
    "ssh-config",
    "ssh-agent",
    "dotfiles",
    "dotfiles-update",
    "link-dotfiles",
    "brewfile",
]


class TestPlanShape:
    def test_linux_order(self, machine):
        plan = build_plan(_ctx(machine))
        assert [s.name for s in plan.steps] == LINUX_ORDER

    def test_eleven_phases(self, machine):
        plan = build_plan(_ctx(machine))
        assert len(plan.phases) == TOTAL_PHASES
        assert plan.phases[0] == "Build Dependencies & Git"
        assert plan.phases[-1] == "Homebrew Packages (Brewfile)"

    def test_mac_has_no_linux_only_steps(self, mac_machine):
        names = [s.name for s in build_plan(_ctx(mac_machine)).steps]
        assert "linuxbrew-zsh-permissions" not in names
        assert "homebrew-shellenv:.zshrc" not in names
        assert "homebrew-shellenv:.zprofile" in names

    def test_advisory_steps(self, machine):
        plan = build_plan(_ctx(machine))
        advisory = {s.name for s in plan.steps if s.advisory}
        assert advisory == {
            "password-store-update",
            "default-shell",
            "linuxbrew-zsh-permissions",
            "ssh-agent",
            "dotfiles-update",
            "brewfile",
        }

    def test_only_gpg_key_is_strict(self, machine):
        plan = build_plan(_ctx(machine))
        assert [s.name for s in plan.steps if s.strict_predicate] == ["gpg-key"]

    def test_network_predicates(self, machine):
        plan = build_plan(_ctx(machine))
        assert {s.name for s in plan.steps if s.network_predicate} == {
            "password-store-update",
            "dotfiles-update",
            "brewfile",
        }

    def test_step_lookup(self, machine):
        plan = build_plan(_ctx(machine))
        assert plan.step("gpg-key").phase == "GPG Key Import"
        with pytest.raises(KeyError):
            plan.step("nope")


class TestStepIntents:
    def test_toolchain_intents(self, machine):
        plan = build_plan(_ctx(machine))
        assert plan.step("build-tools").intents() == ["apt install build-essential git"]

    def test_zsh_intents_use_native_manager(self, machine):
        plan = build_plan(_ctx(machine))
        assert plan.step("zsh").intents() == ["fake-apt install zsh"]

    def test_ssh_key_intents(self, machine):
        plan = build_plan(_ctx(machine))
        assert plan.step("ssh-key:coolify").intents() == [
            "pass ssh/coolify > ~/.ssh/coolify",
            "chmod 600 ~/.ssh/coolify",
            "ssh-keygen -y -f ~/.ssh/coolify > ~/.ssh/coolify.pub",
        ]

    def test_clone_intents_mention_move_aside(self, machine):
        (machine.home / ".dotfiles").mkdir()
        plan = build_plan(_ctx(machine))
        lines = plan.step("dotfiles").intents()
        assert lines[0].startswith("Move ~/.dotfiles to .dotfiles.backup.")
        assert lines[1] == "git clone git@github.com:victorstein/dotfiles.git ~/.dotfiles"


class TestSecretGate:
    def test_prepare_skips_prompt_when_key_present(self, machine):
        machine.gpg.keyring.add(machine.config.key_id)
        plan = build_plan(_ctx(machine))
        assert plan.gate.prepare() is False
        assert machine.prompt.asked == 0

    def test_prepare_dry_run_uses_placeholder(self, machine):
        plan = build_plan(_ctx(machine, dry_run=True))
        assert plan.gate.prepare() is True
        assert plan.gate.holds_secret
        assert machine.prompt.asked == 0

    def test_discard_wipes(self, machine):
        plan = build_plan(_ctx(machine))
        plan.gate.prepare()
        assert plan.gate.holds_secret
        plan.gate.discard()
        assert not plan.gate.holds_secret

    def test_passphrase_held_by_lifecycle(self, machine):
        ctx = _ctx(machine)
        plan = build_plan(ctx)
        plan.gate.prepare()
        assert ctx.lifecycle.holds_secret
        secret = ctx.lifecycle.take()
        assert secret is not None and len(secret)
        assert not plan.gate.holds_secret
        assert ctx.lifecycle.take() is None
        secret.wipe()

    def test_hold_replaces_and_wipes_previous(self, machine):
        ctx = _ctx(machine)
        first = ctx.lifecycle.acquire(machine.prompt)
        ctx.lifecycle.hold(first)
        ctx.lifecycle.hold(ctx.lifecycle.acquire(machine.prompt))
        assert first.wiped
        ctx.lifecycle.discard()
        assert not ctx.lifecycle.holds_secret

    def test_unreadable_keyring_defers_to_step(self, machine):
        machine.gpg.fail.add("list")
        plan = build_plan(_ctx(machine))
        assert plan.gate.prepare() is False
        assert machine.prompt.asked == 0
        assert not plan.gate.holds_secret

    def test_dry_run_query_is_read_only(self, machine, monkeypatch):
        seen = []
        monkeypatch.setattr(
            machine.gpg, "has_secret_key", lambda key_id, *, read_only=False: seen.append(read_only) or False
        )
        build_plan(_ctx(machine, dry_run=True)).step("gpg-key").predicate()
        build_plan(_ctx(machine)).step("gpg-key").predicate()
        assert seen == [True, False]


class TestMoveAside:
    def test_collision_suffix(self, tmp_path):
        (tmp_path / "repo.backup.5").mkdir()
        target = tmp_path / "repo"
        target.mkdir()
        moved = move_aside(target, 5.9)
        assert moved.name == "repo.backup.5-1"
        assert not target.exists()
