"""
Provision use case — converge this workstation to the machine definition.

This is the top-level orchestrator: it loads the compiled-in config, probes
the platform, resolves capabilities, collects the passphrase if the key
still needs importing, starts the sudo keepalive, and runs the plan
through the pipeline (projected into dry-run form when asked).

Every failure comes back on the ``ProvisionResult`` with its exit code;
secret wipe and transient-file cleanup have already happened by then.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from devseed.adapters.registry import Capabilities, build_capabilities
from devseed.core.config.loader import ConfigError, load_machine_config
from devseed.core.engine.dry_run import DryRunProjector
from devseed.core.engine.pipeline import (
    PipelineReport,
    PipelineReporter,
    StepPipeline,
    interrupt_on_signals,
)
from devseed.core.errors import EXIT_OK, EXIT_PRECONDITION, BootstrapError, Interrupted
from devseed.core.models.machine import MachineConfig
from devseed.core.models.platform import PlatformInfo
from devseed.core.provisioning.context import ProvisionContext
from devseed.core.provisioning.plan import build_plan
from devseed.core.services.platform_probe import current_login_shell, probe_platform
from devseed.core.services.privilege import PrivilegeKeepalive
from devseed.core.services.secret_lifecycle import PromptSource, SecretLifecycle, TerminalPrompt

logger = logging.getLogger(__name__)


@dataclass
class ProvisionResult:
    """Result of one provisioning run."""

    report: PipelineReport | None = None
    platform: PlatformInfo | None = None
    dry_run: bool = False
    journal: list[tuple[str, str]] = field(default_factory=list)
    error: str | None = None
    error_kind: str | None = None
    exit_code: int = EXIT_OK

    @property
    def ok(self) -> bool:
        return self.exit_code == EXIT_OK

    def to_dict(self) -> dict:
        result: dict = {"dry_run": self.dry_run, "exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
            result["error_kind"] = self.error_kind
        if self.platform:
            result["platform"] = self.platform.model_dump(mode="json")
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def run_provision(
    dry_run: bool = False,
    home: Path | None = None,
    config: MachineConfig | None = None,
    platform: PlatformInfo | None = None,
    caps: Capabilities | None = None,
    prompt: PromptSource | None = None,
    reporter: PipelineReporter | None = None,
    etc_shells: Path = Path("/etc/shells"),
    login_shell: Callable[[], str] = current_login_shell,
    tmp_root: Path | None = None,
) -> ProvisionResult:
    """Provision the machine (or describe what would change, under dry-run).

    Args:
        dry_run: Record intents instead of mutating anything.
        home: Home directory to converge (default: the user's).
        config: Machine definition (default: the packaged one).
        platform: Probed platform (default: probe now).
        caps: Capabilities (default: resolved for ``platform``).
        prompt: Passphrase source (default: the terminal).
        reporter: Progress callbacks.
        etc_shells: Login shell registry updated by the default-shell step.
        login_shell: Live lookup of the user's login shell.
        tmp_root: Parent of the private transient directory.

    Returns:
        ProvisionResult with the pipeline report or the error that stopped it.
    """
    result = ProvisionResult(dry_run=dry_run)
    home = home or Path.home()
    prompt = prompt or TerminalPrompt()

    # ── Resolve (no mutations) ──────────────────────────────────
    try:
        config = config or load_machine_config()
        platform = platform or probe_platform()
        result.platform = platform
        caps = caps or build_capabilities(platform, home, wait_for_user=prompt.pause)
    except ConfigError as e:
        return _fail(result, str(e), "config_error", EXIT_PRECONDITION)
    except BootstrapError as e:
        return _fail(result, str(e), e.kind, e.exit_code)

    lifecycle = SecretLifecycle(caps.decrypt_oracle, caps.trust_importer, tmp_root=tmp_root)
    ctx = ProvisionContext(
        config=config,
        platform=platform,
        home=home,
        caps=caps,
        lifecycle=lifecycle,
        prompt=prompt,
        dry_run=dry_run,
        etc_shells=etc_shells,
        login_shell=login_shell,
    )
    plan = build_plan(ctx)
    pipeline = StepPipeline(reporter)
    pipeline.add_cleanup("secret transients", lifecycle.destroy_transients)
    pipeline.add_cleanup("passphrase", lifecycle.discard)

    steps = plan.steps
    projector: DryRunProjector | None = None
    if dry_run:
        projector = DryRunProjector()
        steps = projector.project_all(steps)

    # ── Run ─────────────────────────────────────────────────────
    try:
        with interrupt_on_signals():
            try:
                plan.gate.prepare()
                if not dry_run:
                    keepalive = PrivilegeKeepalive(
                        caps.privilege,
                        refresh_seconds=config.privilege.refresh_seconds,
                        max_minutes=config.privilege.max_minutes,
                    )
                    pipeline.add_cleanup("sudo keepalive", keepalive.cancel)
                    keepalive.start()
            except KeyboardInterrupt:
                pipeline.run_cleanup()
                raise Interrupted("Interrupted by user") from None
            except BootstrapError:
                pipeline.run_cleanup()
                raise

            report = pipeline.run(steps)
    except BootstrapError as e:
        return _fail(result, str(e), e.kind, e.exit_code)

    result.report = report
    result.exit_code = report.exit_code
    if projector is not None:
        result.journal = list(projector.journal)
    failed = report.failed_outcome
    if failed is not None:
        result.error = f"{failed.step}: {failed.reason}"
        result.error_kind = failed.error_kind
    return result


def _fail(result: ProvisionResult, message: str, kind: str, exit_code: int) -> ProvisionResult:
    logger.error("%s", message)
    result.error = message
    result.error_kind = kind
    result.exit_code = exit_code
    return result
