"""
devseed — CLI entrypoint.

Usage:
    devseed             provision this machine
    devseed --dry-run   show what would change, change nothing
    python -m devseed.main --help
"""

from __future__ import annotations

import os
import sys

import click

from devseed import __version__
from devseed.core.engine.pipeline import PipelineReporter
from devseed.core.errors import EXIT_INTERRUPTED
from devseed.core.models.outcome import OutcomeStatus, StepOutcome
from devseed.core.models.step import Step
from devseed.core.observability.logging_config import setup_logging

_RULE = "═" * 59


class ClickReporter(PipelineReporter):
    """Renders pipeline progress with colored click output."""

    def __init__(self, quiet: bool = False):
        self.quiet = quiet
        self._phase: str | None = None
        self._phase_no = 0

    def step_started(self, index: int, total: int, step: Step) -> None:
        if step.phase and step.phase != self._phase:
            self._phase = step.phase
            self._phase_no += 1
            if not self.quiet:
                from devseed.core.provisioning.plan import TOTAL_PHASES

                click.echo()
                click.secho(_RULE, fg="green")
                click.secho(f"  STEP {self._phase_no}/{TOTAL_PHASES}: {step.phase}", fg="green", bold=True)
                click.secho(_RULE, fg="green")

    def step_finished(self, index: int, total: int, outcome: StepOutcome) -> None:
        label = outcome.step
        if outcome.status == OutcomeStatus.ALREADY_SATISFIED:
            if not self.quiet:
                click.secho("   ⏭️  ", fg="blue", nl=False)
                click.echo(f"{label} (already done)")
        elif outcome.status == OutcomeStatus.APPLIED:
            if not self.quiet:
                click.secho("   ✅ ", fg="green", nl=False)
                click.echo(f"{label}" + (f" — {outcome.detail}" if outcome.detail else ""))
        elif outcome.status == OutcomeStatus.WOULD_APPLY:
            for line in outcome.intents:
                click.secho("   🔍 Would: ", fg="magenta", nl=False)
                click.echo(line)
        elif outcome.advisory:
            click.secho(f"   ⚠️  {label}: {outcome.reason}", fg="yellow")
        else:
            click.secho(f"   ❌ {label}: {outcome.reason}", fg="red", err=True)


def _banner(title: str, color: str) -> None:
    click.secho(_RULE, fg=color)
    click.secho(f"  {title}", fg=color, bold=True)
    click.secho(_RULE, fg=color)


@click.command()
@click.version_option(version=__version__, prog_name="devseed")
@click.option("--dry-run", "-n", "dry_run", is_flag=True, help="Show what would change without changing anything.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Only show changes, warnings and errors.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
def cli(dry_run: bool, verbose: bool, quiet: bool, debug: bool) -> None:
    """Provision this workstation into a configured development environment.

    Safe to run repeatedly: every step checks the machine first and only
    changes what is missing.
    """
    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("DEVSEED_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("DEVSEED_LOG_FILE"),
        log_file_level=os.environ.get("DEVSEED_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )

    from devseed.core.use_cases.provision import run_provision

    if dry_run:
        _banner("DRY-RUN MODE - No changes will be made", "magenta")
        click.echo()
    elif not quiet:
        click.secho("This script is protected. You may be asked for the encryption password.", fg="yellow")

    result = run_provision(dry_run=dry_run, reporter=ClickReporter(quiet=quiet))

    click.echo()
    if result.exit_code == EXIT_INTERRUPTED:
        click.secho(f"🛑 {result.error or 'Interrupted'} — temporary files cleaned up", fg="yellow", err=True)
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(result.exit_code)

    report = result.report
    if report is not None:
        for warning in report.warnings:
            click.secho(f"⚠️  {warning.step}: {warning.reason}", fg="yellow")

        name = result.platform.display_name if result.platform else ""
        if dry_run:
            _banner(f"DRY-RUN COMPLETE - {report.would_apply} step(s) would change", "magenta")
            click.echo("Run without --dry-run to apply.")
        else:
            _banner(f"{name} bootstrap complete!".strip(), "green")
            click.echo(
                f"   {report.applied} applied, {report.already_satisfied} already done, "
                f"{len(report.warnings)} warning(s)"
            )
            if not quiet:
                click.echo("   Restart your terminal or run: exec zsh")

    sys.exit(result.exit_code)


if __name__ == "__main__":
    cli()
