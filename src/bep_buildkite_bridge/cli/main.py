"""CLI entry point for bep-buildkite-bridge.

Invoked as::

    bep-buildkite [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m bep_buildkite_bridge.cli.main

Available commands
------------------
* ``report``       : feed a BEP JSON file through a run and report it
* ``upload-junit`` : upload one JUnit XML file to test analytics
* ``version``      : show detailed version information
"""
from __future__ import annotations

import logging
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from bep_buildkite_bridge.errors import (
    AgentError,
    ConfigError,
    ResolutionError,
    UploadError,
)

console = Console()
logger = logging.getLogger(__name__)

_REPORT_ERRORS = (AgentError, ConfigError, ResolutionError, UploadError, OSError)


def _load_config(config_path: str | None, **overrides: bool):  # type: ignore[no-untyped-def]
    from bep_buildkite_bridge.config import (
        PluginSettings,
        RunConfig,
        load_settings_file,
    )

    settings = load_settings_file(config_path) if config_path else PluginSettings()
    updates = {name: True for name, enabled in overrides.items() if enabled}
    if updates:
        settings = settings.model_copy(update=updates)
    return RunConfig.from_environ(settings)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="bep-buildkite-bridge")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set the log level.",
    show_default=True,
)
def cli(log_level: str) -> None:
    """Report Bazel build events to Buildkite annotations and test analytics."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from bep_buildkite_bridge import __version__

    console.print(f"[bold]bep-buildkite-bridge[/bold] v{__version__}")
    console.print(f"Python {sys.version}")


# ---------------------------------------------------------------------------
# report
# ---------------------------------------------------------------------------


@cli.command(name="report")
@click.argument("bep_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML plugin properties file.",
)
@click.option("--pretend", is_flag=True, help="Print buildkite-agent commands instead of running them.")
@click.option("--dry-run", is_flag=True, help="Write testresults.json instead of uploading.")
def report_command(
    bep_path: str,
    config_path: str | None,
    pretend: bool,
    dry_run: bool,
) -> None:
    """Report the build described by BEP_PATH (a --build_event_json_file)."""
    from bep_buildkite_bridge.events.bep import iter_build_events
    from bep_buildkite_bridge.run import BuildRun

    try:
        config = _load_config(config_path, pretend=pretend, dry_run=dry_run)
    except ConfigError as exc:
        console.print(f"[red]Invalid configuration:[/red] {escape(str(exc))}")
        raise SystemExit(1) from exc

    if not config.in_buildkite:
        console.print(
            "[yellow]Note:[/yellow] $BUILDKITE is not 'true'; nothing will be reported."
        )

    run = BuildRun(config)
    try:
        with open(bep_path, "r", encoding="utf-8") as stream:
            for event in iter_build_events(stream):
                run.observe(event)
        run.finalize()
    except _REPORT_ERRORS as exc:
        console.print(f"[red]Reporting failed:[/red] {escape(str(exc))}")
        raise SystemExit(1) from exc

    aggregator = run.aggregator
    table = Table(title="Build Report", show_header=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Events", str(aggregator.events_seen))
    table.add_row("Test outcomes", str(len(aggregator.test_records)))
    table.add_row("Failed tests", str(len(aggregator.failed_tests)))
    table.add_row("Failed actions", str(len(aggregator.failed_actions)))
    console.print(table)


# ---------------------------------------------------------------------------
# upload-junit
# ---------------------------------------------------------------------------


@cli.command(name="upload-junit")
@click.argument("xml_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML plugin properties file.",
)
def upload_junit_command(xml_path: str, config_path: str | None) -> None:
    """Upload the JUnit XML report at XML_PATH to test analytics."""
    from bep_buildkite_bridge.analytics.uploader import AnalyticsUploader

    try:
        config = _load_config(config_path)
    except ConfigError as exc:
        console.print(f"[red]Invalid configuration:[/red] {escape(str(exc))}")
        raise SystemExit(1) from exc

    if not config.token:
        console.print(
            f"[yellow]Note:[/yellow] ${config.settings.buildkite_analytics_env_name} "
            "is not set; skipping upload."
        )
        return

    uploader = AnalyticsUploader(
        run_env=config.run_env,
        endpoint=config.settings.analytics_endpoint,
        timeout=config.settings.request_timeout,
    )
    try:
        uploader.upload_structured_file(config.token, xml_path)
    except (UploadError, OSError) as exc:
        console.print(f"[red]Upload failed:[/red] {escape(str(exc))}")
        raise SystemExit(1) from exc
    console.print(f"Uploaded [bold]{xml_path}[/bold].")


if __name__ == "__main__":
    cli()
