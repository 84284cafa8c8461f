#!/usr/bin/env python3
"""gpusight CLI - snapshot and bottleneck diagnosis for GPU compute hosts."""

import click

from gpusight.errors import ConfigError
from gpusight.models.constants import MetricSource
from gpusight.utils.logger import Logger


@click.group()
def gpusight():
    """gpusight command-line tool for GPU host diagnostics."""
    # Configure logger at startup if not already configured
    if not Logger.is_configured():
        # stderr, so --format json stays parseable
        Logger.configure_from_env(default="WARNING")


@gpusight.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML config file (default: $GPUSIGHT_CONFIG)",
)
@click.option("--gpu/--no-gpu", default=None, help="Collect accelerator metrics")
@click.option(
    "--processes/--no-processes", default=None, help="Collect the OS process listing"
)
@click.option("--disk/--no-disk", default=None, help="Collect disk metrics")
@click.option("--network/--no-network", default=None, help="Collect network metrics")
@click.option("--host/--no-host", default=None, help="Collect host CPU/RAM metrics")
@click.option(
    "--disable-rule",
    "disabled_rules",
    multiple=True,
    help="Rule to skip (repeatable; see 'gpusight rules')",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-source timeout in seconds (default: 10 or $GPUSIGHT_TIMEOUT)",
)
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    help="Output format",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def snapshot(
    config_path,
    gpu,
    processes,
    disk,
    network,
    host,
    disabled_rules,
    timeout,
    fmt,
    verbose,
):
    r"""Collect one snapshot and report likely bottlenecks.

    \b
    Examples:
      gpusight snapshot                       # All sources, text report
      gpusight snapshot --no-network -f json  # Skip network, JSON output
      gpusight snapshot --disable-rule host_bound
      gpusight snapshot --config gpusight.yaml
    """
    from gpusight.commands.snapshot_cmd import run_snapshot
    from gpusight.config import load_config, with_overrides

    if verbose:
        Logger.set_level("DEBUG")

    flags = {
        MetricSource.ACCELERATOR: gpu,
        MetricSource.PROCESS_COMPUTE: processes,
        MetricSource.DISK: disk,
        MetricSource.NETWORK: network,
        MetricSource.HOST: host,
    }
    enabled = {source: flag for source, flag in flags.items() if flag is not None}
    try:
        config = load_config(config_path)
        config = with_overrides(
            config,
            enabled=enabled,
            disabled_rules=disabled_rules,
            timeout_seconds=timeout,
        )
        run_snapshot(config, output_format=fmt.lower())
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


@gpusight.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML config file, to show which rules it disables",
)
def rules(config_path):
    """List inference rules in evaluation order."""
    from gpusight.config import load_config
    from gpusight.inference import RULES

    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    for rule_cls in RULES.get_all_rules():
        enabled = config.rules.for_rule(rule_cls.name).enabled
        sources = ", ".join(source.value for source in rule_cls.required_sources)
        state = "" if enabled else " (disabled)"
        click.echo(
            f"{rule_cls.name:<22} {rule_cls.severity.value:<9} "
            f"[{sources}] {rule_cls.description}{state}"
        )


@gpusight.command()
@click.option("--verbose", "-v", is_flag=True, help="Show detailed version information")
def version(verbose):
    """Display gpusight version information."""
    from gpusight.commands.version_cmd import run_version

    if verbose:
        Logger.set_level("DEBUG")

    run_version(verbose=verbose)


if __name__ == "__main__":
    gpusight()
