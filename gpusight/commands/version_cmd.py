"""Version command helper."""

import platform
from importlib import metadata

import click

from gpusight.version import GPUSIGHT_VERSION, source_fingerprint

# Distributions whose versions change what a snapshot can contain
_COLLECTION_STACK = ("psutil", "nvidia-ml-py", "pydantic", "click", "PyYAML")


def _installed(distribution: str) -> str:
    try:
        return metadata.version(distribution)
    except metadata.PackageNotFoundError:
        return "not installed"


def run_version(verbose: bool = False) -> None:
    """Print the gpusight version; with ``verbose`` also the collection stack."""
    if not verbose:
        click.echo(f"gpusight {GPUSIGHT_VERSION}")
        return

    click.echo(f"gpusight {GPUSIGHT_VERSION.describe()}")
    click.echo(f"  source sha256: {source_fingerprint()}")
    click.echo(f"  python:        {platform.python_version()}")
    for distribution in _COLLECTION_STACK:
        click.echo(f"  {distribution + ':':<14} {_installed(distribution)}")
