"""Raw source adapters: run diagnostic tools and capture their output."""

from gpusight.adapters.base import SourceAdapter
from gpusight.adapters.command import CommandAdapter, run_command
from gpusight.adapters.factory import build_adapter, build_adapters

__all__ = [
    "CommandAdapter",
    "SourceAdapter",
    "build_adapter",
    "build_adapters",
    "run_command",
]
