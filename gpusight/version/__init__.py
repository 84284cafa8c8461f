"""Package version."""

from gpusight.version.gpusight_version import (
    GPUSIGHT_VERSION,
    Version,
    source_fingerprint,
)

__all__ = ["GPUSIGHT_VERSION", "Version", "source_fingerprint"]
