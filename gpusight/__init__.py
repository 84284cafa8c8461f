"""gpusight - snapshot and bottleneck diagnosis for GPU compute hosts."""

from gpusight.version import GPUSIGHT_VERSION, Version

__version__ = str(GPUSIGHT_VERSION)
__version_info__ = GPUSIGHT_VERSION

__all__ = [
    "GPUSIGHT_VERSION",
    "Version",
    "__version__",
    "__version_info__",
]
