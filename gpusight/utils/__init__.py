"""gpusight utilities - logging and environment helpers."""

from gpusight.utils.env import EnvVarError, EnvVarTypeError, get_env
from gpusight.utils.logger import (
    Logger,
    LoggerNotConfiguredError,
    LogLevel,
    SourceLogAdapter,
)

__all__ = [
    # Env
    "EnvVarError",
    "EnvVarTypeError",
    "get_env",
    # Logger
    "LogLevel",
    "Logger",
    "LoggerNotConfiguredError",
    "SourceLogAdapter",
]
