"""Typed lookups of ``GPUSIGHT_*`` environment variables.

Variables read by gpusight:
    GPUSIGHT_CONFIG      path of the YAML config file
    GPUSIGHT_TIMEOUT     per-source timeout in seconds (float)
    GPUSIGHT_LOG_LEVEL   DEBUG, INFO, WARNING, ERROR or CRITICAL
"""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

from gpusight.errors import GpusightError

_FALSE_VALUES = frozenset({"false", "0", "", "no", "off"})


class EnvVarError(GpusightError):
    """Base exception for environment variable errors."""


class EnvVarTypeError(EnvVarError):
    """A variable is set but its value does not convert to the wanted type."""

    def __init__(self, name: str, value: str, expected_type: type) -> None:
        self.name = name
        self.value = value
        self.expected_type = expected_type
        super().__init__(
            f"{name}={value!r} is not a valid {expected_type.__name__}"
        )


def _as_bool(value: str) -> bool:
    return value.strip().lower() not in _FALSE_VALUES


def _as_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


_CONVERTERS: dict[type, Callable[[str], Any]] = {bool: _as_bool, list: _as_list}


def get_env(
    name: str,
    *,
    default: Any = None,
    as_type: type | None = None,
    log: bool = False,
) -> Any:
    """Read ``name`` from the environment, converting it when asked.

    ``as_type`` may be bool, list (comma separated) or any callable type
    such as int or float. An unset variable returns ``default`` unconverted.

    Raises:
        EnvVarTypeError: If the value does not convert.
    """
    value = os.environ.get(name)
    if log:
        from gpusight.utils.logger import Logger

        if Logger.is_configured():
            Logger.get("env").debug(f"{name}={value!r}")

    if value is None or as_type is None:
        return default if value is None else value

    convert = _CONVERTERS.get(as_type, as_type)
    try:
        return convert(value)
    except (ValueError, TypeError) as e:
        raise EnvVarTypeError(name, value, as_type) from e
