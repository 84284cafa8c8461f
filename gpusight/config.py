"""Configuration loading: YAML file, environment overrides, CLI overrides.

Precedence (lowest to highest): built-in defaults, the YAML file named by
``--config`` or ``GPUSIGHT_CONFIG``, ``GPUSIGHT_TIMEOUT``, then CLI flags.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from gpusight.errors import ConfigError
from gpusight.inference.registry import RULES, RuleNotFoundError
from gpusight.models.config_models import MonitorConfig
from gpusight.models.constants import MetricSource
from gpusight.utils.env import EnvVarTypeError, get_env


def _validate(data: Mapping[str, Any], origin: str) -> MonitorConfig:
    try:
        return MonitorConfig.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(f"Invalid configuration in {origin}: {problems}") from e


def load_config(path: str | Path | None = None) -> MonitorConfig:
    """Load a MonitorConfig.

    Args:
        path: YAML file; defaults to ``GPUSIGHT_CONFIG``, then to built-in
            defaults when neither is set.

    Raises:
        ConfigError: If the file is missing, not YAML, or fails validation.
    """
    if path is None:
        path = get_env("GPUSIGHT_CONFIG")

    data: dict[str, Any] = {}
    origin = "defaults"
    if path:
        config_path = Path(path)
        origin = str(config_path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        try:
            with open(config_path) as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Error parsing config {config_path}: {e}") from e
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config must be a YAML mapping: {config_path}")
        data = loaded

    config = _validate(data, origin)

    try:
        timeout = get_env("GPUSIGHT_TIMEOUT", as_type=float)
    except EnvVarTypeError as e:
        raise ConfigError(str(e)) from e
    if timeout is not None:
        config = with_overrides(config, timeout_seconds=timeout)
    return config


def with_overrides(
    config: MonitorConfig,
    enabled: Mapping[MetricSource, bool] | None = None,
    disabled_rules: Iterable[str] = (),
    timeout_seconds: float | None = None,
) -> MonitorConfig:
    """Return a copy of ``config`` with CLI-style overrides applied.

    Args:
        enabled: Per-source enable flags; sources not listed keep their setting.
        disabled_rules: Rule names to disable.
        timeout_seconds: Timeout applied to every source.

    Raises:
        ConfigError: If a rule name is unknown or a value is invalid.
    """
    data = config.model_dump()
    for source, flag in (enabled or {}).items():
        data["sources"][source]["enabled"] = flag
    if timeout_seconds is not None:
        for source_config in data["sources"].values():
            source_config["timeout_seconds"] = timeout_seconds
    for name in disabled_rules:
        try:
            RULES.get_rule(name)
        except RuleNotFoundError as e:
            known = ", ".join(RULES.names())
            raise ConfigError(f"{e} (known rules: {known})") from e
        data["rules"][name]["enabled"] = False
    return _validate(data, "overrides")
