"""Rule-based bottleneck inference over a Snapshot.

This module provides:
- Rule: Base class for diagnostic rules
- RuleRegistry: Ordered registration of rules (built-ins in ``rules``)
- InferenceEngine: Runs enabled rules and collects findings

Quick Start:
    from gpusight.inference import InferenceEngine

    findings = InferenceEngine(config.rules).run(snapshot)
"""

from gpusight.inference.base import Rule
from gpusight.inference.engine import InferenceEngine
from gpusight.inference.registry import (
    RULES,
    RuleNameCollisionError,
    RuleNotFoundError,
    RuleRegistry,
    RuleRegistryError,
)

__all__ = [
    "RULES",
    "InferenceEngine",
    "Rule",
    "RuleNameCollisionError",
    "RuleNotFoundError",
    "RuleRegistry",
    "RuleRegistryError",
]
