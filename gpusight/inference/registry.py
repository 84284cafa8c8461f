"""Ordered rule registry.

Rules are evaluated in registration order. The order only decides the order
of findings in the output; no default rule depends on another's result.

Usage:
    from gpusight.inference.registry import RULES

    for rule_cls in RULES.get_all_rules():
        print(rule_cls.name)

    rule_cls = RULES.get_rule("disk_bound")
"""

from __future__ import annotations

from gpusight.errors import GpusightError
from gpusight.inference.base import Rule


class RuleRegistryError(GpusightError):
    """Base exception for rule registry errors."""

    pass


class RuleNameCollisionError(RuleRegistryError):
    """Raised when two rules have the same name."""

    def __init__(self, name: str, rule1: type, rule2: type) -> None:
        self.name = name
        self.rule1 = rule1
        self.rule2 = rule2
        super().__init__(
            f"Rule name collision: '{name}' is defined by both "
            f"{rule1.__module__}.{rule1.__qualname__} and "
            f"{rule2.__module__}.{rule2.__qualname__}"
        )


class RuleNotFoundError(RuleRegistryError):
    """Raised when a requested rule is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Rule not found: '{name}'")


class RuleRegistry:
    """Registry of rule classes, kept in evaluation order.

    Raises RuleNameCollisionError if two rules share a name.
    """

    def __init__(self) -> None:
        self._rules: dict[str, type[Rule]] = {}

    def register(self, rule_cls: type[Rule]) -> type[Rule]:
        """Register a rule class; usable as a class decorator."""
        existing = self._rules.get(rule_cls.name)
        if existing is not None:
            if existing is not rule_cls:
                raise RuleNameCollisionError(rule_cls.name, existing, rule_cls)
            return rule_cls
        self._rules[rule_cls.name] = rule_cls
        return rule_cls

    def get_all_rules(self) -> list[type[Rule]]:
        """All registered rule classes in evaluation order."""
        return list(self._rules.values())

    def get_rule(self, name: str) -> type[Rule]:
        """Get a rule class by name.

        Raises:
            RuleNotFoundError: If no rule has that name.
        """
        if name not in self._rules:
            raise RuleNotFoundError(name)
        return self._rules[name]

    def names(self) -> list[str]:
        return list(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, name: str) -> bool:
        return name in self._rules


RULES = RuleRegistry()
register_rule = RULES.register
