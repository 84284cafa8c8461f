"""Inference engine: run the enabled rules over one snapshot."""

from __future__ import annotations

from gpusight.inference import rules as _builtin_rules  # noqa: F401
from gpusight.inference.base import Rule
from gpusight.inference.registry import RULES, RuleRegistry
from gpusight.models.config_models import RulesConfig
from gpusight.models.finding_models import Finding
from gpusight.models.snapshot_models import Snapshot
from gpusight.utils.logger import Logger


class InferenceEngine:
    """Evaluates registered rules in order and collects their findings.

    All findings are kept. Each rule receives the findings of the rules
    before it, so a future rule can aggregate or suppress; the engine
    itself never drops a finding.

    Args:
        config: Per-rule enable flags and thresholds.
        registry: Rule registry; defaults to the built-in rules.
    """

    def __init__(
        self, config: RulesConfig | None = None, registry: RuleRegistry | None = None
    ) -> None:
        self.config = config or RulesConfig()
        self.registry = registry or RULES
        self._logger = Logger.get("inference")

    def enabled_rules(self) -> list[Rule]:
        """Instances of the enabled rules in evaluation order."""
        return [
            rule_cls()
            for rule_cls in self.registry.get_all_rules()
            if self.config.for_rule(rule_cls.name).enabled
        ]

    def run(self, snapshot: Snapshot) -> tuple[Finding, ...]:
        findings: list[Finding] = []
        for rule in self.enabled_rules():
            if not rule.sources_usable(snapshot):
                self._logger.debug(f"Skipping {rule.name}: required source unavailable")
                continue
            config = self.config.for_rule(rule.name)
            finding = rule.check(snapshot, config, tuple(findings))
            if finding is not None:
                self._logger.info(
                    f"{rule.name}: {finding.severity} {finding.rationale}"
                )
                findings.append(finding)
        return tuple(findings)
