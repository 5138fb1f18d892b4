"""
Rule resolution engine for the Ability Layer.
"""

from typing import Any, List, Optional, Tuple

from shared.logging import get_logger
from shared.errors import describe_subject
from . import conditions
from .aliases import AliasRegistry
from .models import ALL, Decision, Rule


def is_class_level(subject: Any) -> bool:
    """Classes and symbolic names stand for "some instance", not a concrete one."""
    return isinstance(subject, (type, str))


class RuleEngine:
    """Ordered rule list plus the most-recent-wins resolution algorithm."""

    def __init__(self, aliases: Optional[AliasRegistry] = None, log_decisions: bool = True):
        self.logger = get_logger("abilities.rule_engine")
        self.aliases = aliases or AliasRegistry()
        self.log_decisions = log_decisions
        self.rules: List[Rule] = []

    def add_rule(self, rule: Rule) -> Rule:
        """Append a rule; it takes precedence over every earlier one."""
        self.rules.append(rule)
        self.logger.debug(
            "Rule added",
            index=len(self.rules) - 1,
            behavior=rule.behavior.value,
            actions=sorted(rule.actions),
            subjects=[describe_subject(s) if s is not ALL else "all" for s in rule.subjects]
        )
        return rule

    def matches_action(self, rule: Rule, action: str) -> bool:
        return self.aliases.matches(rule.actions, action)

    def matches_subject(self, rule: Rule, subject: Any) -> bool:
        for matcher in rule.subjects:
            if matcher is ALL:
                return True
            if isinstance(matcher, str):
                if isinstance(subject, str) and subject == matcher:
                    return True
            elif isinstance(subject, type):
                if issubclass(subject, matcher):
                    return True
            elif not isinstance(subject, str) and isinstance(subject, matcher):
                return True
        return False

    @staticmethod
    def matches_attribute(rule: Rule, attribute: Optional[str]) -> bool:
        return attribute is None or rule.attributes is None or attribute in rule.attributes

    def is_relevant(self, rule: Rule, action: str, subject: Any, attribute: Optional[str] = None) -> bool:
        """Everything but the instance-dependent condition test."""
        return (
            self.matches_action(rule, action)
            and self.matches_subject(rule, subject)
            and self.matches_attribute(rule, attribute)
        )

    def relevant_rules(self, action: str, subject: Any,
                       attribute: Optional[str] = None) -> List[Tuple[int, Rule]]:
        """Relevant rules with their declaration index, in declaration order."""
        return [
            (index, rule) for index, rule in enumerate(self.rules)
            if self.is_relevant(rule, action, subject, attribute)
        ]

    def matches_conditions(self, rule: Rule, subject: Any) -> bool:
        """Condition test for one relevant rule."""
        if is_class_level(subject):
            # A conditional grant means some instance may pass; a conditional
            # revoke cannot deny the whole class.
            return rule.base_behavior if rule.is_conditional else True
        if rule.block is not None:
            return bool(rule.block(subject))
        return conditions.evaluate(rule.condition, subject)

    def resolve(self, action: str, subject: Any, attribute: Optional[str] = None) -> Decision:
        """Scan rules newest first; the first match decides, no match denies."""
        for index in range(len(self.rules) - 1, -1, -1):
            rule = self.rules[index]
            if not self.is_relevant(rule, action, subject, attribute):
                continue
            if self.matches_conditions(rule, subject):
                decision = Decision(
                    allowed=rule.base_behavior,
                    action=action,
                    subject=subject,
                    attribute=attribute,
                    rule=rule,
                    rule_index=index
                )
                self._log_decision(decision, "Rule matched")
                return decision

        decision = Decision(allowed=False, action=action, subject=subject, attribute=attribute)
        self._log_decision(decision, "No rule matched")
        return decision

    def _log_decision(self, decision: Decision, reason: str):
        if not self.log_decisions:
            return
        self.logger.debug(
            reason,
            action=decision.action,
            subject=describe_subject(decision.subject),
            attribute=decision.attribute,
            allowed=decision.allowed,
            rule_index=decision.rule_index
        )

    def get_engine_stats(self):
        """Get engine statistics."""
        return {
            "total_rules": len(self.rules),
            "grants": len([r for r in self.rules if r.base_behavior]),
            "revokes": len([r for r in self.rules if not r.base_behavior]),
            "block_rules": len([r for r in self.rules if r.has_block]),
            "aliases": self.aliases.aliased_actions(),
        }
