"""
Ability: the per-actor rule set and its query API.

Typical use is a subclass that declares rules for an actor::

    class UserAbility(Ability):
        def __init__(self, user):
            super().__init__()
            self.grant("read", Article, {"published": True})
            if user.admin:
                self.grant("manage", ALL)
            self.revoke("destroy", Article, {"locked": True})

Rules declared later win over earlier ones.
"""

import time
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from shared.config import AbilityConfig, get_config
from shared.errors import AccessDenied, ImplementationRemoved, describe_subject
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .rules.aliases import AliasRegistry
from .rules.conditions import initial_attributes, parse_conditions
from .rules.engine import RuleEngine
from .rules.models import ALL, Attributes, Decision, Rule, RuleBehavior, SubjectMatcher


# Options accepted by earlier releases and since dropped.
REMOVED_OPTIONS = ("name", "resource", "nested")


def reject_removed_options(options: Dict[str, Any]):
    """Raise ImplementationRemoved for legacy options, TypeError for unknown ones."""
    for option in options:
        if option in REMOVED_OPTIONS:
            raise ImplementationRemoved(option)
    if options:
        raise TypeError(f"unexpected options: {', '.join(sorted(options))}")


def _normalize_actions(actions: Any) -> FrozenSet[str]:
    if isinstance(actions, str):
        actions = (actions,)
    if not isinstance(actions, (list, tuple, set, frozenset)) or not actions:
        raise TypeError(f"actions must be a string or a non-empty collection of strings, got {actions!r}")
    for action in actions:
        if not isinstance(action, str) or not action:
            raise TypeError(f"action must be a non-empty string, got {action!r}")
    return frozenset(actions)


def _normalize_subject(subject: Any) -> SubjectMatcher:
    if subject is ALL or subject == "all":
        return ALL
    if isinstance(subject, type):
        return subject
    if isinstance(subject, str) and subject:
        return subject
    raise TypeError(f"subject must be a class, a symbolic name or ALL, got {subject!r}")


def _normalize_subjects(subjects: Any) -> Tuple[SubjectMatcher, ...]:
    if isinstance(subjects, (list, tuple, set, frozenset)):
        if not subjects:
            raise TypeError("subjects must not be empty")
        return tuple(_normalize_subject(s) for s in subjects)
    return (_normalize_subject(subjects),)


def _normalize_attributes(attributes: Any) -> Optional[FrozenSet[str]]:
    if attributes is None:
        return None
    if isinstance(attributes, str):
        attributes = (attributes,)
    if not all(isinstance(a, str) and a for a in attributes):
        raise TypeError(f"attributes must be attribute names, got {attributes!r}")
    return frozenset(attributes)


class Ability:
    """Grant/revoke registration plus can/cannot/authorize queries."""

    def __init__(self, config: Optional[AbilityConfig] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.config = config or get_config()
        self.logger = get_logger("abilities.ability")
        self.metrics = metrics
        self.aliases = AliasRegistry()
        self.engine = RuleEngine(self.aliases, log_decisions=self.config.log_decisions)

    @property
    def rules(self) -> Tuple[Rule, ...]:
        return tuple(self.engine.rules)

    # Registration

    def grant(self, actions: Any, subjects: Any, conditions: Any = None,
              block: Optional[Callable[[Any], bool]] = None, *,
              attributes: Any = None, **options) -> Rule:
        """Allow ``actions`` on ``subjects``, optionally under ``conditions``."""
        return self._add_rule(RuleBehavior.GRANT, actions, subjects, conditions, block, attributes, options)

    def revoke(self, actions: Any, subjects: Any, conditions: Any = None,
               block: Optional[Callable[[Any], bool]] = None, *,
               attributes: Any = None, **options) -> Rule:
        """Forbid ``actions`` on ``subjects``, optionally under ``conditions``."""
        return self._add_rule(RuleBehavior.REVOKE, actions, subjects, conditions, block, attributes, options)

    def _add_rule(self, behavior: RuleBehavior, actions: Any, subjects: Any, conditions: Any,
                  block: Optional[Callable[[Any], bool]], attributes: Any,
                  options: Dict[str, Any]) -> Rule:
        reject_removed_options(options)
        if block is not None and not callable(block):
            raise TypeError(f"block must be callable, got {block!r}")
        condition = parse_conditions(conditions)
        if block is not None and isinstance(condition, Attributes):
            # Only a raw fragment may accompany a block, for bulk queries.
            raise TypeError("a rule cannot combine a block with attribute conditions")
        rule = Rule(
            behavior=behavior,
            actions=_normalize_actions(actions),
            subjects=_normalize_subjects(subjects),
            condition=condition,
            block=block,
            attributes=_normalize_attributes(attributes)
        )
        return self.engine.add_rule(rule)

    def alias_action(self, *actions: str, to: str):
        """Make ``to`` stand for ``actions`` in rule declarations."""
        self.aliases.alias_action(*actions, to=to)

    def aliased_actions(self) -> Dict[str, List[str]]:
        return self.aliases.aliased_actions()

    def clear_aliased_actions(self):
        self.aliases.clear()

    def merge(self, other: "Ability") -> "Ability":
        """Append another ability's rules and aliases after this one's."""
        for target, actions in other.aliased_actions().items():
            if actions:
                self.aliases.alias_action(*actions, to=target)
        for rule in other.rules:
            self.engine.add_rule(rule)
        return self

    # Queries

    def resolve(self, action: str, subject: Any, attribute: Optional[str] = None) -> Decision:
        """Full decision including the matching rule."""
        start_time = time.time()
        decision = self.engine.resolve(action, subject, attribute)
        if self.metrics is not None:
            self.metrics.record_check(decision.allowed, time.time() - start_time)
        return decision

    def can(self, action: str, subject: Any, attribute: Optional[str] = None) -> bool:
        """Whether ``action`` is allowed on ``subject`` (instance, class or name)."""
        return self.resolve(action, subject, attribute).allowed

    def cannot(self, action: str, subject: Any, attribute: Optional[str] = None) -> bool:
        return not self.can(action, subject, attribute)

    def authorize(self, action: str, subject: Any, attribute: Optional[str] = None,
                  message: Optional[str] = None) -> Any:
        """Return ``subject`` if allowed, raise AccessDenied otherwise."""
        if self.can(action, subject, attribute):
            return subject

        self.logger.info(
            "Access denied",
            action=action,
            subject=describe_subject(subject),
            attribute=attribute
        )
        raise AccessDenied(
            message or self.unauthorized_message(action, subject),
            action=action,
            subject=subject,
            attribute=attribute
        )

    def unauthorized_message(self, action: str, subject: Any) -> str:
        return self.config.access_denied_message

    def relevant_rules(self, action: str, subject: Any, attribute: Optional[str] = None) -> List[Rule]:
        """Rules that apply to the query, in declaration order."""
        return [rule for _, rule in self.engine.relevant_rules(action, subject, attribute)]

    def has_block(self, action: str, subject: Any) -> bool:
        return any(rule.has_block for rule in self.relevant_rules(action, subject))

    def attributes_for(self, action: str, subject_type: Any) -> Dict[str, Any]:
        """Initial attributes for a new instance, later rules winning."""
        attributes: Dict[str, Any] = {}
        for rule in self.relevant_rules(action, subject_type):
            if rule.base_behavior and rule.block is None:
                attributes.update(initial_attributes(rule.condition))
        return attributes

    def permissions(self) -> Dict[str, Dict[str, List[str]]]:
        """Actions per subject, split into granted and revoked, for display."""
        listing: Dict[str, Dict[str, List[str]]] = {"grant": {}, "revoke": {}}
        for rule in self.engine.rules:
            bucket = listing[rule.behavior.value]
            for subject in rule.subjects:
                name = "all" if subject is ALL else describe_subject(subject)
                actions = bucket.setdefault(name, [])
                actions.extend(a for a in sorted(rule.actions) if a not in actions)
        return listing
