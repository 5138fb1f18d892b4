"""
Query filter compiler: turns an ability's rules into a bulk filter.
"""

from typing import Any, List, Optional, Tuple, TYPE_CHECKING

from shared.errors import Uncompilable, describe_subject
from shared.logging import get_logger
from ..rules.models import (
    ALL, Always, AttributeCondition, Attributes, Condition, ConditionOperator, RawFragment, Rule
)
from .filters import (
    FALSE, TRUE, Association, Comparison, FilterExpr, Fragment, IsA, and_, not_, or_
)

if TYPE_CHECKING:
    from ..ability import Ability
    from ..persistence.base import PersistenceAdapter


class QueryFilterCompiler:
    """Builds the filter selecting every record ``ability.can`` would allow.

    Relevant rules are folded in declaration order: a grant widens the
    accumulated filter (``cond OR acc``), a revoke narrows it
    (``NOT cond AND acc``). Folding forward this way gives the same answer as
    scanning backwards for the first matching rule, because each step makes the
    newest rule decide wherever its condition holds.

    A query for a class also returns records of its subclasses, so rules
    declared on a subclass take part too, guarded by an ``IsA`` test.
    """

    def __init__(self, ability: "Ability"):
        self.ability = ability
        self.logger = get_logger("abilities.query_compiler")

    def scoped_rules(self, action: str, subject_type: type,
                     attribute: Optional[str] = None) -> List[Tuple[int, Rule, FilterExpr]]:
        """Rules that can decide for some record of ``subject_type``, with their type guard."""
        engine = self.ability.engine
        scoped = []
        for index, rule in enumerate(engine.rules):
            if not (engine.matches_action(rule, action) and engine.matches_attribute(rule, attribute)):
                continue
            guard = self.subject_filter(rule, subject_type)
            if guard != FALSE:
                scoped.append((index, rule, guard))
        return scoped

    @staticmethod
    def subject_filter(rule: Rule, subject_type: type) -> FilterExpr:
        guards = []
        for matcher in rule.subjects:
            if matcher is ALL:
                return TRUE
            if not (isinstance(matcher, type) and isinstance(subject_type, type)):
                continue
            if issubclass(subject_type, matcher):
                return TRUE
            if issubclass(matcher, subject_type):
                guards.append(IsA(matcher))
        return or_(*guards)

    def compile(self, action: str, subject_type: Any, attribute: Optional[str] = None) -> FilterExpr:
        scoped = self.scoped_rules(action, subject_type, attribute)

        # Rules before the newest unconditional one can never decide anything.
        start = 0
        expr: FilterExpr = FALSE
        for position in range(len(scoped) - 1, -1, -1):
            _, rule, guard = scoped[position]
            if guard == TRUE and rule.block is None and isinstance(rule.condition, Always):
                expr = TRUE if rule.base_behavior else FALSE
                start = position + 1
                break

        for index, rule, guard in scoped[start:]:
            if not rule.is_compilable:
                self._record("uncompilable")
                raise Uncompilable(
                    f"Unable to build a filter for {action} on {describe_subject(subject_type)}: "
                    f"rule {index} is defined with a block only",
                    {"action": action, "subject": describe_subject(subject_type), "rule_index": index}
                )
            condition = and_(guard, self.condition_filter(rule.condition))
            if rule.base_behavior:
                expr = or_(condition, expr)
            else:
                expr = and_(not_(condition), expr)

        self._record("ok")
        self.logger.debug(
            "Filter compiled",
            action=action,
            subject=describe_subject(subject_type),
            rules=len(scoped),
            consulted=len(scoped) - start
        )
        return expr

    def condition_filter(self, condition: Condition) -> FilterExpr:
        if isinstance(condition, Always):
            return TRUE
        if isinstance(condition, RawFragment):
            return Fragment(condition.text, condition.params)
        if isinstance(condition, Attributes):
            return and_(*[self._attribute_filter(c) for c in condition.conditions])
        raise TypeError(f"unknown condition {condition!r}")

    def _attribute_filter(self, condition: AttributeCondition) -> FilterExpr:
        if condition.operator == ConditionOperator.NESTED:
            return Association(
                condition.field,
                and_(*[self._attribute_filter(c) for c in condition.value])
            )
        return Comparison(condition.field, condition.operator, condition.value)

    def _record(self, status: str):
        if self.ability.metrics is not None:
            self.ability.metrics.record_compilation(status)


def accessible_by(ability: "Ability", persistence: "PersistenceAdapter", subject_type: type,
                  action: str = "index", attribute: Optional[str] = None,
                  fallback: Optional[bool] = None) -> List[Any]:
    """Fetch every ``subject_type`` record the ability allows ``action`` on.

    When the rules cannot be compiled and ``fallback`` is on, every record is
    fetched and checked one by one instead.
    """
    if fallback is None:
        fallback = ability.config.bulk_fallback

    try:
        expr = QueryFilterCompiler(ability).compile(action, subject_type, attribute)
    except Uncompilable as e:
        if not fallback:
            raise
        ability.logger.warning(
            "Falling back to per-record checks",
            action=action,
            subject=describe_subject(subject_type),
            reason=e.reason
        )
        return [
            record for record in persistence.all(subject_type)
            if ability.can(action, record, attribute)
        ]

    return persistence.execute_filter(subject_type, expr)
