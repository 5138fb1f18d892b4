"""
Condition parsing and instance-mode matching.

Rule conditions arrive in loose, user-friendly shapes (a dict of expected
attribute values, a raw query fragment, a list of ``AttributeCondition``) and
are normalized here into the ``Always | Attributes | RawFragment`` variants
the resolver and the filter compiler understand.

Dict keys may carry an operator suffix::

    {"published": True}                  # equality
    {"priority__gt": 3}                  # comparison
    {"state": ["draft", "review"]}       # membership
    {"article": {"published": True}}     # nested, one association hop

Matching reads attributes through ``read_attribute`` which dispatches on the
subject type, so new subject kinds can plug in their own accessor.
"""

import re
from collections.abc import Mapping
from functools import lru_cache, singledispatch
from typing import Any, Dict, Iterable, Optional, Tuple

from shared.errors import UnsupportedOperation
from .models import (
    ALWAYS, Always, Attributes, AttributeCondition, Condition,
    ConditionOperator, OPERATOR_SUFFIXES, RawFragment
)


COLLECTION_TYPES = (list, tuple, set, frozenset)

ORDERED_OPERATORS = (
    ConditionOperator.GREATER_THAN,
    ConditionOperator.GREATER_OR_EQUAL,
    ConditionOperator.LESS_THAN,
    ConditionOperator.LESS_OR_EQUAL,
)


@singledispatch
def read_attribute(subject: Any, name: str) -> Any:
    """Read a named attribute of a subject; missing attributes read as None."""
    return getattr(subject, name, None)


@read_attribute.register(Mapping)
def _read_mapping_attribute(subject: Mapping, name: str) -> Any:
    return subject.get(name)


def is_collection(value: Any) -> bool:
    return isinstance(value, COLLECTION_TYPES)


def parse_conditions(conditions: Any) -> Condition:
    """Normalize user supplied conditions into a Condition variant."""
    if conditions is None:
        return ALWAYS
    if isinstance(conditions, (Always, Attributes, RawFragment)):
        return conditions
    if isinstance(conditions, AttributeCondition):
        return Attributes((conditions,))
    if isinstance(conditions, Mapping):
        if not conditions:
            return ALWAYS
        return Attributes(_parse_mapping(conditions))
    if isinstance(conditions, str):
        return RawFragment(conditions)
    if isinstance(conditions, (list, tuple)):
        if not conditions:
            return ALWAYS
        if isinstance(conditions[0], str):
            # ["secret = ?", True]
            return RawFragment(conditions[0], tuple(conditions[1:]))
        if all(isinstance(c, AttributeCondition) for c in conditions):
            return Attributes(tuple(conditions))
    raise TypeError(f"unsupported rule conditions: {conditions!r}")


def _split_key(key: str) -> Tuple[str, Optional[ConditionOperator]]:
    if "__" in key:
        field, suffix = key.rsplit("__", 1)
        if field and suffix in OPERATOR_SUFFIXES:
            return field, OPERATOR_SUFFIXES[suffix]
    return key, None


def _parse_mapping(mapping: Mapping) -> Tuple[AttributeCondition, ...]:
    parsed = []
    for key, value in mapping.items():
        if not isinstance(key, str) or not key:
            raise TypeError(f"condition keys must be attribute names, got {key!r}")
        field, operator = _split_key(key)
        if operator is None:
            if isinstance(value, Mapping):
                operator, value = ConditionOperator.NESTED, _parse_mapping(value)
            elif is_collection(value):
                operator, value = ConditionOperator.IN, tuple(value)
            else:
                operator = ConditionOperator.EQUALS
        elif operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
            if not is_collection(value):
                raise TypeError(f"{key!r} expects a collection, got {value!r}")
            value = tuple(value)
        elif operator in ORDERED_OPERATORS:
            if value is None or isinstance(value, Mapping) or is_collection(value):
                raise TypeError(f"{key!r} expects a single comparable value, got {value!r}")
        parsed.append(AttributeCondition(field=field, operator=operator, value=value))
    return tuple(parsed)


@lru_cache(maxsize=256)
def like_pattern(pattern: str) -> "re.Pattern":
    """Translate a SQL LIKE pattern into a compiled regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def compare(actual: Any, operator: ConditionOperator, expected: Any) -> bool:
    """Apply a scalar operator with SQL-style null handling."""
    if operator == ConditionOperator.EQUALS:
        if is_collection(actual) and not is_collection(expected):
            return expected in actual
        return actual == expected

    if operator == ConditionOperator.NOT_EQUALS:
        if expected is None:
            return actual is not None
        if actual is None:
            return False
        return actual != expected

    if actual is None:
        return False

    if operator == ConditionOperator.IN:
        return actual in expected
    if operator == ConditionOperator.NOT_IN:
        return actual not in expected

    if operator == ConditionOperator.LIKE:
        return like_pattern(str(expected)).fullmatch(str(actual)) is not None
    if operator == ConditionOperator.NOT_LIKE:
        return like_pattern(str(expected)).fullmatch(str(actual)) is None

    if expected is None:
        return False
    try:
        if operator == ConditionOperator.GREATER_THAN:
            return actual > expected
        if operator == ConditionOperator.GREATER_OR_EQUAL:
            return actual >= expected
        if operator == ConditionOperator.LESS_THAN:
            return actual < expected
        if operator == ConditionOperator.LESS_OR_EQUAL:
            return actual <= expected
    except TypeError as e:
        # Mismatched types are a rule declaration error, never a denial.
        raise TypeError(
            f"{operator.value!r} cannot order {type(actual).__name__} {actual!r} "
            f"against {type(expected).__name__} {expected!r}"
        ) from e

    raise UnsupportedOperation(f"operator {operator.value!r} is not a scalar comparison")


def matches_attribute(subject: Any, condition: AttributeCondition) -> bool:
    """Evaluate one attribute condition against a subject."""
    actual = read_attribute(subject, condition.field)
    if condition.operator == ConditionOperator.NESTED:
        if actual is None:
            return False
        if is_collection(actual):
            return any(matches_all(item, condition.value) for item in actual)
        return matches_all(actual, condition.value)
    return compare(actual, condition.operator, condition.value)


def matches_all(subject: Any, conditions: Iterable[AttributeCondition]) -> bool:
    return all(matches_attribute(subject, condition) for condition in conditions)


def evaluate(condition: Condition, subject: Any) -> bool:
    """Evaluate a rule condition against a concrete instance."""
    if isinstance(condition, Always):
        return True
    if isinstance(condition, Attributes):
        return matches_all(subject, condition.conditions)
    if isinstance(condition, RawFragment):
        raise UnsupportedOperation(
            "raw query fragments can only be used to build a query filter; "
            "declare the rule with a block to check instances",
            {"fragment": condition.text}
        )
    raise TypeError(f"unknown condition {condition!r}")


def initial_attributes(condition: Condition) -> Dict[str, Any]:
    """Equality conditions usable to pre-populate a new instance."""
    if not isinstance(condition, Attributes):
        return {}
    return {
        c.field: c.value
        for c in condition.conditions
        if c.operator == ConditionOperator.EQUALS
    }
