"""
Rule data models for the Ability Layer.
"""

from typing import Any, Callable, FrozenSet, Optional, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum


class RuleBehavior(str, Enum):
    """Rule polarity."""
    GRANT = "grant"
    REVOKE = "revoke"


class ConditionOperator(str, Enum):
    """Attribute condition operators."""
    EQUALS = "eq"
    NOT_EQUALS = "ne"
    GREATER_THAN = "gt"
    GREATER_OR_EQUAL = "gte"
    LESS_THAN = "lt"
    LESS_OR_EQUAL = "lte"
    IN = "in"
    NOT_IN = "not_in"
    LIKE = "like"
    NOT_LIKE = "not_like"
    NESTED = "nested"


# Suffixes accepted in condition keys, e.g. {"priority__gt": 3}
OPERATOR_SUFFIXES = {
    "eq": ConditionOperator.EQUALS,
    "ne": ConditionOperator.NOT_EQUALS,
    "not_eq": ConditionOperator.NOT_EQUALS,
    "gt": ConditionOperator.GREATER_THAN,
    "gte": ConditionOperator.GREATER_OR_EQUAL,
    "lt": ConditionOperator.LESS_THAN,
    "lte": ConditionOperator.LESS_OR_EQUAL,
    "in": ConditionOperator.IN,
    "nin": ConditionOperator.NOT_IN,
    "not_in": ConditionOperator.NOT_IN,
    "like": ConditionOperator.LIKE,
    "nlike": ConditionOperator.NOT_LIKE,
    "not_like": ConditionOperator.NOT_LIKE,
}


class _AllSubjects:
    """Wildcard subject matcher."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ALL"

    def __reduce__(self):
        return (_AllSubjects, ())


ALL = _AllSubjects()

SubjectMatcher = Union[type, str, _AllSubjects]


@dataclass(frozen=True)
class AttributeCondition:
    """One attribute test; ``value`` holds nested conditions for NESTED."""
    field: str
    operator: ConditionOperator
    value: Any
    description: Optional[str] = None


@dataclass(frozen=True)
class Always:
    """Condition that holds for every subject."""


@dataclass(frozen=True)
class Attributes:
    """Conjunction of attribute conditions."""
    conditions: Tuple[AttributeCondition, ...]


@dataclass(frozen=True)
class RawFragment:
    """Opaque query fragment, only meaningful to a persistence adapter."""
    text: str
    params: Tuple[Any, ...] = ()


Condition = Union[Always, Attributes, RawFragment]

ALWAYS = Always()


@dataclass(frozen=True)
class Rule:
    """One grant or revoke declaration."""
    behavior: RuleBehavior
    actions: FrozenSet[str]
    subjects: Tuple[SubjectMatcher, ...]
    condition: Condition = ALWAYS
    block: Optional[Callable[[Any], bool]] = field(default=None, compare=False)
    attributes: Optional[FrozenSet[str]] = None

    @property
    def base_behavior(self) -> bool:
        return self.behavior == RuleBehavior.GRANT

    @property
    def has_block(self) -> bool:
        return self.block is not None

    @property
    def is_conditional(self) -> bool:
        """True when the outcome depends on the subject instance."""
        return self.block is not None or not isinstance(self.condition, Always)

    @property
    def is_compilable(self) -> bool:
        """A block with no declarative condition needs a materialized instance."""
        return not (self.block is not None and isinstance(self.condition, Always))


@dataclass
class Decision:
    """Result of resolving one query."""
    allowed: bool
    action: str
    subject: Any
    attribute: Optional[str] = None
    rule: Optional[Rule] = None
    rule_index: Optional[int] = None
