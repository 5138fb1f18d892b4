"""
Filter expression AST produced by the query compiler.

Persistence adapters translate these nodes into their native query form. The
builders below fold constants and flatten nested conjunctions/disjunctions so
adapters get the smallest equivalent tree.
"""

from dataclasses import dataclass
from typing import Any, Tuple, Union

from ..rules.models import ConditionOperator


@dataclass(frozen=True)
class Constant:
    value: bool


@dataclass(frozen=True)
class Comparison:
    field: str
    operator: ConditionOperator
    value: Any


@dataclass(frozen=True)
class Association:
    """The record(s) reached through ``name`` satisfy ``expr``."""
    name: str
    expr: "FilterExpr"


@dataclass(frozen=True)
class Fragment:
    """Opaque adapter-native fragment, passed through untouched."""
    text: str
    params: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class IsA:
    """The record is an instance of ``subject_type`` (or one of its subclasses)."""
    subject_type: type


@dataclass(frozen=True)
class And:
    children: Tuple["FilterExpr", ...]


@dataclass(frozen=True)
class Or:
    children: Tuple["FilterExpr", ...]


@dataclass(frozen=True)
class Not:
    child: "FilterExpr"


FilterExpr = Union[Constant, Comparison, Association, Fragment, IsA, And, Or, Not]

TRUE = Constant(True)
FALSE = Constant(False)


def and_(*exprs: FilterExpr) -> FilterExpr:
    children = []
    for expr in exprs:
        if expr == FALSE:
            return FALSE
        if expr == TRUE:
            continue
        if isinstance(expr, And):
            children.extend(expr.children)
        else:
            children.append(expr)
    if not children:
        return TRUE
    if len(children) == 1:
        return children[0]
    return And(tuple(children))


def or_(*exprs: FilterExpr) -> FilterExpr:
    children = []
    for expr in exprs:
        if expr == TRUE:
            return TRUE
        if expr == FALSE:
            continue
        if isinstance(expr, Or):
            children.extend(expr.children)
        else:
            children.append(expr)
    if not children:
        return FALSE
    if len(children) == 1:
        return children[0]
    return Or(tuple(children))


def not_(expr: FilterExpr) -> FilterExpr:
    if isinstance(expr, Constant):
        return Constant(not expr.value)
    if isinstance(expr, Not):
        return expr.child
    return Not(expr)


def is_constant(expr: FilterExpr, value: bool) -> bool:
    return isinstance(expr, Constant) and expr.value is value
