"""
In-memory persistence adapter.

Stores plain Python objects in insertion order and evaluates filter expressions with
the same comparison semantics the condition matcher uses, which makes it the
reference store for checking bulk results against per-instance checks.

Raw fragments have no native meaning here; a test or embedding application
registers a predicate per fragment text with ``register_fragment``.
"""

import itertools
from typing import Any, Callable, Dict, List, Optional

from shared.errors import RecordNotFound, UnsupportedOperation
from shared.logging import get_logger
from ..query.filters import And, Association, Comparison, Constant, FilterExpr, Fragment, IsA, Not, Or
from ..rules.conditions import compare, is_collection, read_attribute
from .base import PersistenceAdapter


class InMemoryPersistence(PersistenceAdapter):
    """Insertion-ordered object store."""

    def __init__(self, fragments: Optional[Dict[str, Callable[..., bool]]] = None):
        self.logger = get_logger("abilities.persistence.memory")
        self._records: List[Any] = []
        self._ids = itertools.count(1)
        self._fragments: Dict[str, Callable[..., bool]] = dict(fragments or {})

    def register_fragment(self, text: str, predicate: Callable[..., bool]):
        """Execute fragment ``text`` as ``predicate(record, *params)``."""
        self._fragments[text] = predicate

    def add(self, record: Any) -> Any:
        """Store a record, assigning an integer ``id`` if it has none."""
        if getattr(record, "id", None) is None:
            record.id = next(self._ids)
        self._records.append(record)
        return record

    def create(self, subject_type: type, **attributes) -> Any:
        return self.add(subject_type(**attributes))

    def clear(self, subject_type: Optional[type] = None):
        if subject_type is None:
            self._records.clear()
        else:
            self._records = [r for r in self._records if not isinstance(r, subject_type)]

    def _scan(self, subject_type: type) -> List[Any]:
        # Subclass records belong to their supertype's collection too.
        return [record for record in self._records if isinstance(record, subject_type)]

    def find_by_id(self, subject_type: type, record_id: Any) -> Any:
        for record in self._scan(subject_type):
            if str(record.id) == str(record_id):
                return record
        raise RecordNotFound(subject_type, record_id)

    def execute_filter(self, subject_type: type, expr: FilterExpr) -> List[Any]:
        results = [record for record in self._scan(subject_type) if self.matches(record, expr)]
        self.logger.debug(
            "Filter executed",
            subject=subject_type.__name__,
            matched=len(results)
        )
        return results

    def matches(self, record: Any, expr: FilterExpr) -> bool:
        """Evaluate a filter expression against one record."""
        if isinstance(expr, Constant):
            return expr.value
        if isinstance(expr, Comparison):
            return compare(read_attribute(record, expr.field), expr.operator, expr.value)
        if isinstance(expr, Association):
            related = read_attribute(record, expr.name)
            if related is None:
                return False
            if is_collection(related):
                return any(self.matches(item, expr.expr) for item in related)
            return self.matches(related, expr.expr)
        if isinstance(expr, And):
            return all(self.matches(record, child) for child in expr.children)
        if isinstance(expr, Or):
            return any(self.matches(record, child) for child in expr.children)
        if isinstance(expr, Not):
            return not self.matches(record, expr.child)
        if isinstance(expr, IsA):
            return isinstance(record, expr.subject_type)
        if isinstance(expr, Fragment):
            predicate = self._fragments.get(expr.text)
            if predicate is None:
                raise UnsupportedOperation(
                    "no predicate registered for this raw query fragment",
                    {"fragment": expr.text}
                )
            return bool(predicate(record, *expr.params))
        raise TypeError(f"unknown filter expression {expr!r}")
