"""
Persistence collaborator interface.
"""

from abc import ABC, abstractmethod
from typing import Any, List

from ..query.filters import TRUE, FilterExpr


class PersistenceAdapter(ABC):
    """What the ability layer needs from a store: lookups and filter execution."""

    @abstractmethod
    def find_by_id(self, subject_type: type, record_id: Any) -> Any:
        """Return the record or raise RecordNotFound."""

    @abstractmethod
    def execute_filter(self, subject_type: type, expr: FilterExpr) -> List[Any]:
        """Return every ``subject_type`` record matching ``expr``."""

    def all(self, subject_type: type) -> List[Any]:
        return self.execute_filter(subject_type, TRUE)
