"""
Query model for the message store.

The store answers queries made of:
- any number of equality filters
- at most one range filter (inclusive bounds on a single field)
- an ordering over one or more fields, all ascending
- an optional limit
- an optional cursor (start strictly after the given ordering values)

StoreQuery can only express a single RangeFilter, so a query that
needs to bound two fields has to be planned (see planner.py).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from geomessages.schemas import Message


# Fields of Message that queries may filter or order on
QUERYABLE_FIELDS = ("id", "user_id", "latitude", "longitude")


@dataclass(frozen=True)
class RangeFilter:
    """Inclusive range predicate: lower <= field <= upper."""
    field: str
    lower: float
    upper: float


@dataclass(frozen=True)
class StoreQuery:
    """A single store request."""
    equals: tuple[tuple[str, Any], ...] = ()
    range_filter: Optional[RangeFilter] = None
    order_by: tuple[str, ...] = ("id",)
    limit: Optional[int] = None
    start_after: Optional[tuple[Any, ...]] = None

    def __post_init__(self):
        fields = [name for name, _ in self.equals] + list(self.order_by)
        if self.range_filter is not None:
            fields.append(self.range_filter.field)
            # Range field must lead the ordering
            if not self.order_by or self.order_by[0] != self.range_filter.field:
                raise ValueError("range field must be the first order_by field")
        for name in fields:
            if name not in QUERYABLE_FIELDS:
                raise ValueError(f"Unknown query field: {name}")
        if self.limit is not None and self.limit < 1:
            raise ValueError("limit must be positive")
        if self.start_after is not None and len(self.start_after) != len(self.order_by):
            raise ValueError("start_after must carry one value per order_by field")


class MessageStore(ABC):
    """Read capability of the document store holding messages."""

    @abstractmethod
    def run_query(self, query: StoreQuery, timeout: Optional[float] = None) -> list[Message]:
        """
        Execute a query and return the matching messages in query order.

        Args:
            query: Query to execute
            timeout: Seconds the call may take; None means no deadline

        Raises:
            StoreUnavailableError: the store failed to answer
            StoreTimeoutError: the answer did not arrive within timeout
        """
        ...
