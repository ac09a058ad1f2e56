"""
Query planning for bounding box retrieval.

The store can range-filter a single field per query, so a box query is
split into:
- a range filter on one coordinate (the "pushed" dimension), executed by the store
- a residual filter on the other coordinate, evaluated on the fetched rows

Pages are fetched with a cursor on (pushed field, id). Each page holds
max_records * overfetch_factor rows so that rows discarded by the
residual filter rarely force another round trip.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from geomessages.geo import BoundingBox
from geomessages.query import RangeFilter, StoreQuery
from geomessages.schemas import Message

logger = logging.getLogger(__name__)


DEFAULT_OVERFETCH_FACTOR = 4


class PushedDimension(str, Enum):
    """Rule for choosing which coordinate the store filters on."""
    LATITUDE = "latitude"
    TIGHTEST = "tightest"


def choose_pushed_field(box: BoundingBox, rule: PushedDimension) -> str:
    """
    Pick the coordinate to push to the store.

    LATITUDE always pushes latitude. TIGHTEST pushes longitude only when
    the box is strictly narrower in longitude than in latitude.
    """
    if rule == PushedDimension.TIGHTEST and box.lon_span < box.lat_span:
        return "longitude"
    return "latitude"


def result_sort_key(message: Message) -> tuple[float, str]:
    """Final result order: latitude ascending, then id ascending."""
    return (message.latitude, message.id)


@dataclass(frozen=True)
class QueryPlan:
    """Store query pages plus the residual filter for one box query."""
    box: BoundingBox
    pushed_field: str
    residual_field: str
    page_size: Optional[int]

    @property
    def ordered_like_result(self) -> bool:
        """True when store order already matches result order."""
        return self.pushed_field == "latitude"

    def first_query(self) -> StoreQuery:
        return self._query(start_after=None)

    def query_after(self, last: Message) -> StoreQuery:
        """Next page, starting strictly after the last row of the previous one."""
        return self._query(start_after=(getattr(last, self.pushed_field), last.id))

    def is_last_page(self, rows: list[Message]) -> bool:
        return self.page_size is None or len(rows) < self.page_size

    def keep(self, message: Message) -> bool:
        """Residual filter, evaluated on rows the store returned."""
        lower, upper = self._bounds(self.residual_field)
        return lower <= getattr(message, self.residual_field) <= upper

    def _bounds(self, field: str) -> tuple[float, float]:
        if field == "latitude":
            return self.box.lat_bottom, self.box.lat_top
        return self.box.lon_left, self.box.lon_right

    def _query(self, start_after) -> StoreQuery:
        lower, upper = self._bounds(self.pushed_field)
        return StoreQuery(
            range_filter=RangeFilter(field=self.pushed_field, lower=lower, upper=upper),
            order_by=(self.pushed_field, "id"),
            limit=self.page_size,
            start_after=start_after,
        )


def plan_bounding_box_query(
    box: BoundingBox,
    max_records: int,
    overfetch_factor: int = DEFAULT_OVERFETCH_FACTOR,
    rule: PushedDimension = PushedDimension.LATITUDE,
) -> QueryPlan:
    """
    Build the plan for a bounding box query.

    Args:
        box: Validated query rectangle
        max_records: Number of results the caller wants
        overfetch_factor: Page size multiplier; 0 disables the store-side limit
        rule: How to choose the pushed dimension

    Returns:
        QueryPlan whose pages cover a superset of the box contents
    """
    if overfetch_factor < 0:
        raise ValueError("overfetch_factor must not be negative")

    pushed = choose_pushed_field(box, PushedDimension(rule))
    residual = "longitude" if pushed == "latitude" else "latitude"
    page_size = max_records * overfetch_factor if overfetch_factor else None

    logger.debug(
        f"Planned box query: pushed={pushed}, residual={residual}, page_size={page_size}"
    )
    return QueryPlan(box=box, pushed_field=pushed, residual_field=residual, page_size=page_size)


def plan_user_query(user_id: str) -> StoreQuery:
    """Equality query listing one user's messages, ordered by id."""
    return StoreQuery(equals=(("user_id", user_id),), order_by=("id",))
