"""
Message retrieval by bounding box or by author.

MessageFinder holds no mutable state between calls; the store it wraps
is the only shared resource.
"""

import logging
import time
from typing import Optional

from geomessages.errors import StoreTimeoutError, ValidationError
from geomessages.geo import BoundingBox
from geomessages.metrics import record_residual_filter
from geomessages.planner import (
    DEFAULT_OVERFETCH_FACTOR,
    PushedDimension,
    plan_bounding_box_query,
    plan_user_query,
    result_sort_key,
)
from geomessages.query import MessageStore, StoreQuery
from geomessages.schemas import Message

logger = logging.getLogger(__name__)


DEFAULT_MAX_RECORDS_CEILING = 500


class MessageFinder:
    """
    Runs retrieval queries against a MessageStore.

    Args:
        store: Store adapter to query
        overfetch_factor: Page size multiplier for box queries (0 = unbounded)
        max_records_ceiling: Largest max_records accepted
        pushed_dimension: Rule for choosing the store-filtered coordinate
        timeout: Seconds allowed for all store calls of one retrieval
    """

    def __init__(
        self,
        store: MessageStore,
        overfetch_factor: int = DEFAULT_OVERFETCH_FACTOR,
        max_records_ceiling: int = DEFAULT_MAX_RECORDS_CEILING,
        pushed_dimension: PushedDimension = PushedDimension.LATITUDE,
        timeout: Optional[float] = None,
    ):
        self.store = store
        self.overfetch_factor = overfetch_factor
        self.max_records_ceiling = max_records_ceiling
        self.pushed_dimension = pushed_dimension
        self.timeout = timeout

    def find_by_bounding_box(self, box: BoundingBox, max_records: int) -> list[Message]:
        """
        Find messages located inside a bounding box.

        Args:
            box: Validated query rectangle
            max_records: Maximum number of messages to return

        Returns:
            At most max_records messages inside box, ordered by
            latitude ASC, id ASC, without duplicates

        Raises:
            ValidationError: max_records is not positive or above the ceiling
            StoreUnavailableError: a store call failed or timed out
        """
        if not isinstance(box, BoundingBox):
            raise TypeError(f"box must be a BoundingBox, got {type(box).__name__}")
        self._validate_max_records(max_records)

        plan = plan_bounding_box_query(
            box,
            max_records,
            overfetch_factor=self.overfetch_factor,
            rule=self.pushed_dimension,
        )
        deadline = self._deadline()

        logger.info(
            f"Finding messages in box lat[{box.lat_bottom}, {box.lat_top}] "
            f"lon[{box.lon_left}, {box.lon_right}], max_records={max_records}"
        )

        matches: list[Message] = []
        seen: set[str] = set()
        fetched = 0
        pages = 0
        query = plan.first_query()

        while True:
            rows = self._run(query, deadline)
            pages += 1
            fetched += len(rows)

            for message in rows:
                if message.id in seen:
                    continue
                seen.add(message.id)
                if plan.keep(message):
                    matches.append(message)

            if plan.is_last_page(rows):
                break
            # Store order matches result order, later pages can only sort after these
            if plan.ordered_like_result and len(matches) >= max_records:
                break
            query = plan.query_after(rows[-1])

        matches.sort(key=result_sort_key)
        result = matches[:max_records]

        record_residual_filter(kept=len(matches), discarded=fetched - len(matches))
        logger.info(
            f"Box query returned {len(result)} messages "
            f"({fetched} fetched in {pages} pages, {len(matches)} inside box)"
        )
        return result

    def find_by_user_id(self, user_id: str) -> list[Message]:
        """
        Find all messages written by a user, ordered by id ASC.

        An unknown user_id yields an empty list.

        Raises:
            StoreUnavailableError: the store call failed or timed out
        """
        logger.info(f"Finding messages for user_id {user_id}")
        messages = self._run(plan_user_query(user_id), self._deadline())
        logger.info(f"User query returned {len(messages)} messages")
        return messages

    def _validate_max_records(self, max_records: int) -> None:
        if isinstance(max_records, bool) or not isinstance(max_records, int):
            raise ValidationError("Invalid max_records", field="max_records")
        if max_records <= 0:
            raise ValidationError("Invalid max_records: must be positive", field="max_records")
        if max_records > self.max_records_ceiling:
            raise ValidationError(
                f"Invalid max_records: must not exceed {self.max_records_ceiling}",
                field="max_records",
            )

    def _deadline(self) -> Optional[float]:
        if self.timeout is None:
            return None
        return time.monotonic() + self.timeout

    def _run(self, query: StoreQuery, deadline: Optional[float]) -> list[Message]:
        """Run one store query with whatever time is left before the deadline."""
        if deadline is None:
            return self.store.run_query(query)
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise StoreTimeoutError("Deadline exceeded before store query")
        return self.store.run_query(query, timeout=remaining)
