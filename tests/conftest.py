"""
Pytest configuration and shared fixtures.

Test environment variables are set here before any geomessages import,
and the settings cache is cleared so they take effect.
"""

import os
import time

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_geomessages.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

# Clear settings cache before any app imports to ensure test env vars are used
from geomessages.config import get_settings
get_settings.cache_clear()

from geomessages.errors import StoreTimeoutError, StoreUnavailableError
from geomessages.query import MessageStore, StoreQuery
from geomessages.schemas import Message


class InMemoryMessageStore(MessageStore):
    """
    MessageStore over a list, with the same capability as the real store:
    equality filters, one range filter, ascending order, cursor and limit.

    Every executed query is kept in `queries`.
    """

    def __init__(self, messages=None):
        self.messages = list(messages or [])
        self.queries = []
        self.timeouts = []

    def run_query(self, query: StoreQuery, timeout=None):
        self.queries.append(query)
        self.timeouts.append(timeout)

        rows = [m for m in self.messages if self._matches(m, query)]
        rows.sort(key=lambda m: self._order_values(m, query))
        if query.start_after is not None:
            rows = [m for m in rows if self._order_values(m, query) > tuple(query.start_after)]
        if query.limit is not None:
            rows = rows[:query.limit]
        return rows

    @staticmethod
    def _order_values(message, query):
        return tuple(getattr(message, field) for field in query.order_by)

    @staticmethod
    def _matches(message, query):
        for field, value in query.equals:
            if getattr(message, field) != value:
                return False
        rf = query.range_filter
        if rf is not None and not rf.lower <= getattr(message, rf.field) <= rf.upper:
            return False
        return True


class FailingMessageStore(MessageStore):
    """Store whose every query fails."""

    def __init__(self):
        self.calls = 0

    def run_query(self, query, timeout=None):
        self.calls += 1
        raise StoreUnavailableError("connection refused")


class SlowMessageStore(InMemoryMessageStore):
    """In-memory store that takes `delay` seconds per query and honours timeouts."""

    def __init__(self, messages=None, delay=0.0):
        super().__init__(messages)
        self.delay = delay

    def run_query(self, query, timeout=None):
        time.sleep(self.delay)
        if timeout is not None and self.delay > timeout:
            raise StoreTimeoutError("query timed out")
        return super().run_query(query, timeout)


def make_message(message_id: str, latitude: float, longitude: float,
                 user_id: str = "u1", text: str = "", image_url: str = "https://img/x.jpg") -> Message:
    """Helper to build a stored message."""
    return Message(
        id=message_id,
        user_id=user_id,
        text=text,
        image_url=image_url,
        latitude=latitude,
        longitude=longitude,
    )


@pytest.fixture
def scenario_messages():
    """Messages at (10,10), (10,20), (20,10)."""
    return [
        make_message("m1", 10.0, 10.0),
        make_message("m2", 10.0, 20.0),
        make_message("m3", 20.0, 10.0),
    ]


@pytest.fixture
def memory_store(scenario_messages):
    return InMemoryMessageStore(scenario_messages)
