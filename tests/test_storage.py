"""
Tests for the SQLAlchemy message store.

Tests cover:
- Equality, range, ordering, cursor and limit
- Write paths (create, update, delete) and ownership checks
- Mapping database errors and deadlines to store errors
"""

import pytest
from sqlalchemy.exc import OperationalError

from geomessages.errors import StoreTimeoutError, StoreUnavailableError
from geomessages.finder import MessageFinder
from geomessages.geo import BoundingBox
from geomessages.models import MessageRecord
from geomessages.query import RangeFilter, StoreQuery
from geomessages.storage import (
    Base,
    SessionLocal,
    SqlMessageStore,
    create_message,
    delete_message,
    engine,
    update_message,
)


@pytest.fixture(scope="function")
def db():
    """Fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


def add_record(db, message_id, latitude, longitude, user_id="u1"):
    db.add(MessageRecord(
        id=message_id,
        user_id=user_id,
        text=f"caption {message_id}",
        image_url=f"https://img/{message_id}.jpg",
        latitude=latitude,
        longitude=longitude,
        created_at="2025-01-15T10:00:00Z",
    ))
    db.commit()


@pytest.fixture
def seeded_db(db):
    """Rows at (10,10), (10,20), (20,10), (10,15) for two users."""
    add_record(db, "m1", 10.0, 10.0, user_id="alice")
    add_record(db, "m2", 10.0, 20.0, user_id="alice")
    add_record(db, "m3", 20.0, 10.0, user_id="bob")
    add_record(db, "m0", 10.0, 15.0, user_id="bob")
    return db


class TestRunQuery:
    """SqlMessageStore.run_query."""

    def test_range_filter_inclusive(self, seeded_db):
        store = SqlMessageStore(seeded_db)
        query = StoreQuery(
            range_filter=RangeFilter("latitude", 10.0, 10.0),
            order_by=("latitude", "id"),
        )
        assert [m.id for m in store.run_query(query)] == ["m0", "m1", "m2"]

    def test_equality_filter(self, seeded_db):
        store = SqlMessageStore(seeded_db)
        query = StoreQuery(equals=(("user_id", "bob"),), order_by=("id",))
        assert [m.id for m in store.run_query(query)] == ["m0", "m3"]

    def test_limit(self, seeded_db):
        store = SqlMessageStore(seeded_db)
        query = StoreQuery(
            range_filter=RangeFilter("latitude", 0.0, 30.0),
            order_by=("latitude", "id"),
            limit=2,
        )
        assert [m.id for m in store.run_query(query)] == ["m0", "m1"]

    def test_cursor_continues_after_tie(self, seeded_db):
        store = SqlMessageStore(seeded_db)
        query = StoreQuery(
            range_filter=RangeFilter("latitude", 0.0, 30.0),
            order_by=("latitude", "id"),
            start_after=(10.0, "m1"),
        )
        assert [m.id for m in store.run_query(query)] == ["m2", "m3"]

    def test_rows_mapped_to_messages(self, seeded_db):
        store = SqlMessageStore(seeded_db)
        message = store.run_query(StoreQuery(equals=(("id", "m3"),)))[0]
        assert message.user_id == "bob"
        assert message.image_url == "https://img/m3.jpg"
        assert message.text == "caption m3"
        assert (message.latitude, message.longitude) == (20.0, 10.0)

    def test_empty_table(self, db):
        store = SqlMessageStore(db)
        assert store.run_query(StoreQuery()) == []

    def test_database_error_becomes_store_unavailable(self, seeded_db, monkeypatch):
        def broken_query(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(seeded_db, "query", broken_query)
        with pytest.raises(StoreUnavailableError):
            SqlMessageStore(seeded_db).run_query(StoreQuery())

    def test_late_result_discarded(self, seeded_db):
        with pytest.raises(StoreTimeoutError):
            SqlMessageStore(seeded_db).run_query(StoreQuery(), timeout=1e-9)


class TestFinderOverSql:
    """MessageFinder end to end on the database."""

    def test_box_query_with_paging(self, seeded_db):
        finder = MessageFinder(SqlMessageStore(seeded_db), overfetch_factor=1)
        result = finder.find_by_bounding_box(
            BoundingBox(lat_bottom=5, lat_top=15, lon_left=12, lon_right=25), 2
        )
        # Page of 2 holds m0 and m1; m1 is filtered out so a second page is read
        assert [m.id for m in result] == ["m0", "m2"]


class TestWrites:
    """create_message, update_message, delete_message."""

    def test_create_assigns_id(self, db):
        message = create_message(db, user_id="alice", image_url="https://img/a.jpg",
                                 latitude=1.5, longitude=-2.5, text="hi")
        assert message.id
        assert message.user_id == "alice"

        record = db.query(MessageRecord).filter(MessageRecord.id == message.id).one()
        assert record.latitude == 1.5
        assert record.created_at.endswith("Z")

    def test_create_ids_are_unique(self, db):
        a = create_message(db, user_id="u", image_url="x", latitude=0, longitude=0)
        b = create_message(db, user_id="u", image_url="x", latitude=0, longitude=0)
        assert a.id != b.id

    def test_update_mutable_fields(self, seeded_db):
        updated = update_message(seeded_db, user_id="alice", message_id="m1", text="new caption")
        assert updated.text == "new caption"
        assert updated.image_url == "https://img/m1.jpg"
        assert (updated.latitude, updated.longitude) == (10.0, 10.0)

    def test_update_other_users_message(self, seeded_db):
        assert update_message(seeded_db, user_id="bob", message_id="m1", text="x") is None

    def test_delete(self, seeded_db):
        assert delete_message(seeded_db, user_id="bob", message_id="m3") is True
        assert seeded_db.query(MessageRecord).filter(MessageRecord.id == "m3").first() is None

    def test_delete_unknown(self, seeded_db):
        assert delete_message(seeded_db, user_id="bob", message_id="nope") is False
