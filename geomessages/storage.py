import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Generator, Optional

from sqlalchemy import and_, create_engine, inspect, or_, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from geomessages.config import settings
from geomessages.errors import StoreTimeoutError, StoreUnavailableError
from geomessages.query import MessageStore, StoreQuery
from geomessages.schemas import Message

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

# Create SQLAlchemy engine; the engine owns the connection pool
engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    echo=False,
)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from geomessages.models import MessageRecord  # noqa: F401

        logger.debug("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and schema exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            logger.debug("Testing database connectivity...")
            db.execute(text("SELECT 1"))
            logger.debug("Database connectivity OK")

        if not inspect(engine).has_table("messages"):
            logger.error("Database schema not applied: 'messages' table not found")
            return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


def _record_to_message(record) -> Message:
    return Message(
        id=record.id,
        user_id=record.user_id,
        text=record.text or "",
        image_url=record.image_url,
        latitude=record.latitude,
        longitude=record.longitude,
    )


# =============================================================================
# Message Store Adapter
# =============================================================================

class SqlMessageStore(MessageStore):
    """
    MessageStore backed by a SQLAlchemy session.

    Executes exactly what a StoreQuery expresses: equality filters,
    at most one inclusive range filter, ascending ordering, a cursor
    and a limit.
    """

    def __init__(self, db: Session):
        self.db = db

    def run_query(self, query: StoreQuery, timeout: Optional[float] = None) -> list[Message]:
        from geomessages.models import MessageRecord

        logger.debug(f"Running store query: {query}")
        started = time.monotonic()

        try:
            q = self.db.query(MessageRecord)

            for field, value in query.equals:
                q = q.filter(getattr(MessageRecord, field) == value)

            if query.range_filter is not None:
                column = getattr(MessageRecord, query.range_filter.field)
                q = q.filter(column >= query.range_filter.lower, column <= query.range_filter.upper)

            if query.start_after is not None:
                q = q.filter(self._after_cursor(MessageRecord, query.order_by, query.start_after))

            q = q.order_by(*[getattr(MessageRecord, field).asc() for field in query.order_by])

            if query.limit is not None:
                q = q.limit(query.limit)

            records = q.all()
        except SQLAlchemyError as e:
            logger.error(f"Store query failed: {e}")
            raise StoreUnavailableError(f"Message store query failed: {e}") from e

        elapsed = time.monotonic() - started
        if timeout is not None and elapsed > timeout:
            logger.error(f"Store query exceeded deadline: {elapsed:.3f}s > {timeout:.3f}s")
            raise StoreTimeoutError(f"Message store query timed out after {elapsed:.3f}s")

        logger.debug(f"Store query returned {len(records)} rows in {elapsed * 1000:.2f}ms")
        return [_record_to_message(r) for r in records]

    @staticmethod
    def _after_cursor(model, order_by: tuple, values: tuple):
        """Rows sorting strictly after `values` under ascending `order_by`."""
        clauses = []
        for i, field in enumerate(order_by):
            equal_prefix = [getattr(model, f) == v for f, v in zip(order_by[:i], values[:i])]
            clauses.append(and_(*equal_prefix, getattr(model, field) > values[i]))
        return or_(*clauses)


# =============================================================================
# Message Write Functions
# =============================================================================

def create_message(
    db: Session,
    user_id: str,
    image_url: str,
    latitude: float,
    longitude: float,
    text: str = "",
) -> Message:
    """
    Create a new message in the database.

    Args:
        db: Database session
        user_id: Authoring user
        image_url: URL of the uploaded image
        latitude: Latitude in degrees
        longitude: Longitude in degrees
        text: Caption

    Returns:
        The stored message, including its assigned id

    Raises:
        StoreUnavailableError: the insert failed
    """
    from geomessages.models import MessageRecord

    message_id = str(uuid.uuid4())
    logger.info(f"Creating message: id={message_id}, user_id={user_id}")
    logger.debug(f"Message details: lat={latitude}, lon={longitude}, image_url={image_url}")

    try:
        created_at = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        record = MessageRecord(
            id=message_id,
            user_id=user_id,
            text=text,
            image_url=image_url,
            latitude=latitude,
            longitude=longitude,
            created_at=created_at,
        )
        db.add(record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create message {message_id}: {e}")
        raise StoreUnavailableError(f"Failed to store message: {e}") from e

    logger.info(f"Message created successfully: {message_id}")
    return _record_to_message(record)


def _get_owned_record(db: Session, user_id: str, message_id: str):
    from geomessages.models import MessageRecord

    return (
        db.query(MessageRecord)
        .filter(MessageRecord.id == message_id, MessageRecord.user_id == user_id)
        .first()
    )


def update_message(
    db: Session,
    user_id: str,
    message_id: str,
    text: Optional[str] = None,
    image_url: Optional[str] = None,
) -> Optional[Message]:
    """
    Update the mutable fields of a message.

    Returns:
        The updated message, or None if no message with this id
        belongs to user_id
    """
    logger.info(f"Updating message: id={message_id}, user_id={user_id}")

    try:
        record = _get_owned_record(db, user_id, message_id)
        if record is None:
            logger.info(f"Message not found for update: {message_id}")
            return None
        if text is not None:
            record.text = text
        if image_url is not None:
            record.image_url = image_url
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update message {message_id}: {e}")
        raise StoreUnavailableError(f"Failed to update message: {e}") from e

    logger.info(f"Message updated successfully: {message_id}")
    return _record_to_message(record)


def delete_message(db: Session, user_id: str, message_id: str) -> bool:
    """
    Delete a message.

    Returns:
        True if deleted, False if no message with this id belongs to user_id
    """
    logger.info(f"Deleting message: id={message_id}, user_id={user_id}")

    try:
        record = _get_owned_record(db, user_id, message_id)
        if record is None:
            logger.info(f"Message not found for delete: {message_id}")
            return False
        db.delete(record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to delete message {message_id}: {e}")
        raise StoreUnavailableError(f"Failed to delete message: {e}") from e

    logger.info(f"Message deleted successfully: {message_id}")
    return True
