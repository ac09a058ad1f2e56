import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Path, Query, Request, Response, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from geomessages.config import Settings, get_settings, settings
from geomessages.errors import StoreUnavailableError, ValidationError
from geomessages.finder import MessageFinder
from geomessages.geo import BoundingBox
from geomessages.logging_utils import RequestLoggingMiddleware, log_query_data, setup_logging
from geomessages.metrics import get_metrics, get_metrics_content_type, record_retrieval_outcome
from geomessages.schemas import (
    ErrorResponse,
    HealthResponse,
    Message,
    MessagesResponse,
    NewMessageRequest,
    StatusResponse,
    UpdateMessageRequest,
)
from geomessages.storage import (
    SqlMessageStore,
    check_db_health,
    create_message,
    delete_message,
    get_db,
    init_db,
    update_message,
)


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="Geo Messages API",
    description="Location-tagged message storage with bounding box retrieval",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


def get_message_finder(
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
) -> MessageFinder:
    """Build a MessageFinder over the request's database session."""
    return MessageFinder(
        store=SqlMessageStore(db),
        overfetch_factor=app_settings.OVERFETCH_FACTOR,
        max_records_ceiling=app_settings.MAX_RECORDS_CEILING,
        pushed_dimension=app_settings.PUSHED_DIMENSION,
        timeout=app_settings.STORE_TIMEOUT_SECONDS,
    )


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable and
    the schema is applied, 503 otherwise.
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Retrieval Routes
# =============================================================================

@app.get(
    "/messages",
    response_model=MessagesResponse,
    responses={
        400: {"description": "Invalid bounding box or max_records (plain text)"},
        503: {"model": ErrorResponse, "description": "Message store unavailable"},
    }
)
async def find_messages_in_box(
    request: Request,
    latitude_top: Annotated[float, Query(description="Northern edge latitude")],
    longitude_left: Annotated[float, Query(description="Western edge longitude")],
    latitude_bottom: Annotated[float, Query(description="Southern edge latitude")],
    longitude_right: Annotated[float, Query(description="Eastern edge longitude")],
    max_records: Annotated[int, Query(description="Maximum number of messages to return")],
    finder: MessageFinder = Depends(get_message_finder),
    app_settings: Settings = Depends(get_settings),
) -> MessagesResponse:
    """
    List messages located inside a bounding box.

    Ordering:
        - latitude ASC, id ASC (deterministic)

    Errors:
        - Invalid geometry or max_records: plain text message, status 400
          (200 when INBAND_VALIDATION_ERRORS is enabled)
        - Store failure: 503
    """
    logger.info(
        f"GET /messages: latitude_top={latitude_top}, latitude_bottom={latitude_bottom}, "
        f"longitude_left={longitude_left}, longitude_right={longitude_right}, "
        f"max_records={max_records}"
    )

    try:
        box = BoundingBox(
            lat_bottom=latitude_bottom,
            lat_top=latitude_top,
            lon_left=longitude_left,
            lon_right=longitude_right,
        )
        messages = finder.find_by_bounding_box(box, max_records)
    except ValidationError as e:
        logger.warning(f"Rejected bounding box query: {e.message}")
        record_retrieval_outcome("bbox", "validation_error")
        log_query_data(request, mode="bbox", result="validation_error")
        status_code = status.HTTP_200_OK if app_settings.INBAND_VALIDATION_ERRORS else status.HTTP_400_BAD_REQUEST
        return PlainTextResponse(e.message, status_code=status_code)
    except StoreUnavailableError as e:
        logger.error(f"Bounding box query failed: {e}")
        record_retrieval_outcome("bbox", "store_unavailable")
        log_query_data(request, mode="bbox", result="store_unavailable")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Message store unavailable"
        )

    record_retrieval_outcome("bbox", "ok")
    log_query_data(request, mode="bbox", result="ok", returned=len(messages))
    logger.info(f"GET /messages: returned {len(messages)} messages")

    return MessagesResponse(messages=messages)


@app.get(
    "/messages/{user_id}",
    response_model=MessagesResponse,
    responses={503: {"model": ErrorResponse, "description": "Message store unavailable"}},
)
async def find_messages_by_user(
    request: Request,
    user_id: Annotated[str, Path(description="Authoring user identifier")],
    finder: MessageFinder = Depends(get_message_finder),
) -> MessagesResponse:
    """
    List all messages written by a user, ordered by id ASC.
    An unknown user gets an empty list.
    """
    logger.info(f"GET /messages/{user_id}")

    try:
        messages = finder.find_by_user_id(user_id)
    except StoreUnavailableError as e:
        logger.error(f"User query failed: {e}")
        record_retrieval_outcome("user", "store_unavailable")
        log_query_data(request, mode="user", result="store_unavailable")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Message store unavailable"
        )

    record_retrieval_outcome("user", "ok")
    log_query_data(request, mode="user", result="ok", returned=len(messages))

    return MessagesResponse(messages=messages)


# =============================================================================
# Write Routes
# =============================================================================

@app.post(
    "/messages/{user_id}",
    response_model=Message,
    status_code=status.HTTP_201_CREATED,
    responses={503: {"model": ErrorResponse, "description": "Message store unavailable"}},
)
async def new_message(
    user_id: Annotated[str, Path(description="Authoring user identifier")],
    body: NewMessageRequest,
    db: Session = Depends(get_db),
) -> Message:
    """Create a message at the given coordinates."""
    logger.info(f"POST /messages/{user_id}")

    try:
        return create_message(
            db=db,
            user_id=user_id,
            image_url=body.image_url,
            latitude=body.latitude,
            longitude=body.longitude,
            text=body.text,
        )
    except StoreUnavailableError as e:
        logger.error(f"Create failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to store message"
        )


@app.put(
    "/messages/{user_id}/{message_id}",
    response_model=Message,
    responses={
        404: {"model": ErrorResponse, "description": "Message not found"},
        503: {"model": ErrorResponse, "description": "Message store unavailable"},
    }
)
async def edit_message(
    user_id: Annotated[str, Path(description="Authoring user identifier")],
    message_id: Annotated[str, Path(description="Message identifier")],
    body: UpdateMessageRequest,
    db: Session = Depends(get_db),
) -> Message:
    """Update the caption and/or image URL of a message."""
    logger.info(f"PUT /messages/{user_id}/{message_id}")

    try:
        message = update_message(
            db=db,
            user_id=user_id,
            message_id=message_id,
            text=body.text,
            image_url=body.image_url,
        )
    except StoreUnavailableError as e:
        logger.error(f"Update failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to update message"
        )

    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return message


@app.delete(
    "/messages/{user_id}/{message_id}",
    response_model=StatusResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Message not found"},
        503: {"model": ErrorResponse, "description": "Message store unavailable"},
    }
)
async def remove_message(
    user_id: Annotated[str, Path(description="Authoring user identifier")],
    message_id: Annotated[str, Path(description="Message identifier")],
    db: Session = Depends(get_db),
) -> StatusResponse:
    """Delete a message."""
    logger.info(f"DELETE /messages/{user_id}/{message_id}")

    try:
        deleted = delete_message(db=db, user_id=user_id, message_id=message_id)
    except StoreUnavailableError as e:
        logger.error(f"Delete failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to delete message"
        )

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return StatusResponse(status="ok")


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.

    Includes:
    - http_requests_total, request_latency_seconds
    - retrieval_requests_total: retrieval outcomes by mode and result
    - residual_filter_rows_total: rows kept/discarded by the residual filter
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
