"""
Pydantic schemas for messages and API payloads.

This module contains:
- Message, the record shape returned by the store and serialized to clients
- Request models for creating and updating messages
- Response models for API responses
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Message Model
# =============================================================================

class Message(BaseModel):
    """
    A stored geo-tagged post.

    Serialized with camelCase keys:
    {id, userId, text, imageUrl, latitude, longitude}
    """
    id: str = Field(..., description="Store-assigned message identifier")
    user_id: str = Field(
        ...,
        alias="userId",
        serialization_alias="userId",
        description="Identifier of the authoring user"
    )
    text: str = Field("", description="Caption")
    image_url: str = Field(
        "",
        alias="imageUrl",
        serialization_alias="imageUrl",
        description="URL of the associated image"
    )
    latitude: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")

    model_config = {
        "populate_by_name": True,
        "frozen": True,
    }


# =============================================================================
# Pydantic Request Models
# =============================================================================

class NewMessageRequest(BaseModel):
    """
    Request body for creating a message.

    Coordinates are validated against their ranges here, so every
    stored message has a valid location.
    """
    text: str = Field("", max_length=4096, description="Caption")
    image_url: str = Field(
        ...,
        alias="imageUrl",
        min_length=1,
        description="URL of the already uploaded image"
    )
    latitude: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "text": "Sunset at the pier",
                    "imageUrl": "https://storage.example.com/images/abc123.jpg",
                    "latitude": 37.8086,
                    "longitude": -122.4098
                }
            ]
        }
    }


class UpdateMessageRequest(BaseModel):
    """
    Request body for updating a message.

    Only text and image URL are mutable; coordinates are fixed at creation.
    """
    text: Optional[str] = Field(None, max_length=4096, description="New caption")
    image_url: Optional[str] = Field(
        None,
        alias="imageUrl",
        description="New image URL"
    )

    @field_validator("image_url")
    @classmethod
    def validate_image_url(cls, v: Optional[str]) -> Optional[str]:
        """An image URL, when given, must not be empty."""
        if v is not None and not v.strip():
            raise ValueError("imageUrl must not be empty")
        return v

    model_config = {"populate_by_name": True}


# =============================================================================
# Pydantic Response Models
# =============================================================================

class MessagesResponse(BaseModel):
    """Response model for message listings."""
    messages: list[Message] = Field(
        default_factory=list,
        description="Messages in result order"
    )


class StatusResponse(BaseModel):
    """Response model for successful write operations without a body."""
    status: str = Field(default="ok", description="Operation status")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
