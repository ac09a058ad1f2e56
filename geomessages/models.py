"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Column, Float, String, Text

from geomessages.storage import Base


class MessageRecord(Base):
    """
    SQLAlchemy model for storing geo-tagged messages.

    Table: messages
    Primary Key: id (UUID4 string assigned on insert)
    latitude/longitude are indexed separately; range queries use one of them.
    """
    __tablename__ = "messages"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    text = Column(Text, nullable=False, default="")
    image_url = Column(Text, nullable=False)
    latitude = Column(Float, nullable=False, index=True)
    longitude = Column(Float, nullable=False, index=True)
    created_at = Column(String, nullable=False)  # Server time ISO-8601
