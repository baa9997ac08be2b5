"""
SQLAlchemy ORM models for Ofie Assistant.

Persistent entities the assistant reads and appends to: users,
conversations, messages and tracked user activity.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, DateTime, Text, ForeignKey, JSON, Index,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    role = Column(String(20), default="tenant")  # tenant, landlord, bot
    preferences_json = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_now)


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=False, index=True)
    landlord_id = Column(String(36), nullable=False, index=True)
    subject_json = Column(JSON, nullable=True)
    status = Column(String(20), default="active")
    metadata_json = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_now)
    last_message_at = Column(DateTime(timezone=True), nullable=True)

    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan")


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(String(36), nullable=False, index=True)
    content = Column(Text, nullable=False)
    message_type = Column(String(20), default="text")
    metadata_json = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_now)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index("ix_msg_conv_created", "conversation_id", "created_at"),
    )


class UserActivity(Base):
    __tablename__ = "user_activities"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    kind = Column(String(20), nullable=False)  # viewing, application, favorite, review
    occurred_at = Column(DateTime(timezone=True), default=_now)

    __table_args__ = (
        Index("ix_activity_user_kind", "user_id", "kind", "occurred_at"),
    )
