"""Database models."""
import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String, JSON
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Tenant(Base):
    """Business account that owns a phone number and a voice agent."""

    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    slug = Column(String(128), unique=True, index=True, nullable=False)
    status = Column(String(32), default="pending", nullable=False)  # pending, active, suspended, cancelled
    twilio_phone_number = Column(String(50), nullable=True)
    settings = Column(JSON, nullable=False, default=dict)
    # "metadata" is reserved on declarative classes
    extra_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Call(Base):
    """Bridged call log."""

    __tablename__ = "calls"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    call_sid = Column(String(64), unique=True, index=True, nullable=False)
    tenant_id = Column(String(36), index=True, nullable=True)
    agent_id = Column(String(128), nullable=True)
    stream_sid = Column(String(64), nullable=True)
    from_number = Column(String(50), nullable=True)
    to_number = Column(String(50), nullable=True)
    status = Column(String(32), default="in_progress", nullable=False)  # in_progress, completed, failed, busy, no-answer, canceled
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
