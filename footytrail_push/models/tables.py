from __future__ import annotations

from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text, func

from footytrail_push.db.base import Base

JOB_STATUS_PENDING = "pending"
JOB_STATUS_PROCESSING = "processing"
JOB_STATUS_SENT = "sent"
JOB_STATUS_FAILED = "failed"


def _new_id() -> str:
    return str(uuid4())


class NotificationJob(Base):
    __tablename__ = "notification_jobs"

    id = Column(String(36), primary_key=True, default=_new_id)
    kind = Column(String(60), nullable=False)
    tournament_id = Column(String(36), nullable=True)
    recipient_user_id = Column(String(36), nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, server_default=JOB_STATUS_PENDING)
    attempts = Column(Integer, nullable=False, server_default="0")
    last_error = Column(Text, nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_notification_jobs_status_created_at", "status", "created_at"),
        Index("ix_notification_jobs_status_claimed_at", "status", "claimed_at"),
    )


class UserDevice(Base):
    __tablename__ = "user_devices"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(36), nullable=False, index=True)
    push_token = Column(Text, nullable=True)
    platform = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class NotificationHistory(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(36), nullable=False, index=True)
    type = Column(String(60), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
