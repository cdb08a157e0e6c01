# trackpool/models/tracking_id.py
from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Uuid,
)
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from trackpool.models.base import Base
from trackpool.utils.tracking_number import format_tracking_number
from enum import Enum
from datetime import datetime
import uuid

# BIGINT identity on postgres, INTEGER PRIMARY KEY (rowid) on sqlite
SerialId = BigInteger().with_variant(Integer, "sqlite")
JsonPayload = JSON().with_variant(JSONB, "postgresql")


class TrackingStatus(str, Enum):
    available = "available"
    assigned = "assigned"
    used = "used"


class TrackingId(Base):
    """
    One USPS tracking number in the pool.

    ``id`` grows with insertion order and breaks ``created_at`` ties, so
    "oldest first" selections are FIFO even inside a single upload batch.
    """
    __tablename__ = "tracking_ids"

    id = Column(SerialId, primary_key=True, autoincrement=True)
    number = Column(String(22), unique=True, nullable=False, index=True)
    status = Column(SqlEnum(TrackingStatus, name="tracking_status"), default=TrackingStatus.available, nullable=False)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    assigned_to = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)
    assigned_at = Column(DateTime, nullable=True)
    used_at = Column(DateTime, nullable=True)
    # no FK: the label row is written after the claim, in the same transaction
    used_in_label = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("User", foreign_keys=[assigned_to])
    uploader = relationship("User", foreign_keys=[created_by])

    __table_args__ = (
        Index("ix_tracking_ids_status_created", "status", "created_at"),
        Index("ix_tracking_ids_owner_status", "assigned_to", "status", "assigned_at"),
    )

    @property
    def formatted_number(self) -> str:
        return format_tracking_number(self.number)


class UserTrackingAssignment(Base):
    """Per-user ledger of tracking ids assigned and consumed."""
    __tablename__ = "user_tracking_assignments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), unique=True, nullable=False)
    total_assigned = Column(Integer, default=0, nullable=False)
    total_used = Column(Integer, default=0, nullable=False)
    last_assigned_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="tracking_assignment")

    __table_args__ = (
        CheckConstraint("total_assigned >= 0 AND total_used >= 0", name="ledger_non_negative"),
        CheckConstraint("total_used <= total_assigned", name="ledger_used_le_assigned"),
    )

    @property
    def available(self) -> int:
        return (self.total_assigned or 0) - (self.total_used or 0)


class AuditAction(str, Enum):
    bulk_upload = "bulk_upload"
    assign = "assign"
    consume = "consume"
    revoke = "revoke"


class TrackingAuditLog(Base):
    """Append-only history of tracking id state transitions."""
    __tablename__ = "tracking_id_audit_log"

    # serial so entries written in one transaction keep their insertion order
    id = Column(SerialId, primary_key=True, autoincrement=True)
    tracking_id = Column(SerialId, ForeignKey("tracking_ids.id"), nullable=True, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)
    action = Column(SqlEnum(AuditAction, name="tracking_audit_action"), nullable=False)
    details = Column(JsonPayload, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    tracking = relationship("TrackingId", foreign_keys=[tracking_id])
    actor = relationship("User", foreign_keys=[user_id])
