# trackpool/models/label.py
from sqlalchemy import Column, String, Float, ForeignKey, DateTime, Uuid
from sqlalchemy.orm import relationship
from trackpool.models.base import Base
from trackpool.models.tracking_id import JsonPayload
from trackpool.utils.tracking_number import format_tracking_number
import uuid
from sqlalchemy import Enum as SqlEnum
from enum import Enum
from datetime import datetime

class LabelStatus(str, Enum):
    generated = "generated"
    downloaded = "downloaded"

class Label(Base):
    __tablename__ = "shipping_labels"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    tracking_number = Column(String, index=True, nullable=False)
    service_type = Column(String, nullable=True)
    weight_oz = Column(Float, nullable=True)

    sender_name = Column(String, nullable=True)
    sender_street = Column(String, nullable=True)
    sender_city = Column(String, nullable=True)
    sender_state = Column(String, nullable=True)
    sender_zip = Column(String, nullable=True)

    recipient_name = Column(String, nullable=False)
    recipient_street = Column(String, nullable=False)
    recipient_city = Column(String, nullable=False)
    recipient_state = Column(String, nullable=False)
    recipient_zip = Column(String, nullable=False)

    label_data = Column(JsonPayload, nullable=True)
    status = Column(SqlEnum(LabelStatus, name="label_status"), default=LabelStatus.generated, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="labels")

    @property
    def formatted_tracking_number(self) -> str:
        return format_tracking_number(self.tracking_number)
