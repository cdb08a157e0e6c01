import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Uuid
from datetime import datetime
from sqlalchemy.orm import relationship
from trackpool.models.base import Base

class User(Base):
    __tablename__ = 'users'
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    password_hash = Column(String)
    is_admin = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    labels = relationship("Label", back_populates="user")
    tracking_assignment = relationship("UserTrackingAssignment", back_populates="user", uselist=False)

    @property
    def role(self) -> str:
        return "admin" if self.is_admin else "user"
