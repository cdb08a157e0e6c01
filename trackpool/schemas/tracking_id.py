from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import datetime
from enum import Enum
from trackpool.models.tracking_id import TrackingStatus, AuditAction


class IngestRequest(BaseModel):
    tracking_numbers: List[Optional[str]] = Field(..., description="Raw candidate tracking numbers")

class IngestReport(BaseModel):
    inserted: int
    duplicates: int
    invalid: int
    total_provided: int

class AssignRequest(BaseModel):
    user_id: UUID
    quantity: int = Field(..., gt=0)

class AssignReport(BaseModel):
    assigned: int
    target_user_id: UUID

class RevokeRequest(BaseModel):
    user_id: UUID
    quantity: int = Field(..., gt=0)

class RevokeReport(BaseModel):
    revoked: int
    target_user_id: UUID

class ConsumeRequest(BaseModel):
    label_id: UUID

class ConsumeResponse(BaseModel):
    tracking_number: str
    formatted_tracking_number: str


class UserBrief(BaseModel):
    id: UUID
    email: str
    name: str
    model_config = ConfigDict(from_attributes=True)

class TrackingIdSchema(BaseModel):
    id: int
    number: str
    formatted_number: str
    status: TrackingStatus
    assigned_to: Optional[UUID] = None
    owner: Optional[UserBrief] = None
    assigned_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    used_in_label: Optional[UUID] = None
    created_by: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class AuditLogSchema(BaseModel):
    id: int
    tracking_id: Optional[int] = None
    user_id: Optional[UUID] = None
    action: AuditAction
    details: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class QuotaLevel(str, Enum):
    none = "none"
    low = "low"
    ok = "ok"

class UserQuotaSchema(BaseModel):
    total_assigned: int = 0
    total_used: int = 0
    available: int = 0
    level: QuotaLevel = QuotaLevel.none
    last_assigned_at: Optional[datetime] = None

class UserBreakdownSchema(BaseModel):
    user_id: UUID
    user_email: str
    user_name: str
    total_assigned: int
    total_used: int
    available: int

class TrackingStatsSchema(BaseModel):
    total: int = 0
    available: int = 0
    assigned: int = 0
    used: int = 0
    user_assignments: List[UserBreakdownSchema] = []
