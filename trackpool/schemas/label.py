# trackpool/schemas/label.py
from pydantic import BaseModel, Field, constr
from typing import Optional, List, Dict, Any
from pydantic import ConfigDict
from uuid import UUID
from datetime import datetime
from trackpool.models.label import LabelStatus


class SenderSchema(BaseModel):
    name: Optional[constr(strip_whitespace=True, max_length=100)] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[constr(strip_whitespace=True, max_length=2)] = None
    zip: Optional[str] = None

class RecipientSchema(BaseModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=100)
    street: constr(strip_whitespace=True, min_length=1)
    city: constr(strip_whitespace=True, min_length=1)
    state: constr(strip_whitespace=True, min_length=2, max_length=2)
    zip: constr(strip_whitespace=True, min_length=5, max_length=10)

class CreateLabelRequest(BaseModel):
    sender: Optional[SenderSchema] = None
    recipient: RecipientSchema
    service_type: Optional[str] = None
    weight_oz: Optional[float] = Field(None, gt=0)
    label_data: Optional[Dict[str, Any]] = None

class BulkCreateLabelRequest(BaseModel):
    labels: List[CreateLabelRequest] = Field(..., min_length=1, max_length=500)


class LabelSchema(BaseModel):
    id: UUID
    user_id: UUID
    status: LabelStatus
    tracking_number: str
    formatted_tracking_number: str
    service_type: Optional[str] = None
    weight_oz: Optional[float] = None
    sender_name: Optional[str] = None
    sender_street: Optional[str] = None
    sender_city: Optional[str] = None
    sender_state: Optional[str] = None
    sender_zip: Optional[str] = None
    recipient_name: str
    recipient_street: str
    recipient_city: str
    recipient_state: str
    recipient_zip: str
    label_data: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
