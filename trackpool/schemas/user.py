from pydantic import BaseModel, Field, constr
from uuid import UUID
from datetime import datetime
from pydantic import ConfigDict
from typing import Optional


class UserSchema(BaseModel):
    id: UUID
    email: str
    name: str
    is_active: bool
    is_admin: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserMeSchema(BaseModel):
    id: UUID
    email: str
    name: str
    is_admin: bool
    role: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreateUserRequest(BaseModel):
    email: constr(strip_whitespace=True, to_lower=True, min_length=3, max_length=255)
    name: constr(strip_whitespace=True, min_length=1, max_length=100)
    password: str = Field(..., min_length=6)
    is_admin: bool = False
