from typing import TypeVar, Generic, List, Optional
from pydantic import BaseModel
from enum import Enum

class SortOrder(str, Enum):
    asc = "asc"
    desc = "desc"

class PaginationInfo(BaseModel):
    current_page: Optional[int] = None
    total_pages: Optional[int] = None
    total_items: Optional[int] = None
    items_per_page: int
    has_next: bool
    has_previous: bool

# T can be any Pydantic model (e.g., LabelSchema, TrackingIdSchema, etc.)
T = TypeVar('T')

class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T]
    pagination: PaginationInfo
