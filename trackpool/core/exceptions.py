# exceptions.py
from typing import Any, Dict, Optional


class BusinessLogicException(Exception):
    """Base class for business-related exceptions."""
    def __init__(self, status_code: int, detail: str, extra: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.detail = detail
        self.extra = extra or {}
        super().__init__(self.detail)

class UserNotFoundException(BusinessLogicException):
    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(
            status_code=404,
            detail=f"User {user_id} not found"
        )

class InvalidQuantityException(BusinessLogicException):
    def __init__(self, quantity: int):
        super().__init__(
            status_code=400,
            detail=f"Quantity must be a positive integer, got {quantity}"
        )

class EmptyBatchException(BusinessLogicException):
    def __init__(self):
        super().__init__(status_code=400, detail="No tracking numbers provided")

class BatchTooLargeException(BusinessLogicException):
    def __init__(self, size: int, limit: int):
        super().__init__(
            status_code=400,
            detail=f"Batch of {size} tracking numbers exceeds the limit of {limit}"
        )

class InsufficientSupplyException(BusinessLogicException):
    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            status_code=409,
            detail=f"Not enough available tracking IDs: {available} available, {requested} requested",
            extra={"available": available, "requested": requested},
        )

class NoAvailableTrackingIdException(BusinessLogicException):
    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(
            status_code=409,
            detail="No tracking IDs available, contact your administrator"
        )

class InsufficientAssignedException(BusinessLogicException):
    def __init__(self, assigned: int, requested: int):
        self.assigned = assigned
        self.requested = requested
        super().__init__(
            status_code=409,
            detail=f"Cannot revoke {requested} tracking IDs, only {assigned} unused assigned",
            extra={"assigned": assigned, "requested": requested},
        )

class LabelNotFoundException(BusinessLogicException):
    def __init__(self, label_id):
        super().__init__(status_code=404, detail=f"Label {label_id} not found")

class UploadValidationException(BusinessLogicException):
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class DatabaseException(Exception):
    """Base class for database-related exceptions."""
    def __init__(self,status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(self.detail)

class StoreUnavailableException(DatabaseException):
    """Raised when the database cannot be reached; nothing was committed."""
    def __init__(self, detail: str = "Tracking ID store is unavailable, please retry"):
        super().__init__(status_code=503, detail=detail)
