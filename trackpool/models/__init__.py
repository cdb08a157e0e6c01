from .user import User
from .tracking_id import TrackingId, UserTrackingAssignment, TrackingAuditLog
from .label import Label

__all__ = ["User", "TrackingId", "UserTrackingAssignment", "TrackingAuditLog", "Label"]
