import logging
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from trackpool.core.exceptions import DatabaseException
from trackpool.models.tracking_id import TrackingId, TrackingStatus, UserTrackingAssignment
from trackpool.models.user import User
from trackpool.schemas.tracking_id import TrackingStatsSchema, UserBreakdownSchema

logger = logging.getLogger(__name__)


class ReportingService:
    """Read-only dashboard aggregates over the pool and the ledger."""

    async def get_stats(self, db: AsyncSession) -> TrackingStatsSchema:
        try:
            status_rows = await db.execute(
                select(TrackingId.status, func.count(TrackingId.id)).group_by(TrackingId.status)
            )
            counts = {status: count for status, count in status_rows.all()}

            ledger_rows = await db.execute(
                select(
                    UserTrackingAssignment.user_id,
                    User.email,
                    User.name,
                    UserTrackingAssignment.total_assigned,
                    UserTrackingAssignment.total_used,
                )
                .join(User, User.id == UserTrackingAssignment.user_id)
                .order_by(UserTrackingAssignment.total_assigned.desc(), User.email.asc())
            )
            breakdown = [
                UserBreakdownSchema(
                    user_id=row.user_id,
                    user_email=row.email,
                    user_name=row.name,
                    total_assigned=row.total_assigned,
                    total_used=row.total_used,
                    available=row.total_assigned - row.total_used,
                )
                for row in ledger_rows.all()
            ]
        except Exception as ex:
            logger.exception("unexpected error computing tracking ID stats")
            raise DatabaseException(500, "Unexpected error while computing tracking ID stats") from ex

        available = counts.get(TrackingStatus.available, 0)
        assigned = counts.get(TrackingStatus.assigned, 0)
        used = counts.get(TrackingStatus.used, 0)
        return TrackingStatsSchema(
            total=available + assigned + used,
            available=available,
            assigned=assigned,
            used=used,
            user_assignments=breakdown,
        )
