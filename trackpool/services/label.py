import logging
from datetime import date, datetime, time
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trackpool.core.exceptions import (
    BusinessLogicException,
    DatabaseException,
    LabelNotFoundException,
    NoAvailableTrackingIdException,
)
from trackpool.db.service import PaginationService
from trackpool.models.label import Label, LabelStatus
from trackpool.models.user import User
from trackpool.schemas.label import CreateLabelRequest, LabelSchema
from trackpool.schemas.pagination import SortOrder
from trackpool.services.allocation import AllocationService

logger = logging.getLogger(__name__)


class LabelService:
    """
    Label issuance: every label is backed by exactly one consumed tracking id.

    The tracking id is claimed first and the label row is written in the
    same transaction, so a label never exists without its number and a
    number is never spent without its label.
    """

    def __init__(self, allocation_service: Optional[AllocationService] = None):
        self.allocation_service = allocation_service or AllocationService()

    async def create_label(self, data: CreateLabelRequest, user: User, db: AsyncSession) -> Label:
        labels = await self._issue([data], user, db)
        return labels[0]

    async def create_labels(self, items: List[CreateLabelRequest], user: User, db: AsyncSession) -> List[Label]:
        user_id = user.id
        quota = await self.allocation_service.get_user_quota(user_id, db)
        if quota.available < len(items):
            logger.warning(
                f"User {user_id} requested {len(items)} labels with {quota.available} tracking IDs available"
            )
            raise BusinessLogicException(
                status_code=409,
                detail=f"Not enough tracking IDs: {quota.available} available, {len(items)} labels requested",
                extra={"available": quota.available, "requested": len(items)},
            )
        return await self._issue(items, user, db)

    async def _issue(self, items: List[CreateLabelRequest], user: User, db: AsyncSession) -> List[Label]:
        # a rollback expires every instance in the session, the caller's user included
        user_id = user.id
        labels = []
        issued = []
        try:
            for data in items:
                label_id = uuid4()
                # raises NoAvailableTrackingIdException before any label is built
                tracking_number = await self.allocation_service.consume(user_id, label_id, db, commit=False)
                label = self._build_label(label_id, tracking_number, data, user_id)
                db.add(label)
                labels.append(label)
                issued.append((label_id, tracking_number))
            await db.commit()
        except NoAvailableTrackingIdException:
            # consume already rolled the session back
            logger.warning(f"User {user_id} has no tracking IDs left, no label created")
            raise
        except (BusinessLogicException, DatabaseException):
            await db.rollback()
            raise
        except Exception as ex:
            await db.rollback()
            logger.exception(f"failed to commit labels for user {user_id}")
            raise DatabaseException(500, "Failed to save shipping label") from ex

        for label_id, tracking_number in issued:
            logger.info(f"User {user_id} created label {label_id} with tracking {tracking_number}")
        return labels

    def _build_label(self, label_id: UUID, tracking_number: str, data: CreateLabelRequest, user_id: UUID) -> Label:
        sender = data.sender
        recipient = data.recipient
        now = datetime.utcnow()
        return Label(
            id=label_id,
            user_id=user_id,
            tracking_number=tracking_number,
            service_type=data.service_type,
            weight_oz=data.weight_oz,
            sender_name=sender.name if sender else None,
            sender_street=sender.street if sender else None,
            sender_city=sender.city if sender else None,
            sender_state=sender.state if sender else None,
            sender_zip=sender.zip if sender else None,
            recipient_name=recipient.name,
            recipient_street=recipient.street,
            recipient_city=recipient.city,
            recipient_state=recipient.state,
            recipient_zip=recipient.zip,
            label_data=data.label_data,
            status=LabelStatus.generated,
            created_at=now,
            updated_at=now,
        )

    async def get_label(self, label_id: UUID, user: User, db: AsyncSession) -> Label:
        label = await db.get(Label, label_id)
        if label is None or (label.user_id != user.id and not user.is_admin):
            raise LabelNotFoundException(label_id)
        return label

    async def mark_downloaded(self, label_id: UUID, user: User, db: AsyncSession) -> Label:
        result = await db.execute(
            select(Label).where(Label.id == label_id).with_for_update()
        )
        label = result.scalar_one_or_none()
        if label is None or (label.user_id != user.id and not user.is_admin):
            raise LabelNotFoundException(label_id)
        try:
            label.status = LabelStatus.downloaded
            await db.commit()
            await db.refresh(label)
            return label
        except Exception as ex:
            await db.rollback()
            logger.exception(f"failed to mark label {label_id} downloaded")
            raise DatabaseException(500, "Failed to update label") from ex

    async def get_labels(self,
        user_id: UUID,
        db: AsyncSession,
        page: int = 1,
        limit: Optional[int] = 20,
        status: Optional[LabelStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None):

        filters = {}
        if user_id:
            filters["user_id"] = user_id
        if status:
            filters["status"] = status

        label_date_filters = {}
        if date_from:
            label_date_filters["gte"] = datetime.combine(date_from, time.min)
        if date_to:
            label_date_filters["lte"] = datetime.combine(date_to, time.max)
        if label_date_filters:
            filters["created_at"] = label_date_filters

        pagination_service = PaginationService(db)
        try:
            return await pagination_service.paginate(
                model_class=Label,
                output_schema=LabelSchema,
                page=page,
                limit=limit,
                sort_by="created_at",
                sort_order=SortOrder.desc,
                filters=filters,
            )
        except Exception as ex:
            logger.exception(f"User {user_id} unexpected error getting labels")
            raise DatabaseException(500, "Unexpected error while getting labels") from ex
