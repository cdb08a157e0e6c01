import logging
from typing import Optional
from uuid import UUID

from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from trackpool.core.config import settings
from trackpool.core.exceptions import DatabaseException, UploadValidationException
from trackpool.db.service import PaginationService
from trackpool.models.tracking_id import AuditAction, TrackingAuditLog, TrackingId, TrackingStatus
from trackpool.schemas.pagination import SortOrder
from trackpool.schemas.tracking_id import AuditLogSchema, IngestReport, TrackingIdSchema
from trackpool.services.allocation import AllocationService
from trackpool.utils.upload_parser import UnsupportedUploadError, parse_tracking_upload

logger = logging.getLogger(__name__)


class TrackingIdService:
    def __init__(self, allocation_service: Optional[AllocationService] = None):
        self.allocation_service = allocation_service or AllocationService()

    async def ingest_upload(self, file: UploadFile, uploaded_by: UUID, db: AsyncSession) -> IngestReport:
        max_bytes = settings.max_upload_size_mb * 1024 * 1024
        content = await file.read()
        if len(content) > max_bytes:
            raise UploadValidationException(f"File exceeds {settings.max_upload_size_mb} MB limit")

        try:
            raw_numbers = parse_tracking_upload(file.filename, content)
        except UnsupportedUploadError as ex:
            raise UploadValidationException(str(ex))

        if not raw_numbers:
            raise UploadValidationException("No tracking numbers found in file")

        logger.info(f"Admin {uploaded_by} uploaded {file.filename} with {len(raw_numbers)} rows")
        return await self.allocation_service.ingest(raw_numbers, uploaded_by, db)

    async def get_tracking_ids(self,
        db: AsyncSession,
        page: int = 1,
        limit: int = 20,
        status: Optional[TrackingStatus] = None,
        assigned_to: Optional[UUID] = None):

        filters = {}
        if status:
            filters["status"] = status
        if assigned_to:
            filters["assigned_to"] = assigned_to

        pagination_service = PaginationService(db)
        try:
            return await pagination_service.paginate(
                model_class=TrackingId,
                output_schema=TrackingIdSchema,
                page=page,
                limit=limit,
                sort_by="created_at",
                sort_order=SortOrder.desc,
                filters=filters,
                eager_load=["owner"],
            )
        except Exception as ex:
            logger.exception("unexpected error getting tracking ids")
            raise DatabaseException(500, "Unexpected error while getting tracking ids") from ex

    async def get_audit_log(self,
        db: AsyncSession,
        page: int = 1,
        limit: int = 20,
        action: Optional[AuditAction] = None,
        user_id: Optional[UUID] = None,
        tracking_id: Optional[int] = None):

        filters = {}
        if action:
            filters["action"] = action
        if user_id:
            filters["user_id"] = user_id
        if tracking_id:
            filters["tracking_id"] = tracking_id

        pagination_service = PaginationService(db)
        try:
            return await pagination_service.paginate(
                model_class=TrackingAuditLog,
                output_schema=AuditLogSchema,
                page=page,
                limit=limit,
                sort_by="created_at",
                sort_order=SortOrder.desc,
                filters=filters,
            )
        except Exception as ex:
            logger.exception("unexpected error getting audit log")
            raise DatabaseException(500, "Unexpected error while getting audit log") from ex
