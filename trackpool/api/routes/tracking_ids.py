from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from uuid import UUID
import logging
from trackpool.api.deps import get_current_admin, get_current_user
from trackpool.db.session import get_db
from trackpool.models.user import User
from trackpool.models.tracking_id import AuditAction, TrackingStatus
from trackpool.schemas.tracking_id import (
    AssignReport,
    AssignRequest,
    ConsumeRequest,
    ConsumeResponse,
    IngestReport,
    IngestRequest,
    RevokeReport,
    RevokeRequest,
    TrackingStatsSchema,
    UserQuotaSchema,
)
from trackpool.services.allocation import AllocationService
from trackpool.services.reporting import ReportingService
from trackpool.services.tracking_id import TrackingIdService
from trackpool.utils.tracking_number import format_tracking_number
from trackpool.utils.upload_parser import build_csv_template

logger = logging.getLogger("tracking_ids")

router = APIRouter()

def get_allocation_service():
    return AllocationService()

def get_reporting_service():
    return ReportingService()

def get_tracking_id_service():
    return TrackingIdService()


@router.post("/ingest", response_model=IngestReport)
async def ingest_tracking_ids(
    data: IngestRequest,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    allocation_service: AllocationService = Depends(get_allocation_service)):
    logger.info(f"ingest request from {current_user.id} with {len(data.tracking_numbers)} numbers")
    return await allocation_service.ingest(data.tracking_numbers, current_user.id, db)

@router.post("/upload", response_model=IngestReport)
async def upload_tracking_ids(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    tracking_id_service: TrackingIdService = Depends(get_tracking_id_service)):
    return await tracking_id_service.ingest_upload(file, current_user.id, db)

@router.get("/template")
async def download_template(current_user: User = Depends(get_current_admin)):
    return Response(
        content=build_csv_template(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=tracking_numbers_template.csv"},
    )

@router.post("/assign", response_model=AssignReport)
async def assign_tracking_ids(
    data: AssignRequest,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    allocation_service: AllocationService = Depends(get_allocation_service)):
    logger.info(f"assign request from {current_user.id}: {data.quantity} to {data.user_id}")
    return await allocation_service.assign(data.user_id, data.quantity, current_user.id, db)

@router.post("/revoke", response_model=RevokeReport)
async def revoke_tracking_ids(
    data: RevokeRequest,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    allocation_service: AllocationService = Depends(get_allocation_service)):
    logger.info(f"revoke request from {current_user.id}: {data.quantity} from {data.user_id}")
    return await allocation_service.revoke(data.user_id, data.quantity, current_user.id, db)

@router.post("/consume", response_model=ConsumeResponse)
async def consume_tracking_id(
    data: ConsumeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    allocation_service: AllocationService = Depends(get_allocation_service)):
    number = await allocation_service.consume(current_user.id, data.label_id, db)
    return ConsumeResponse(tracking_number=number, formatted_tracking_number=format_tracking_number(number))

@router.get("/me", response_model=UserQuotaSchema)
async def get_my_quota(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    allocation_service: AllocationService = Depends(get_allocation_service)):
    return await allocation_service.get_user_quota(current_user.id, db)

@router.get("/stats", response_model=TrackingStatsSchema)
async def get_stats(
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    reporting_service: ReportingService = Depends(get_reporting_service)):
    return await reporting_service.get_stats(db)

@router.get("/audit-log")
async def get_audit_log(
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    tracking_id_service: TrackingIdService = Depends(get_tracking_id_service),
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(20, ge=2, le=100),
    action: Optional[AuditAction] = None,
    user_id: Optional[UUID] = None,
    tracking_id: Optional[int] = None):
    return await tracking_id_service.get_audit_log(
        db,
        page=page,
        limit=limit,
        action=action,
        user_id=user_id,
        tracking_id=tracking_id,
    )

@router.get("")
async def get_tracking_ids(
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    tracking_id_service: TrackingIdService = Depends(get_tracking_id_service),
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(20, ge=2, le=100),
    status: Optional[TrackingStatus] = None,
    assigned_to: Optional[UUID] = None):
    return await tracking_id_service.get_tracking_ids(
        db,
        page=page,
        limit=limit,
        status=status,
        assigned_to=assigned_to,
    )
