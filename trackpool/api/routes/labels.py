from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date
from typing import Optional
from uuid import UUID
import logging
from trackpool.api.deps import get_current_user
from trackpool.db.session import get_db
from trackpool.models.label import LabelStatus
from trackpool.models.user import User
from trackpool.schemas.label import BulkCreateLabelRequest, CreateLabelRequest, LabelSchema
from trackpool.services.label import LabelService

logger = logging.getLogger("labels")

router = APIRouter()

def get_label_service():
    return LabelService()

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_label(
    data: CreateLabelRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    label_service: LabelService = Depends(get_label_service)):
    label = await label_service.create_label(data, user, db)
    return {"data": LabelSchema.model_validate(label)}

@router.post("/bulk", status_code=status.HTTP_201_CREATED)
async def create_labels(
    data: BulkCreateLabelRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    label_service: LabelService = Depends(get_label_service)):
    logger.info(f"bulk label request from {user.id} for {len(data.labels)} labels")
    labels = await label_service.create_labels(data.labels, user, db)
    return {"data": [LabelSchema.model_validate(label) for label in labels]}

@router.get("")
async def get_labels(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    label_service: LabelService = Depends(get_label_service),
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(20, ge=2, le=100),
    status: Optional[LabelStatus] = None,
    user_id: Optional[UUID] = Query(None, description="Admins only: labels of another user"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None):
    owner_id = current_user.id
    if current_user.is_admin:
        owner_id = user_id
    return await label_service.get_labels(
        user_id=owner_id,
        db=db,
        page=page,
        limit=limit,
        status=status,
        date_from=date_from,
        date_to=date_to,
    )

@router.get("/{label_id}")
async def get_label(
    label_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    label_service: LabelService = Depends(get_label_service)):
    label = await label_service.get_label(label_id, current_user, db)
    return {"data": LabelSchema.model_validate(label)}

@router.post("/{label_id}/downloaded")
async def mark_label_downloaded(
    label_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    label_service: LabelService = Depends(get_label_service)):
    label = await label_service.mark_downloaded(label_id, current_user, db)
    return {"data": LabelSchema.model_validate(label)}
