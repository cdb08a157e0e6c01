import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from trackpool.core.config import settings
from trackpool.core.exceptions import (
    BatchTooLargeException,
    BusinessLogicException,
    DatabaseException,
    EmptyBatchException,
    InsufficientAssignedException,
    InsufficientSupplyException,
    InvalidQuantityException,
    NoAvailableTrackingIdException,
    StoreUnavailableException,
    UserNotFoundException,
)
from trackpool.crud.user import get_user
from trackpool.db.dialect import get_insert
from trackpool.models.tracking_id import (
    AuditAction,
    TrackingAuditLog,
    TrackingId,
    TrackingStatus,
    UserTrackingAssignment,
)
from trackpool.schemas.tracking_id import (
    AssignReport,
    IngestReport,
    QuotaLevel,
    RevokeReport,
    UserQuotaSchema,
)
from trackpool.utils.tracking_number import is_valid_tracking_number, normalize_tracking_number

logger = logging.getLogger(__name__)

# rows per multi-VALUES insert, keeps bind parameters under driver limits
INSERT_CHUNK_SIZE = 500

STORE_UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError, OSError)


def _chunks(items: List[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def screen_candidates(raw_numbers: List[Optional[str]]) -> Tuple[List[str], int, int]:
    """
    Normalize and filter raw upload values.

    Returns:
        (unique valid numbers in first-seen order, valid count, invalid count).
        Blank values are skipped and counted in neither bucket; repeats of
        an already seen normalized number are valid but not unique.
    """
    unique: List[str] = []
    seen = set()
    valid = 0
    invalid = 0
    for raw in raw_numbers:
        if raw is None or not str(raw).strip():
            continue
        number = normalize_tracking_number(str(raw).strip())
        if not is_valid_tracking_number(number):
            invalid += 1
            continue
        valid += 1
        if number not in seen:
            seen.add(number)
            unique.append(number)
    return unique, valid, invalid


class AllocationService:
    """
    Tracking ID lifecycle: ingest, assign, consume and revoke.

    Every operation runs in the caller's session and either commits all of
    its writes (pool rows, ledger, audit entries) or rolls back and raises.
    Row selection and state transition happen in one conditional UPDATE so
    concurrent callers can never claim the same tracking id.
    """

    def __init__(self, max_batch_size: Optional[int] = None, low_quota_threshold: Optional[int] = None):
        self.max_batch_size = max_batch_size or settings.max_ingest_batch_size
        self.low_quota_threshold = (
            settings.low_quota_threshold if low_quota_threshold is None else low_quota_threshold
        )

    async def ingest(self, raw_numbers: List[Optional[str]], uploaded_by: UUID, db: AsyncSession) -> IngestReport:
        raw_numbers = list(raw_numbers or [])
        total_provided = len(raw_numbers)
        if total_provided == 0:
            raise EmptyBatchException()
        if total_provided > self.max_batch_size:
            raise BatchTooLargeException(total_provided, self.max_batch_size)

        candidates, valid, invalid = screen_candidates(raw_numbers)
        try:
            inserted = await self._insert_new_numbers(candidates, uploaded_by, db)
            report = IngestReport(
                inserted=len(inserted),
                duplicates=valid - len(inserted),
                invalid=invalid,
                total_provided=total_provided,
            )
            db.add(TrackingAuditLog(
                user_id=uploaded_by,
                action=AuditAction.bulk_upload,
                details=report.model_dump(),
            ))
            await db.commit()
        except Exception as ex:
            await self._handle_failure(db, ex, f"ingest by {uploaded_by}")

        logger.info(
            f"Ingest by {uploaded_by}: {report.inserted} inserted, {report.duplicates} duplicates, "
            f"{report.invalid} invalid of {report.total_provided}"
        )
        return report

    async def assign(self, target_user_id: UUID, quantity: int, assigned_by: UUID, db: AsyncSession) -> AssignReport:
        self._check_quantity(quantity)
        try:
            await self._ensure_user(target_user_id, db)

            available = await self._count_available(db)
            if available < quantity:
                raise InsufficientSupplyException(available, quantity)

            now = datetime.utcnow()
            candidates = (
                select(TrackingId.id)
                .where(TrackingId.status == TrackingStatus.available)
                .order_by(TrackingId.created_at.asc(), TrackingId.id.asc())
                .limit(quantity)
                .with_for_update(skip_locked=True)
            )
            claimed = await self._transition(
                db,
                candidates,
                TrackingStatus.available,
                values=dict(
                    status=TrackingStatus.assigned,
                    assigned_to=target_user_id,
                    assigned_at=now,
                    updated_at=now,
                ),
            )
            if len(claimed) < quantity:
                # a concurrent assign took some of the rows we counted
                await db.rollback()
                raise InsufficientSupplyException(await self._count_available(db), quantity)

            await self._credit_ledger(target_user_id, len(claimed), now, db)
            db.add_all([
                TrackingAuditLog(
                    tracking_id=tracking_id,
                    user_id=assigned_by,
                    action=AuditAction.assign,
                    details={"assigned_to": str(target_user_id), "assigned_by": str(assigned_by)},
                )
                for tracking_id, _ in claimed
            ])
            await db.commit()
        except Exception as ex:
            await self._handle_failure(db, ex, f"assign {quantity} to {target_user_id}")

        logger.info(f"Assigned {len(claimed)} tracking IDs to {target_user_id} by {assigned_by}")
        return AssignReport(assigned=len(claimed), target_user_id=target_user_id)

    async def consume(self, user_id: UUID, label_id: UUID, db: AsyncSession, commit: bool = True) -> str:
        """
        Spend the user's oldest assigned tracking id on ``label_id``.

        With ``commit=False`` the writes are only flushed so the caller can
        persist the label in the same transaction.
        """
        try:
            await self._ensure_user(user_id, db)

            now = datetime.utcnow()
            candidate = (
                select(TrackingId.id)
                .where(
                    TrackingId.assigned_to == user_id,
                    TrackingId.status == TrackingStatus.assigned,
                )
                .order_by(TrackingId.assigned_at.asc(), TrackingId.id.asc())
                .limit(1)
                .with_for_update(skip_locked=True)
            )
            claimed = await self._transition(
                db,
                candidate,
                TrackingStatus.assigned,
                values=dict(
                    status=TrackingStatus.used,
                    used_at=now,
                    used_in_label=label_id,
                    updated_at=now,
                ),
                owner_id=user_id,
            )
            if not claimed:
                raise NoAvailableTrackingIdException(user_id)
            tracking_id, number = claimed[0]

            result = await db.execute(
                update(UserTrackingAssignment)
                .where(UserTrackingAssignment.user_id == user_id)
                .values(total_used=UserTrackingAssignment.total_used + 1, updated_at=now)
                .returning(UserTrackingAssignment.total_used)
                .execution_options(synchronize_session="fetch")
            )
            if result.first() is None:
                raise DatabaseException(500, f"Tracking ledger missing for user {user_id}")

            db.add(TrackingAuditLog(
                tracking_id=tracking_id,
                user_id=user_id,
                action=AuditAction.consume,
                details={"label_id": str(label_id)},
            ))
            if commit:
                await db.commit()
            else:
                await db.flush()
        except Exception as ex:
            await self._handle_failure(db, ex, f"consume for {user_id}")

        logger.info(f"User {user_id} consumed tracking ID {number} for label {label_id}")
        return number

    async def revoke(self, target_user_id: UUID, quantity: int, revoked_by: UUID, db: AsyncSession) -> RevokeReport:
        self._check_quantity(quantity)
        try:
            await self._ensure_user(target_user_id, db)

            assigned = await self._count_assigned(target_user_id, db)
            if assigned < quantity:
                raise InsufficientAssignedException(assigned, quantity)

            now = datetime.utcnow()
            candidates = (
                select(TrackingId.id)
                .where(
                    TrackingId.assigned_to == target_user_id,
                    TrackingId.status == TrackingStatus.assigned,
                )
                .order_by(TrackingId.assigned_at.asc(), TrackingId.id.asc())
                .limit(quantity)
                .with_for_update(skip_locked=True)
            )
            claimed = await self._transition(
                db,
                candidates,
                TrackingStatus.assigned,
                values=dict(
                    status=TrackingStatus.available,
                    assigned_to=None,
                    assigned_at=None,
                    updated_at=now,
                ),
                owner_id=target_user_id,
            )
            if len(claimed) < quantity:
                # some rows were consumed or revoked concurrently
                await db.rollback()
                raise InsufficientAssignedException(await self._count_assigned(target_user_id, db), quantity)

            await db.execute(
                update(UserTrackingAssignment)
                .where(UserTrackingAssignment.user_id == target_user_id)
                .values(
                    total_assigned=UserTrackingAssignment.total_assigned - len(claimed),
                    updated_at=now,
                )
                .execution_options(synchronize_session="fetch")
            )
            db.add_all([
                TrackingAuditLog(
                    tracking_id=tracking_id,
                    user_id=revoked_by,
                    action=AuditAction.revoke,
                    details={"revoked_from": str(target_user_id), "revoked_by": str(revoked_by)},
                )
                for tracking_id, _ in claimed
            ])
            await db.commit()
        except Exception as ex:
            await self._handle_failure(db, ex, f"revoke {quantity} from {target_user_id}")

        logger.info(f"Revoked {len(claimed)} tracking IDs from {target_user_id} by {revoked_by}")
        return RevokeReport(revoked=len(claimed), target_user_id=target_user_id)

    async def get_user_quota(self, user_id: UUID, db: AsyncSession) -> UserQuotaSchema:
        try:
            result = await db.execute(
                select(UserTrackingAssignment).where(UserTrackingAssignment.user_id == user_id)
            )
            ledger = result.scalar_one_or_none()
        except Exception as ex:
            await self._handle_failure(db, ex, f"quota lookup for {user_id}")

        if ledger is None:
            return UserQuotaSchema()

        available = ledger.available
        if available <= 0:
            level = QuotaLevel.none
        elif available <= self.low_quota_threshold:
            level = QuotaLevel.low
        else:
            level = QuotaLevel.ok
        return UserQuotaSchema(
            total_assigned=ledger.total_assigned,
            total_used=ledger.total_used,
            available=available,
            level=level,
            last_assigned_at=ledger.last_assigned_at,
        )

    async def _insert_new_numbers(self, numbers: List[str], uploaded_by: UUID, db: AsyncSession) -> List[str]:
        if not numbers:
            return []
        insert = get_insert(db)
        table = TrackingId.__table__
        now = datetime.utcnow()
        inserted: List[str] = []
        for chunk in _chunks(numbers, INSERT_CHUNK_SIZE):
            stmt = (
                insert(table)
                .values([
                    {
                        "number": number,
                        "status": TrackingStatus.available,
                        "created_by": uploaded_by,
                        "created_at": now,
                        "updated_at": now,
                    }
                    for number in chunk
                ])
                .on_conflict_do_nothing(index_elements=["number"])
                .returning(table.c.number)
            )
            result = await db.execute(stmt)
            inserted.extend(result.scalars().all())
        return inserted

    async def _transition(
        self,
        db: AsyncSession,
        candidates,
        from_status: TrackingStatus,
        values: dict,
        owner_id: Optional[UUID] = None,
    ) -> List[Tuple[int, str]]:
        """Move the candidate rows still in ``from_status`` and return (id, number) pairs."""
        conditions = [TrackingId.id.in_(candidates), TrackingId.status == from_status]
        if owner_id is not None:
            conditions.append(TrackingId.assigned_to == owner_id)
        stmt = (
            update(TrackingId)
            .where(*conditions)
            .values(**values)
            .returning(TrackingId.id, TrackingId.number)
            .execution_options(synchronize_session="fetch")
        )
        result = await db.execute(stmt)
        return sorted((row.id, row.number) for row in result.all())

    async def _credit_ledger(self, user_id: UUID, count: int, now: datetime, db: AsyncSession):
        insert = get_insert(db)
        table = UserTrackingAssignment.__table__
        stmt = (
            insert(table)
            .values(
                id=uuid4(),
                user_id=user_id,
                total_assigned=count,
                total_used=0,
                last_assigned_at=now,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=["user_id"],
                set_={
                    "total_assigned": table.c.total_assigned + count,
                    "last_assigned_at": now,
                    "updated_at": now,
                },
            )
        )
        await db.execute(stmt)

    async def _ensure_user(self, user_id: UUID, db: AsyncSession):
        user = await get_user(db, user_id)
        if user is None:
            raise UserNotFoundException(user_id)
        return user

    async def _count_available(self, db: AsyncSession) -> int:
        result = await db.execute(
            select(func.count(TrackingId.id)).where(TrackingId.status == TrackingStatus.available)
        )
        return result.scalar_one()

    async def _count_assigned(self, user_id: UUID, db: AsyncSession) -> int:
        result = await db.execute(
            select(func.count(TrackingId.id)).where(
                TrackingId.assigned_to == user_id,
                TrackingId.status == TrackingStatus.assigned,
            )
        )
        return result.scalar_one()

    def _check_quantity(self, quantity: int):
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise InvalidQuantityException(quantity)

    async def _handle_failure(self, db: AsyncSession, ex: Exception, operation: str):
        """Roll back and re-raise ``ex`` as a typed error. Always raises."""
        await db.rollback()
        if isinstance(ex, BusinessLogicException):
            logger.warning(f"Tracking ID {operation} refused: {ex.detail}")
            raise ex
        if isinstance(ex, DatabaseException):
            logger.error(f"Tracking ID {operation} failed: {ex.detail}")
            raise ex
        if isinstance(ex, STORE_UNAVAILABLE_ERRORS) or (
            isinstance(ex, DBAPIError) and ex.connection_invalidated
        ):
            logger.exception(f"Tracking ID store unavailable during {operation}")
            raise StoreUnavailableException() from ex
        logger.exception(f"Unexpected error during tracking ID {operation}")
        raise DatabaseException(500, f"Unexpected error during tracking ID {operation}") from ex
