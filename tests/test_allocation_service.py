import asyncio
import logging
import uuid

import pytest
from sqlalchemy.exc import OperationalError

from trackpool.core.exceptions import (
    BatchTooLargeException,
    DatabaseException,
    EmptyBatchException,
    InsufficientAssignedException,
    InsufficientSupplyException,
    InvalidQuantityException,
    NoAvailableTrackingIdException,
    StoreUnavailableException,
    UserNotFoundException,
)
from trackpool.models.tracking_id import AuditAction, TrackingStatus
from trackpool.schemas.tracking_id import QuotaLevel
from trackpool.services.allocation import AllocationService, screen_candidates

from conftest import make_numbers


@pytest.fixture
def service() -> AllocationService:
    return AllocationService(max_batch_size=100, low_quota_threshold=5)


async def _stock(service, admin, session_factory, count, start=0):
    async with session_factory() as session:
        return await service.ingest(make_numbers(count, start), admin.id, session)


async def _assign(service, admin, user, session_factory, quantity):
    async with session_factory() as session:
        return await service.assign(user.id, quantity, admin.id, session)


def test_screen_candidates_dedupes_within_batch():
    unique, valid, invalid = screen_candidates(
        ["9405536207565275376438", "940553620756527537643 8", "bad", "", None, "  "]
    )

    assert unique == ["9405536207565275376438"]
    assert valid == 2
    assert invalid == 1


# ingest

@pytest.mark.anyio
async def test_ingest_reports_inserted_duplicates_and_invalid(service, admin, db, snapshot):
    report = await service.ingest(
        ["9405536207565275376438", "940553620756527537643 8", "bad"], admin.id, db
    )

    assert report.inserted == 1
    assert report.duplicates == 1
    assert report.invalid == 1
    assert report.total_provided == 3

    rows = await snapshot.rows()
    assert [row.number for row in rows] == ["9405536207565275376438"]
    assert rows[0].status == TrackingStatus.available
    assert rows[0].assigned_to is None
    assert rows[0].created_by == admin.id

    entries = await snapshot.audit(AuditAction.bulk_upload)
    assert len(entries) == 1
    assert entries[0].tracking_id is None
    assert entries[0].user_id == admin.id
    assert entries[0].details == {"inserted": 1, "duplicates": 1, "invalid": 1, "total_provided": 3}


@pytest.mark.anyio
async def test_ingest_is_idempotent(service, admin, session_factory, snapshot):
    numbers = make_numbers(3)
    async with session_factory() as session:
        first = await service.ingest(numbers, admin.id, session)
    async with session_factory() as session:
        second = await service.ingest(numbers, admin.id, session)

    assert first.inserted == 3
    assert second.inserted == 0
    assert second.duplicates == 3
    assert len(await snapshot.rows()) == 3
    assert len(await snapshot.audit(AuditAction.bulk_upload)) == 2


@pytest.mark.anyio
async def test_ingest_counts_bad_lengths_as_invalid(service, admin, db, snapshot):
    report = await service.ingest(
        ["1234567890123456789", "12345678901234567890123", "94055362075652753764"], admin.id, db
    )

    assert report.inserted == 1
    assert report.invalid == 2
    assert [row.number for row in await snapshot.rows()] == ["94055362075652753764"]


@pytest.mark.anyio
async def test_ingest_empty_batch_is_refused(service, admin, db, snapshot):
    with pytest.raises(EmptyBatchException):
        await service.ingest([], admin.id, db)

    assert await snapshot.count_audit() == 0


@pytest.mark.anyio
async def test_ingest_only_invalid_still_audited(service, admin, db, snapshot):
    report = await service.ingest(["nope", "123"], admin.id, db)

    assert report.inserted == 0
    assert report.invalid == 2
    assert len(await snapshot.audit(AuditAction.bulk_upload)) == 1


@pytest.mark.anyio
async def test_ingest_batch_limit(admin, db, snapshot):
    service = AllocationService(max_batch_size=2)

    with pytest.raises(BatchTooLargeException):
        await service.ingest(make_numbers(3), admin.id, db)

    assert await snapshot.rows() == []


@pytest.mark.anyio
async def test_ingest_store_unavailable_writes_nothing(service, admin, db, snapshot, monkeypatch):
    async def broken_execute(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("connection refused"))

    monkeypatch.setattr(db, "execute", broken_execute)

    with pytest.raises(StoreUnavailableException) as excinfo:
        await service.ingest(make_numbers(2), admin.id, db)

    assert excinfo.value.status_code == 503
    assert await snapshot.rows() == []
    assert await snapshot.count_audit() == 0


# assign

@pytest.mark.anyio
async def test_assign_takes_oldest_rows(service, admin, user_a, session_factory, snapshot):
    await _stock(service, admin, session_factory, 5, start=0)
    await _stock(service, admin, session_factory, 5, start=5)

    report = await _assign(service, admin, user_a, session_factory, 5)

    assert report.assigned == 5
    assert report.target_user_id == user_a.id

    rows = await snapshot.rows()
    assigned = [row for row in rows if row.status == TrackingStatus.assigned]
    assert [row.number for row in assigned] == make_numbers(5, start=0)
    assert all(row.assigned_to == user_a.id and row.assigned_at is not None for row in assigned)
    assert sum(1 for row in rows if row.status == TrackingStatus.available) == 5

    ledger = await snapshot.ledger(user_a.id)
    assert ledger.total_assigned == 5
    assert ledger.total_used == 0
    assert ledger.last_assigned_at is not None

    entries = await snapshot.audit(AuditAction.assign)
    assert sorted(entry.tracking_id for entry in entries) == [row.id for row in assigned]
    assert all(entry.user_id == admin.id for entry in entries)
    assert all(entry.details["assigned_to"] == str(user_a.id) for entry in entries)


@pytest.mark.anyio
async def test_assign_accumulates_ledger(service, admin, user_a, session_factory, snapshot):
    await _stock(service, admin, session_factory, 6)

    await _assign(service, admin, user_a, session_factory, 2)
    await _assign(service, admin, user_a, session_factory, 3)

    ledger = await snapshot.ledger(user_a.id)
    assert ledger.total_assigned == 5


@pytest.mark.anyio
async def test_assign_insufficient_supply_mutates_nothing(service, admin, user_a, session_factory, snapshot):
    await _stock(service, admin, session_factory, 3)
    audit_before = await snapshot.count_audit()

    with pytest.raises(InsufficientSupplyException) as excinfo:
        await _assign(service, admin, user_a, session_factory, 4)

    assert excinfo.value.available == 3
    assert excinfo.value.requested == 4
    assert excinfo.value.extra == {"available": 3, "requested": 4}
    assert all(row.status == TrackingStatus.available for row in await snapshot.rows())
    assert await snapshot.ledger(user_a.id) is None
    assert await snapshot.count_audit() == audit_before


@pytest.mark.anyio
async def test_assign_unknown_user(service, admin, session_factory, snapshot):
    await _stock(service, admin, session_factory, 2)

    with pytest.raises(UserNotFoundException):
        async with session_factory() as session:
            await service.assign(uuid.uuid4(), 1, admin.id, session)

    assert all(row.status == TrackingStatus.available for row in await snapshot.rows())


@pytest.mark.anyio
@pytest.mark.parametrize("quantity", [0, -3])
async def test_assign_rejects_non_positive_quantity(service, admin, user_a, db, quantity):
    with pytest.raises(InvalidQuantityException):
        await service.assign(user_a.id, quantity, admin.id, db)


@pytest.mark.anyio
async def test_assign_rolls_back_when_audit_fails(service, admin, user_a, session_factory, snapshot, monkeypatch):
    await _stock(service, admin, session_factory, 3)

    async with session_factory() as session:
        def broken_add_all(instances):
            raise RuntimeError("audit table unavailable")

        monkeypatch.setattr(session, "add_all", broken_add_all)
        with pytest.raises(DatabaseException) as excinfo:
            await service.assign(user_a.id, 2, admin.id, session)

    assert excinfo.value.status_code == 500
    assert all(row.status == TrackingStatus.available for row in await snapshot.rows())
    assert await snapshot.ledger(user_a.id) is None
    assert await snapshot.audit(AuditAction.assign) == []


# consume

@pytest.mark.anyio
async def test_consume_without_assignment(service, user_a, db, snapshot):
    with pytest.raises(NoAvailableTrackingIdException) as excinfo:
        await service.consume(user_a.id, uuid.uuid4(), db)

    assert excinfo.value.status_code == 409
    assert await snapshot.ledger(user_a.id) is None
    assert await snapshot.count_audit() == 0


@pytest.mark.anyio
async def test_consume_spends_oldest_assignment(service, admin, user_a, session_factory, snapshot):
    await _stock(service, admin, session_factory, 4)
    await _assign(service, admin, user_a, session_factory, 2)
    await _assign(service, admin, user_a, session_factory, 2)
    label_id = uuid.uuid4()

    async with session_factory() as session:
        number = await service.consume(user_a.id, label_id, session)

    assert number == make_numbers(1)[0]
    rows = {row.number: row for row in await snapshot.rows()}
    used = rows[number]
    assert used.status == TrackingStatus.used
    assert used.used_in_label == label_id
    assert used.used_at is not None
    assert used.assigned_to == user_a.id

    ledger = await snapshot.ledger(user_a.id)
    assert ledger.total_assigned == 4
    assert ledger.total_used == 1

    entries = await snapshot.audit(AuditAction.consume)
    assert len(entries) == 1
    assert entries[0].tracking_id == used.id
    assert entries[0].user_id == user_a.id
    assert entries[0].details == {"label_id": str(label_id)}


@pytest.mark.anyio
async def test_consume_never_touches_other_users_ids(service, admin, user_a, user_b, session_factory, snapshot):
    await _stock(service, admin, session_factory, 2)
    await _assign(service, admin, user_a, session_factory, 1)

    with pytest.raises(NoAvailableTrackingIdException):
        async with session_factory() as session:
            await service.consume(user_b.id, uuid.uuid4(), session)

    statuses = sorted(row.status.value for row in await snapshot.rows())
    assert statuses == ["assigned", "available"]


@pytest.mark.anyio
async def test_consume_until_exhausted(service, admin, user_a, session_factory, snapshot):
    await _stock(service, admin, session_factory, 2)
    await _assign(service, admin, user_a, session_factory, 2)

    numbers = []
    for _ in range(2):
        async with session_factory() as session:
            numbers.append(await service.consume(user_a.id, uuid.uuid4(), session))

    with pytest.raises(NoAvailableTrackingIdException):
        async with session_factory() as session:
            await service.consume(user_a.id, uuid.uuid4(), session)

    assert numbers == make_numbers(2)
    ledger = await snapshot.ledger(user_a.id)
    assert ledger.total_used == 2
    assert ledger.available == 0


@pytest.mark.anyio
async def test_concurrent_consumers_get_distinct_ids(service, admin, user_a, session_factory, snapshot):
    await _stock(service, admin, session_factory, 1)
    await _assign(service, admin, user_a, session_factory, 1)

    async def attempt():
        async with session_factory() as session:
            return await service.consume(user_a.id, uuid.uuid4(), session)

    results = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

    numbers = [result for result in results if isinstance(result, str)]
    refusals = [result for result in results if isinstance(result, NoAvailableTrackingIdException)]
    assert numbers == make_numbers(1)
    assert len(refusals) == 1

    ledger = await snapshot.ledger(user_a.id)
    assert ledger.total_used == 1
    assert len(await snapshot.audit(AuditAction.consume)) == 1


# concurrent operations

async def _assert_ledger_matches_rows(snapshot, user):
    rows = await snapshot.rows()
    owned = [row for row in rows if row.assigned_to == user.id]
    ledger = await snapshot.ledger(user.id)
    assert ledger.total_assigned == len(owned)
    assert ledger.total_used == sum(1 for row in owned if row.status == TrackingStatus.used)
    assert ledger.available == sum(1 for row in owned if row.status == TrackingStatus.assigned)


@pytest.mark.anyio
async def test_concurrent_assigns_drain_pool_without_overlap(service, admin, user_a, user_b, session_factory, snapshot):
    await _stock(service, admin, session_factory, 6)

    reports = await asyncio.gather(
        _assign(service, admin, user_a, session_factory, 3),
        _assign(service, admin, user_b, session_factory, 3),
    )

    assert [report.assigned for report in reports] == [3, 3]
    rows = await snapshot.rows()
    assert all(row.status == TrackingStatus.assigned for row in rows)
    owned_a = {row.id for row in rows if row.assigned_to == user_a.id}
    owned_b = {row.id for row in rows if row.assigned_to == user_b.id}
    assert len(owned_a) == len(owned_b) == 3
    assert not owned_a & owned_b

    audited = [entry.tracking_id for entry in await snapshot.audit(AuditAction.assign)]
    assert sorted(audited) == sorted(owned_a | owned_b)
    await _assert_ledger_matches_rows(snapshot, user_a)
    await _assert_ledger_matches_rows(snapshot, user_b)


@pytest.mark.anyio
async def test_concurrent_assigns_over_supply_only_one_wins(service, admin, user_a, user_b, session_factory, snapshot):
    await _stock(service, admin, session_factory, 5)

    results = await asyncio.gather(
        _assign(service, admin, user_a, session_factory, 3),
        _assign(service, admin, user_b, session_factory, 3),
        return_exceptions=True,
    )

    refusals = [result for result in results if isinstance(result, InsufficientSupplyException)]
    assert len(refusals) == 1
    assert refusals[0].requested == 3
    winner, loser = (user_b, user_a) if isinstance(results[0], Exception) else (user_a, user_b)

    rows = await snapshot.rows()
    assert sum(1 for row in rows if row.assigned_to == winner.id) == 3
    assert sum(1 for row in rows if row.status == TrackingStatus.available) == 2
    assert all(row.assigned_to != loser.id for row in rows)
    assert await snapshot.ledger(loser.id) is None
    assert len(await snapshot.audit(AuditAction.assign)) == 3
    await _assert_ledger_matches_rows(snapshot, winner)


@pytest.mark.anyio
async def test_revoke_racing_consume(service, admin, user_a, session_factory, snapshot):
    await _stock(service, admin, session_factory, 3)
    await _assign(service, admin, user_a, session_factory, 3)

    async def revoke_all():
        async with session_factory() as session:
            return await service.revoke(user_a.id, 3, admin.id, session)

    async def consume_one():
        async with session_factory() as session:
            return await service.consume(user_a.id, uuid.uuid4(), session)

    revoked, consumed = await asyncio.gather(revoke_all(), consume_one(), return_exceptions=True)

    if isinstance(consumed, str):
        # the consume claimed a row first, so revoking all three is refused
        assert isinstance(revoked, InsufficientAssignedException)
        statuses = sorted(row.status.value for row in await snapshot.rows())
        assert statuses == ["assigned", "assigned", "used"]
        assert len(await snapshot.audit(AuditAction.revoke)) == 0
    else:
        assert isinstance(consumed, NoAvailableTrackingIdException)
        assert revoked.revoked == 3
        assert all(row.status == TrackingStatus.available for row in await snapshot.rows())
        assert len(await snapshot.audit(AuditAction.consume)) == 0

    await _assert_ledger_matches_rows(snapshot, user_a)


@pytest.mark.anyio
async def test_assign_racing_revoke_keeps_ledger_in_step(service, admin, user_a, session_factory, snapshot):
    await _stock(service, admin, session_factory, 4)
    await _assign(service, admin, user_a, session_factory, 2)

    async def revoke_two():
        async with session_factory() as session:
            return await service.revoke(user_a.id, 2, admin.id, session)

    assigned, revoked = await asyncio.gather(
        _assign(service, admin, user_a, session_factory, 2),
        revoke_two(),
    )

    assert assigned.assigned == 2
    assert revoked.revoked == 2
    rows = await snapshot.rows()
    assert sum(1 for row in rows if row.status == TrackingStatus.assigned) == 2
    assert sum(1 for row in rows if row.status == TrackingStatus.available) == 2
    assert (await snapshot.ledger(user_a.id)).total_assigned == 2
    await _assert_ledger_matches_rows(snapshot, user_a)


# revoke

@pytest.mark.anyio
async def test_revoke_returns_rows_to_pool(service, admin, user_a, session_factory, snapshot):
    await _stock(service, admin, session_factory, 5)
    await _assign(service, admin, user_a, session_factory, 5)
    async with session_factory() as session:
        await service.consume(user_a.id, uuid.uuid4(), session)

    async with session_factory() as session:
        report = await service.revoke(user_a.id, 3, admin.id, session)

    assert report.revoked == 3
    rows = await snapshot.rows()
    available = [row for row in rows if row.status == TrackingStatus.available]
    assert len(available) == 3
    assert all(row.assigned_to is None and row.assigned_at is None for row in available)
    assert sum(1 for row in rows if row.status == TrackingStatus.used) == 1

    ledger = await snapshot.ledger(user_a.id)
    assert ledger.total_assigned == 2
    assert ledger.total_used == 1
    assert ledger.available == 1

    entries = await snapshot.audit(AuditAction.revoke)
    assert len(entries) == 3
    assert all(entry.details["revoked_from"] == str(user_a.id) for entry in entries)


@pytest.mark.anyio
async def test_revoke_more_than_unused(service, admin, user_a, session_factory, snapshot):
    await _stock(service, admin, session_factory, 2)
    await _assign(service, admin, user_a, session_factory, 2)

    with pytest.raises(InsufficientAssignedException) as excinfo:
        async with session_factory() as session:
            await service.revoke(user_a.id, 3, admin.id, session)

    assert excinfo.value.extra == {"assigned": 2, "requested": 3}
    assert all(row.status == TrackingStatus.assigned for row in await snapshot.rows())
    assert (await snapshot.ledger(user_a.id)).total_assigned == 2


@pytest.mark.anyio
async def test_revoked_ids_can_be_reassigned(service, admin, user_a, user_b, session_factory, snapshot):
    await _stock(service, admin, session_factory, 2)
    await _assign(service, admin, user_a, session_factory, 2)
    async with session_factory() as session:
        await service.revoke(user_a.id, 2, admin.id, session)

    await _assign(service, admin, user_b, session_factory, 2)

    rows = await snapshot.rows()
    assert all(row.assigned_to == user_b.id for row in rows)
    assert (await snapshot.ledger(user_b.id)).total_assigned == 2


# quota

@pytest.mark.anyio
async def test_quota_levels(service, admin, user_a, session_factory, caplog):
    async with session_factory() as session:
        quota = await service.get_user_quota(user_a.id, session)
    assert quota.available == 0
    assert quota.level == QuotaLevel.none

    await _stock(service, admin, session_factory, 10)
    await _assign(service, admin, user_a, session_factory, 3)
    async with session_factory() as session:
        quota = await service.get_user_quota(user_a.id, session)
    assert quota.available == 3
    assert quota.level == QuotaLevel.low

    caplog.set_level(logging.INFO)
    await _assign(service, admin, user_a, session_factory, 7)
    async with session_factory() as session:
        quota = await service.get_user_quota(user_a.id, session)
    assert quota.total_assigned == 10
    assert quota.level == QuotaLevel.ok
    assert any(f"Assigned 7 tracking IDs to {user_a.id}" in record.message for record in caplog.records)
