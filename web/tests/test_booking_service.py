from datetime import datetime, timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from rental.booking_states import ADMIN_BLOCK_PREFIX, BookingStatus
from rental.core import (
    AuditError,
    AuthorizationError,
    CapacityExceededError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from rental.infrastructure.repositories import LogRepository
from rental.models import Booking, Log
from rental.services import Frequency
from rental.services.booking_service import add_months, expand_occurrences
from rental.services.notification_service import BOOKING_REQUEST, decode_message

from conftest import actor_for, count, hours, notifications_for, reload


@pytest.fixture
def tomorrow(now):
    return (now + timedelta(days=1)).replace(hour=10, minute=0, second=0)


# ---------- recurrence ----------

def test_add_months_clamps_to_month_end():
    assert add_months(datetime(2027, 1, 31, 9), 1) == datetime(2027, 2, 28, 9)
    assert add_months(datetime(2028, 1, 31, 9), 1) == datetime(2028, 2, 29, 9)
    assert add_months(datetime(2026, 12, 15), 1) == datetime(2027, 1, 15)


def test_expand_occurrences():
    start = datetime(2026, 9, 7, 8)
    end = start + hours(10)
    assert expand_occurrences(start, end, Frequency.NONE, None, 52) == [(start, end)]

    weekly = expand_occurrences(start, end, Frequency.BIWEEKLY, start + timedelta(weeks=5), 52)
    assert [s for s, _ in weekly] == [start, start + timedelta(weeks=2), start + timedelta(weeks=4)]
    assert all(e - s == hours(10) for s, e in weekly)

    daily = expand_occurrences(start, end, Frequency.DAILY, start + timedelta(days=400), 52)
    assert len(daily) == 52


# ---------- create / update ----------

async def test_create_booking_notifies_responsible_members(booking_service, factory, session, tasks, mailer, now, tomorrow):
    owner = await factory.user(name="Ada Lovelace")
    staff = await factory.user(role="rental", email="desk@example.com")
    item = await factory.item(title="Projector", members=[staff])

    booking = await booking_service.create_booking(
        actor_for(owner), item.id, tomorrow, tomorrow + hours(2), notes="For the talk", now=now
    )
    await session.commit()
    await tasks.drain()

    assert booking.status == BookingStatus.REQUESTED.value
    assert booking.user_id == owner.id
    rows = await notifications_for(session, booking.id)
    assert [(n.user_id, n.type) for n in rows] == [(staff.id, BOOKING_REQUEST)]
    assert await count(session, Log, Log.booking_id == booking.id, Log.message == "status:REQUESTED", Log.user_id == owner.id) == 1
    assert [m.to for m in mailer.sent] == ["desk@example.com"]
    assert "For the talk" in mailer.sent[0].text


async def test_create_booking_rejects_overbooking(booking_service, factory, session, now, tomorrow):
    owner = await factory.user()
    item = await factory.item(total_quantity=1)
    await factory.booking(owner, item, tomorrow, tomorrow + hours(2), status=BookingStatus.ACCEPTED)

    with pytest.raises(CapacityExceededError) as exc:
        await booking_service.create_booking(actor_for(owner), item.id, tomorrow + hours(1), tomorrow + hours(3), now=now)
    assert exc.value.details == {"requested": 1, "used": 1, "total": 1}
    assert await count(session, Booking, Booking.item_id == item.id) == 1


async def test_range_limit_depends_on_role(booking_service, factory, now, tomorrow):
    user = await factory.user()
    staff = await factory.user(role="rental")
    item = await factory.item(total_quantity=2)

    with pytest.raises(ValidationError) as exc:
        await booking_service.create_booking(actor_for(user), item.id, tomorrow, tomorrow + timedelta(days=2), now=now)
    assert exc.value.message == "Booking range cannot exceed 2 days."

    booking = await booking_service.create_booking(
        actor_for(staff), item.id, tomorrow, tomorrow + timedelta(days=5), now=now
    )
    assert booking.status == BookingStatus.REQUESTED.value


async def test_create_booking_unknown_item(booking_service, factory, now, tomorrow):
    owner = await factory.user()
    with pytest.raises(NotFoundError):
        await booking_service.create_booking(actor_for(owner), "missing", tomorrow, tomorrow + hours(1), now=now)


async def test_update_booking_rules(booking_service, factory, session, now, tomorrow):
    owner = await factory.user()
    stranger = await factory.user()
    item = await factory.item()
    booking = await factory.booking(owner, item, tomorrow, tomorrow + hours(1))

    updated = await booking_service.update_booking(
        actor_for(owner), booking.id, tomorrow + hours(2), tomorrow + hours(4), "Moved", now=now
    )
    assert (updated.start_date, updated.end_date, updated.notes) == (tomorrow + hours(2), tomorrow + hours(4), "Moved")
    assert await count(session, Log, Log.booking_id == booking.id, Log.message == "updated") == 1

    with pytest.raises(AuthorizationError) as exc:
        await booking_service.update_booking(actor_for(stranger), booking.id, tomorrow, tomorrow + hours(1), now=now)
    assert exc.value.message == "You can only update your own bookings."

    await session.execute(
        update(Booking).where(Booking.id == booking.id).values(status="ACCEPTED")
        .execution_options(synchronize_session=False)
    )
    with pytest.raises(PreconditionFailedError) as exc:
        await booking_service.update_booking(actor_for(owner), booking.id, tomorrow, tomorrow + hours(1), now=now)
    assert exc.value.message == 'Bookings with status "ACCEPTED" cannot be updated by user.'


# ---------- cancel ----------

@pytest.mark.parametrize("status", list(BookingStatus))
async def test_cancel_is_total_over_statuses(booking_service, factory, session, status, tomorrow):
    owner = await factory.user()
    item = await factory.item()
    booking = await factory.booking(owner, item, tomorrow, tomorrow + hours(1), status=status)

    if status in (BookingStatus.REQUESTED, BookingStatus.ACCEPTED):
        cancelled = await booking_service.cancel_booking(actor_for(owner), booking.id)
        assert cancelled.status == BookingStatus.CANCELLED.value
    else:
        with pytest.raises(PreconditionFailedError) as exc:
            await booking_service.cancel_booking(actor_for(owner), booking.id)
        assert exc.value.message == f'Bookings with status "{status.value}" cannot be cancelled.'
        assert (await reload(session, booking.id)).status == status.value


async def test_cancel_by_owner_and_by_team(booking_service, factory, session, tasks, mailer, tomorrow):
    owner = await factory.user(email="ada@example.com")
    staff = await factory.user(role="rental", name="Grace Hopper")
    stranger = await factory.user()
    item = await factory.item(title="Drill")
    own = await factory.booking(owner, item, tomorrow, tomorrow + hours(1))
    desk = await factory.booking(owner, item, tomorrow + hours(2), tomorrow + hours(3), status=BookingStatus.ACCEPTED)

    with pytest.raises(AuthorizationError) as exc:
        await booking_service.cancel_booking(actor_for(stranger), own.id)
    assert exc.value.message == "Action not allowed."

    await booking_service.cancel_booking(actor_for(owner), own.id)
    await booking_service.cancel_booking(actor_for(staff), desk.id)
    await session.commit()
    await tasks.drain()

    [mine] = await notifications_for(session, own.id)
    assert decode_message(mine.message) == {"key": "notifications.status.cancelled", "vars": {"item": "Drill"}}
    [theirs] = await notifications_for(session, desk.id)
    assert decode_message(theirs.message) == {
        "key": "notifications.status.cancelledBy",
        "vars": {"item": "Drill", "actor": "Grace Hopper"},
    }
    assert [m.to for m in mailer.sent] == ["ada@example.com", "ada@example.com"]
    assert "Updated by: Grace Hopper" in mailer.sent[1].text


async def test_cancel_loses_race_to_concurrent_transition(booking_service, factory, session, monkeypatch, tomorrow):
    owner = await factory.user()
    item = await factory.item()
    booking = await factory.booking(owner, item, tomorrow, tomorrow + hours(1), status=BookingStatus.ACCEPTED)

    real_get = booking_service._get
    raced = []

    async def get_then_race(booking_id):
        found = await real_get(booking_id)
        if not raced:
            raced.append(booking_id)
            await session.execute(
                update(Booking).where(Booking.id == booking_id).values(status="BORROWED")
                .execution_options(synchronize_session=False)
            )
        return found

    monkeypatch.setattr(booking_service, "_get", get_then_race)

    with pytest.raises(PreconditionFailedError) as exc:
        await booking_service.cancel_booking(actor_for(owner), booking.id)
    assert exc.value.message == 'Bookings with status "BORROWED" cannot be cancelled.'
    assert (await reload(session, booking.id)).status == BookingStatus.BORROWED.value


async def test_audit_failure_fails_the_transition(booking_service, factory, monkeypatch, tomorrow):
    owner = await factory.user()
    item = await factory.item()
    booking = await factory.booking(owner, item, tomorrow, tomorrow + hours(1))

    async def broken(self, **kwargs):
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(LogRepository, "add_many", broken)

    with pytest.raises(AuditError) as exc:
        await booking_service.cancel_booking(actor_for(owner), booking.id)
    assert exc.value.status_code == 500
    assert exc.value.details["action"] == "status:CANCELLED"


# ---------- team status changes ----------

async def test_accept_notifies_owner_with_actor(booking_service, factory, session, tasks, mailer, now, tomorrow):
    owner = await factory.user(name="Ada Lovelace", email="ada@example.com")
    staff = await factory.user(role="rental", name="Grace Hopper")
    item = await factory.item(title="Ladder")
    booking = await factory.booking(owner, item, tomorrow, tomorrow + hours(1))

    accepted = await booking_service.update_status_by_team(actor_for(staff), booking.id, "ACCEPTED", now=now)
    await session.commit()
    await tasks.drain()

    assert accepted.status == BookingStatus.ACCEPTED.value
    [row] = await notifications_for(session, booking.id)
    assert decode_message(row.message)["key"] == "notifications.status.acceptedBy"
    assert [m.subject for m in mailer.sent] == ["Booking accepted: Ladder"]
    assert await count(session, Log, Log.booking_id == booking.id, Log.message == "status:ACCEPTED", Log.user_id == staff.id) == 1


async def test_team_status_rules(booking_service, factory, session, now, tomorrow):
    owner = await factory.user()
    staff = await factory.user(role="rental")
    item = await factory.item()

    pending = await factory.booking(owner, item, tomorrow, tomorrow + hours(1))
    with pytest.raises(AuthorizationError):
        await booking_service.update_status_by_team(actor_for(owner), pending.id, "ACCEPTED", now=now)

    accepted = await factory.booking(owner, item, tomorrow + hours(2), tomorrow + hours(3), status=BookingStatus.ACCEPTED)
    with pytest.raises(PreconditionFailedError) as exc:
        await booking_service.update_status_by_team(actor_for(staff), accepted.id, "COMPLETED", now=now)
    assert '"ACCEPTED"' in exc.value.message and '"COMPLETED"' in exc.value.message

    borrowed = await booking_service.update_status_by_team(actor_for(staff), accepted.id, "BORROWED", now=now)
    assert borrowed.status == BookingStatus.BORROWED.value
    assert borrowed.assigned_to_id == staff.id

    with pytest.raises(ValidationError) as exc:
        await booking_service.update_status_by_team(actor_for(staff), accepted.id, "COMPLETED", now=now)
    assert exc.value.message == "Cannot mark booking as completed before it begins."

    completed = await booking_service.update_status_by_team(
        actor_for(staff), accepted.id, BookingStatus.COMPLETED, now=tomorrow + hours(2)
    )
    assert completed.status == BookingStatus.COMPLETED.value


async def test_accept_rechecks_capacity(booking_service, factory, now, tomorrow):
    first_owner = await factory.user()
    second_owner = await factory.user()
    staff = await factory.user(role="admin")
    item = await factory.item(total_quantity=1)
    first = await factory.booking(first_owner, item, tomorrow, tomorrow + hours(2))
    second = await factory.booking(second_owner, item, tomorrow + hours(1), tomorrow + hours(3))

    await booking_service.update_status_by_team(actor_for(staff), first.id, "ACCEPTED", now=now)
    with pytest.raises(CapacityExceededError):
        await booking_service.update_status_by_team(actor_for(staff), second.id, "ACCEPTED", now=now)
    declined = await booking_service.update_status_by_team(actor_for(staff), second.id, "DECLINED", now=now)
    assert declined.status == BookingStatus.DECLINED.value


# ---------- rental notes ----------

async def test_rental_notes_are_stamped(booking_service, factory, session, now, tomorrow):
    owner = await factory.user()
    staff = await factory.user(role="rental")
    item = await factory.item()
    booking = await factory.booking(owner, item, tomorrow, tomorrow + hours(1), notes="Need the long cable")

    noted = await booking_service.add_rental_note(actor_for(staff), booking.id, "  Cable packed  ", now=now)
    assert noted.notes == f"Need the long cable\n\nRental Team ({now:%Y-%m-%d %H:%M}):\nCable packed"
    assert await count(session, Log, Log.booking_id == booking.id, Log.message == "notes:added") == 1

    with pytest.raises(ValidationError) as exc:
        await booking_service.add_rental_note(actor_for(staff), booking.id, "   ", now=now)
    assert exc.value.message == "Note cannot be empty."

    with pytest.raises(ValidationError):
        await booking_service.add_rental_note(actor_for(staff), booking.id, "x" * 1000, now=now)

    with pytest.raises(AuthorizationError):
        await booking_service.add_rental_note(actor_for(owner), booking.id, "Hello", now=now)


# ---------- admin blocks ----------

async def test_weekly_blocks_skip_conflicts(booking_service, factory, session, tomorrow):
    admin = await factory.user(role="admin")
    owner = await factory.user()
    item = await factory.item(title="Van", total_quantity=3)
    start = tomorrow.replace(hour=8)
    end = start + hours(10)
    clash = await factory.booking(owner, item, start + timedelta(weeks=1, hours=2), start + timedelta(weeks=1, hours=4))

    result = await booking_service.block_slots(
        actor_for(admin), item.id, start, end,
        reason="Service", frequency="WEEKLY", until=start + timedelta(weeks=3),
    )

    assert result.title == "Van"
    assert result.created_count == 3
    assert result.skipped == [{
        "start": start + timedelta(weeks=1),
        "end": end + timedelta(weeks=1),
        "conflicting_booking_id": clash.id,
    }]
    for block_id in result.created:
        block = await reload(session, block_id)
        assert block.status == BookingStatus.ACCEPTED.value
        assert block.quantity == 3
        assert block.notes == f"{ADMIN_BLOCK_PREFIX} Service"
        assert block.assigned_to_id == admin.id
    assert await count(session, Log, Log.message == "blocked:create") == 3


async def test_block_validation(booking_service, factory, tomorrow):
    admin = await factory.user(role="admin")
    staff = await factory.user(role="rental")
    item = await factory.item(total_quantity=2)
    start, end = tomorrow, tomorrow + hours(2)

    with pytest.raises(AuthorizationError) as exc:
        await booking_service.block_slots(actor_for(staff), item.id, start, end)
    assert exc.value.message == "Only admins can block slots."

    with pytest.raises(ValidationError) as exc:
        await booking_service.block_slots(actor_for(admin), item.id, start, end, quantity=3)
    assert exc.value.message == "Block quantity cannot exceed available quantity."

    with pytest.raises(ValidationError):
        await booking_service.block_slots(actor_for(admin), item.id, start, end, frequency="HOURLY")

    with pytest.raises(ValidationError):
        await booking_service.block_slots(actor_for(admin), item.id, start, end, reason="x" * 501)

    partial = await booking_service.block_slots(actor_for(admin), item.id, start, end, quantity=1)
    assert partial.created_count == 1


# ---------- team listing ----------

async def test_team_list_borrows_due_bookings_and_hides_blocks(booking_service, factory):
    owner = await factory.user()
    admin = await factory.user(role="admin")
    item = await factory.item(total_quantity=5)
    now = datetime.utcnow()
    due = await factory.booking(owner, item, now + timedelta(minutes=5), now + hours(2), status=BookingStatus.ACCEPTED)
    pending = await factory.booking(owner, item, now + hours(5), now + hours(6))
    await factory.booking(owner, item, now + hours(5), now + hours(6), status=BookingStatus.DECLINED)
    block = await factory.booking(
        admin, item, now + timedelta(days=3), now + timedelta(days=3, hours=4),
        status=BookingStatus.ACCEPTED, notes=f"{ADMIN_BLOCK_PREFIX} Inventory",
    )

    listed = await booking_service.list_for_team(actor_for(admin))
    assert [(b.id, b.status) for b in listed] == [
        (due.id, BookingStatus.BORROWED.value),
        (pending.id, BookingStatus.REQUESTED.value),
    ]

    with_blocks = await booking_service.list_for_team(actor_for(admin), include_blocks=True)
    assert block.id in {b.id for b in with_blocks}

    only_requested = await booking_service.list_for_team(actor_for(admin), status="REQUESTED")
    assert [b.id for b in only_requested] == [pending.id]

    with pytest.raises(AuthorizationError):
        await booking_service.list_for_team(actor_for(owner))
