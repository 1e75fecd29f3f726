from datetime import timedelta

from sqlalchemy import update

from rental.booking_states import BookingStatus
from rental.infrastructure.repositories import BookingRepository
from rental.models import Booking, ItemResponsibleMember, Log, Notification, User
from rental.services.notification_service import decode_message
from rental.services.reconciliation_service import AUTO_CANCEL_REASON, stamp_note

from conftest import count, hours, notifications_for, reload


def test_stamp_note_format(now):
    when = now.replace(hour=9, minute=5)
    stamped = stamp_note("Bring the case", "System", "Expired", when)
    assert stamped == f"Bring the case\n\nSystem ({when:%Y-%m-%d} 09:05):\nExpired"
    assert stamp_note(None, "System", "Expired", when) == f"System ({when:%Y-%m-%d} 09:05):\nExpired"


async def test_upcoming_accepted_bookings_are_borrowed_once(reconciler, factory, session, tasks, now):
    owner = await factory.user()
    staff = await factory.user(role="rental")
    item = await factory.item(title="Cargo bike")
    due = await factory.booking(
        owner, item, now + timedelta(minutes=10), now + hours(2),
        status=BookingStatus.ACCEPTED, assigned_to_id=staff.id,
    )
    later = await factory.booking(owner, item, now + hours(1), now + hours(3), status=BookingStatus.ACCEPTED)
    pending = await factory.booking(owner, item, now + timedelta(minutes=5), now + hours(1))
    ended = await factory.booking(owner, item, now - hours(3), now - hours(1), status=BookingStatus.ACCEPTED)

    assert await reconciler.mark_upcoming_bookings_borrowed(now=now) == 1
    await session.commit()
    await tasks.drain()

    assert (await reload(session, due.id)).status == BookingStatus.BORROWED.value
    for untouched, status in ((later, "ACCEPTED"), (pending, "REQUESTED"), (ended, "ACCEPTED")):
        assert (await reload(session, untouched.id)).status == status

    rows = await notifications_for(session, due.id)
    assert sorted(n.user_id for n in rows) == sorted([owner.id, staff.id])
    assert all(decode_message(n.message)["key"] == "notifications.autoBorrowed" for n in rows)
    assert await count(session, Log, Log.booking_id == due.id, Log.message == "status:BORROWED", Log.user_id.is_(None)) == 1

    # A second run finds nothing left to do
    assert await reconciler.mark_upcoming_bookings_borrowed(now=now) == 0
    assert len(await notifications_for(session, due.id)) == 2
    assert await count(session, Log, Log.booking_id == due.id) == 1


async def test_expired_open_bookings_are_cancelled(reconciler, factory, session, tasks, mailer, now):
    owner = await factory.user(name="Ada Lovelace", email="ada@example.com")
    item = await factory.item(title="Tent")
    requested = await factory.booking(owner, item, now - hours(3), now - timedelta(minutes=1), notes="Please hurry")
    accepted = await factory.booking(owner, item, now - hours(5), now - hours(4), status=BookingStatus.ACCEPTED)
    ends_now = await factory.booking(owner, item, now - hours(1), now)
    running = await factory.booking(owner, item, now - hours(1), now + hours(1), status=BookingStatus.ACCEPTED)
    borrowed = await factory.booking(owner, item, now - hours(5), now - hours(4), status=BookingStatus.BORROWED)

    assert await reconciler.cancel_expired_bookings(now=now) == 2
    await session.commit()
    await tasks.drain()

    first = await reload(session, requested.id)
    assert first.status == BookingStatus.CANCELLED.value
    assert first.notes == f"Please hurry\n\nSystem ({now:%Y-%m-%d %H:%M}):\n{AUTO_CANCEL_REASON}"
    second = await reload(session, accepted.id)
    assert second.status == BookingStatus.CANCELLED.value
    assert second.notes == f"System ({now:%Y-%m-%d %H:%M}):\n{AUTO_CANCEL_REASON}"

    assert (await reload(session, ends_now.id)).status == BookingStatus.REQUESTED.value
    assert (await reload(session, running.id)).status == BookingStatus.ACCEPTED.value
    assert (await reload(session, borrowed.id)).status == BookingStatus.BORROWED.value

    rows = await notifications_for(session, requested.id)
    assert [decode_message(n.message)["key"] for n in rows] == ["notifications.status.cancelled"]
    assert [m.to for m in mailer.sent] == ["ada@example.com", "ada@example.com"]
    assert all(AUTO_CANCEL_REASON in m.text for m in mailer.sent)

    assert await reconciler.cancel_expired_bookings(now=now) == 0


async def test_stale_borrows_are_completed_silently(reconciler, factory, session, tasks, now):
    owner = await factory.user()
    item = await factory.item()
    stale = await factory.booking(
        owner, item, now - timedelta(days=20), now - timedelta(days=19),
        status=BookingStatus.BORROWED, updated_at=now - timedelta(days=15),
    )
    recent = await factory.booking(
        owner, item, now - timedelta(days=14), now - timedelta(days=13),
        status=BookingStatus.BORROWED, updated_at=now - timedelta(days=13),
    )

    assert await reconciler.auto_complete_borrowed_bookings(now=now) == 1
    await session.commit()
    await tasks.drain()

    assert (await reload(session, stale.id)).status == BookingStatus.COMPLETED.value
    assert (await reload(session, recent.id)).status == BookingStatus.BORROWED.value
    assert await notifications_for(session, stale.id) == []
    assert await count(session, Log, Log.booking_id == stale.id, Log.message == "status:COMPLETED") == 1


async def test_late_batch_write_never_moves_backwards(session, factory, now):
    owner = await factory.user()
    item = await factory.item()
    booking = await factory.booking(owner, item, now, now + hours(1), status=BookingStatus.CANCELLED)
    bookings = BookingRepository(session)

    touched = await bookings.set_status(
        [booking.id], BookingStatus.COMPLETED, from_statuses=(BookingStatus.BORROWED,)
    )
    assert touched == []
    assert not await bookings.transition(booking.id, (BookingStatus.ACCEPTED,), {"status": BookingStatus.BORROWED})
    assert (await reload(session, booking.id)).status == BookingStatus.CANCELLED.value


async def test_auto_complete_audits_only_rows_it_moved(reconciler, factory, session, now, monkeypatch):
    owner = await factory.user()
    item = await factory.item()
    old = now - timedelta(days=15)
    stale = await factory.booking(
        owner, item, now - timedelta(days=20), now - timedelta(days=19),
        status=BookingStatus.BORROWED, updated_at=old,
    )
    raced = await factory.booking(
        owner, item, now - timedelta(days=18), now - timedelta(days=17),
        status=BookingStatus.BORROWED, updated_at=old,
    )

    real_scan = BookingRepository.list_stale_borrowed_ids

    async def scan_then_staff_completes(self, threshold):
        ids = await real_scan(self, threshold)
        await session.execute(
            update(Booking).where(Booking.id == raced.id).values(status=BookingStatus.COMPLETED.value)
            .execution_options(synchronize_session=False)
        )
        return ids

    monkeypatch.setattr(BookingRepository, "list_stale_borrowed_ids", scan_then_staff_completes)

    assert await reconciler.auto_complete_borrowed_bookings(now=now) == 1
    assert await count(session, Log, Log.booking_id == stale.id, Log.message == "status:COMPLETED") == 1
    assert await count(session, Log, Log.booking_id == raced.id, Log.message == "status:COMPLETED") == 0


async def test_purging_an_assignee_keeps_the_stale_clock(reconciler, factory, session, now):
    gone = await factory.user(role="rental", last_login_at=now - timedelta(days=400))
    owner = await factory.user(last_login_at=now - timedelta(days=1))
    item = await factory.item()
    touched_at = now - timedelta(days=15)
    borrowed = await factory.booking(
        owner, item, now - timedelta(days=20), now - timedelta(days=19),
        status=BookingStatus.BORROWED, assigned_to_id=gone.id, updated_at=touched_at,
    )

    assert await reconciler.delete_inactive_users(now=now) == 1

    kept = await reload(session, borrowed.id)
    assert kept.assigned_to_id is None
    assert kept.updated_at == touched_at
    assert await reconciler.auto_complete_borrowed_bookings(now=now) == 1
    assert (await reload(session, borrowed.id)).status == BookingStatus.COMPLETED.value


async def test_retention_boundary(reconciler, factory, session, settings, now):
    owner = await factory.user()
    item = await factory.item()
    threshold = now - timedelta(days=settings.BOOKING_RETENTION_DAYS)
    ms = timedelta(milliseconds=1)
    old = await factory.booking(owner, item, threshold - hours(1), threshold - ms, status=BookingStatus.COMPLETED)
    exact = await factory.booking(owner, item, threshold - hours(1), threshold, status=BookingStatus.COMPLETED)
    young = await factory.booking(owner, item, threshold - hours(1), threshold + ms, status=BookingStatus.CANCELLED)

    assert await reconciler.delete_old_bookings(now=now) == 1

    assert await reload(session, old.id) is None
    assert await reload(session, exact.id) is not None
    assert await reload(session, young.id) is not None


async def test_inactive_users_are_purged_with_their_data(reconciler, factory, session, now):
    stale = await factory.user(role="rental", last_login_at=now - timedelta(days=400))
    active = await factory.user(last_login_at=now - timedelta(days=10))
    fresh = await factory.user()
    item = await factory.item(members=[stale, active])

    theirs = await factory.booking(stale, item, now + hours(1), now + hours(2))
    assigned = await factory.booking(
        active, item, now + hours(3), now + hours(4), status=BookingStatus.ACCEPTED, assigned_to_id=stale.id
    )
    session.add(Notification(user_id=stale.id, booking_id=assigned.id, type="BOOKING_REQUEST", message="{}"))
    await session.flush()

    assert await reconciler.delete_inactive_users(now=now) == 1

    assert await count(session, User, User.id == stale.id) == 0
    assert await count(session, User, User.id.in_([active.id, fresh.id])) == 2
    assert await count(session, Booking, Booking.id == theirs.id) == 0
    assert await count(session, Notification, Notification.user_id == stale.id) == 0
    assert await count(session, ItemResponsibleMember, ItemResponsibleMember.user_id == stale.id) == 0
    survivor = await reload(session, assigned.id)
    assert survivor.assigned_to_id is None


async def test_jobs_are_noops_without_matches(reconciler, session, now):
    assert await reconciler.mark_upcoming_bookings_borrowed(now=now) == 0
    assert await reconciler.cancel_expired_bookings(now=now) == 0
    assert await reconciler.auto_complete_borrowed_bookings(now=now) == 0
    assert await reconciler.delete_old_bookings(now=now) == 0
    assert await reconciler.delete_inactive_users(now=now) == 0
    assert await count(session, Log) == 0
