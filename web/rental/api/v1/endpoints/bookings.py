from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from rental.api.v1.schemas.booking_schemas import (
    BookingIn, BookingUpdate, BookingStatusUpdate, RentalNoteIn, BlockSlotsIn, BlockSlotsOut,
    BookingOut, TeamBookingOut,
)
from rental.booking_states import BookingStatus
from rental.deps import SessionDep, BookingServiceDep
from rental.roles import Role
from rental.security import ActorDep, role_required


router = APIRouter()

team_only = [Depends(role_required(Role.rental, Role.admin))]


@router.get("/mine", response_model=List[BookingOut])
async def my_bookings(service: BookingServiceDep, actor: ActorDep):
    """Bookings made by the caller, ordered by start"""
    bookings = await service.list_for_user(actor)
    return [BookingOut.model_validate(b) for b in bookings]


@router.post("/", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(payload: BookingIn, sess: SessionDep, service: BookingServiceDep, actor: ActorDep):
    """Request units of an item for a time range"""
    booking = await service.create_booking(
        actor,
        payload.item_id,
        payload.start,
        payload.end,
        quantity=payload.quantity,
        notes=payload.notes,
    )
    await sess.commit()
    return BookingOut.model_validate(booking)


@router.patch("/{booking_id}", response_model=BookingOut)
async def update_booking(
    booking_id: str,
    payload: BookingUpdate,
    sess: SessionDep,
    service: BookingServiceDep,
    actor: ActorDep,
):
    booking = await service.update_booking(actor, booking_id, payload.start, payload.end, payload.notes)
    await sess.commit()
    return BookingOut.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingOut)
async def cancel_booking(booking_id: str, sess: SessionDep, service: BookingServiceDep, actor: ActorDep):
    booking = await service.cancel_booking(actor, booking_id)
    await sess.commit()
    return BookingOut.model_validate(booking)


# ---------- Rental team ----------

@router.get("/team", response_model=List[TeamBookingOut], dependencies=team_only)
async def team_bookings(
    sess: SessionDep,
    service: BookingServiceDep,
    actor: ActorDep,
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    include_blocks: bool = Query(False),
    limit: int = Query(100, gt=0, le=100),
):
    """Actionable bookings for the desk; due bookings are marked borrowed first"""
    bookings = await service.list_for_team(
        actor, status=status_filter, include_blocks=include_blocks, limit=limit
    )
    await sess.commit()
    return [TeamBookingOut.model_validate(b) for b in bookings]


@router.post("/{booking_id}/status", response_model=BookingOut, dependencies=team_only)
async def update_status(
    booking_id: str,
    payload: BookingStatusUpdate,
    sess: SessionDep,
    service: BookingServiceDep,
    actor: ActorDep,
):
    booking = await service.update_status_by_team(actor, booking_id, payload.status)
    await sess.commit()
    return BookingOut.model_validate(booking)


@router.post("/{booking_id}/notes", response_model=BookingOut, dependencies=team_only)
async def add_rental_note(
    booking_id: str,
    payload: RentalNoteIn,
    sess: SessionDep,
    service: BookingServiceDep,
    actor: ActorDep,
):
    booking = await service.add_rental_note(actor, booking_id, payload.note)
    await sess.commit()
    return BookingOut.model_validate(booking)


@router.post(
    "/blocks",
    response_model=BlockSlotsOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(role_required(Role.admin))],
)
async def block_slots(payload: BlockSlotsIn, sess: SessionDep, service: BookingServiceDep, actor: ActorDep):
    """Reserve capacity with administrative blocks, optionally recurring"""
    result = await service.block_slots(
        actor,
        payload.item_id,
        payload.start,
        payload.end,
        quantity=payload.quantity,
        reason=payload.reason,
        frequency=payload.frequency,
        until=payload.until,
    )
    await sess.commit()
    return BlockSlotsOut.model_validate(result)
