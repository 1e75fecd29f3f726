from typing import List
from datetime import datetime
from fastapi import APIRouter, Query

from rental.api.v1.schemas.availability_schemas import AvailabilitySlot, CapacityOut
from rental.deps import AvailabilityServiceDep


router = APIRouter()


@router.get("/{item_id}/availability", response_model=List[AvailabilitySlot])
async def item_availability(
    item_id: str,
    service: AvailabilityServiceDep,
    start: datetime = Query(..., alias="from"),
    end: datetime = Query(..., alias="to"),
):
    """Occupied intervals on the item within [from, to), ordered by start"""
    bookings = await service.list_availability(item_id, start, end)
    return [AvailabilitySlot.model_validate(b) for b in bookings]


@router.get("/{item_id}/capacity", response_model=CapacityOut)
async def item_capacity(
    item_id: str,
    service: AvailabilityServiceDep,
    start: datetime = Query(..., alias="from"),
    end: datetime = Query(..., alias="to"),
    quantity: int = Query(1, ge=1),
):
    """Whether *quantity* more units fit into the item's pool over [from, to)"""
    report = await service.check(item_id, start, end, quantity)
    return CapacityOut(
        total_quantity=report.total,
        used=report.used,
        available=report.available,
        fits=report.fits,
    )
