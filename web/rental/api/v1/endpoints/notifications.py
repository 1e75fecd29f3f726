from typing import List
from fastapi import APIRouter, status

from rental.api.v1.schemas.notification_schemas import NotificationOut, ClearedOut
from rental.deps import SessionDep, NotificationServiceDep
from rental.security import ActorDep
from rental.services.notification_service import decode_message


router = APIRouter()


def _out(notification) -> NotificationOut:
    return NotificationOut(
        id=notification.id,
        booking_id=notification.booking_id,
        type=notification.type,
        message=decode_message(notification.message),
        read=notification.read,
        created_at=notification.created_at,
    )


@router.get("/", response_model=List[NotificationOut])
async def list_notifications(service: NotificationServiceDep, actor: ActorDep):
    """Latest notifications for the caller"""
    return [_out(n) for n in await service.list_for_user(actor.id)]


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(notification_id: str, sess: SessionDep, service: NotificationServiceDep, actor: ActorDep):
    notification = await service.mark_read(actor.id, notification_id)
    await sess.commit()
    return _out(notification)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(notification_id: str, sess: SessionDep, service: NotificationServiceDep, actor: ActorDep):
    await service.delete(actor.id, notification_id)
    await sess.commit()


@router.delete("/", response_model=ClearedOut)
async def clear_notifications(sess: SessionDep, service: NotificationServiceDep, actor: ActorDep):
    deleted = await service.clear(actor.id)
    await sess.commit()
    return ClearedOut(deleted=deleted)
