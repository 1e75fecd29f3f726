from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from rental.core import Settings
from rental.infrastructure import get_session
from rental.security import app_settings
from rental.services import (
    AvailabilityService,
    BookingService,
    CronService,
    NotificationService,
)

# Type alias for dependency injection
SessionDep = Annotated[AsyncSession, Depends(get_session)]
SettingsDep = Annotated[Settings, Depends(app_settings)]


def get_notification_service(request: Request, sess: SessionDep, settings: SettingsDep) -> NotificationService:
    state = request.app.state
    return NotificationService(sess, state.bus, state.emails, state.tasks, settings)


NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]


def get_booking_service(
    sess: SessionDep,
    notifications: NotificationServiceDep,
    settings: SettingsDep,
) -> BookingService:
    return BookingService(sess, notifications, settings)


def get_availability_service(sess: SessionDep, settings: SettingsDep) -> AvailabilityService:
    return AvailabilityService(sess, settings)


def get_cron_service(request: Request, settings: SettingsDep) -> CronService:
    state = request.app.state
    return CronService(state.session_factory, state.bus, state.emails, state.tasks, settings)


BookingServiceDep = Annotated[BookingService, Depends(get_booking_service)]
AvailabilityServiceDep = Annotated[AvailabilityService, Depends(get_availability_service)]
CronServiceDep = Annotated[CronService, Depends(get_cron_service)]
