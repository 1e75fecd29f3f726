from fastapi import APIRouter

from rental.api.v1.endpoints import bookings, items, notifications, cron


# Create main API router
api_v1_router = APIRouter()

# Include booking endpoints (authenticated; team and admin routes guard themselves)
api_v1_router.include_router(
    bookings.router,
    prefix="/bookings",
    tags=["bookings"]
)

# Include item endpoints (public access)
api_v1_router.include_router(
    items.router,
    prefix="/items",
    tags=["items"]
)

# Include notification endpoints (authenticated)
api_v1_router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["notifications"]
)

# Scheduled triggers authenticate with the cron secret and live outside /api/v1
cron_router = APIRouter()
cron_router.include_router(
    cron.router,
    tags=["cron"]
)
