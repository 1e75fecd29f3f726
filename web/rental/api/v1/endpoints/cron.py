from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from rental.api.v1.schemas.cron_schemas import CronReport
from rental.deps import CronServiceDep
from rental.security import require_cron_secret


router = APIRouter(dependencies=[Depends(require_cron_secret)])


async def _run(service, batch: str) -> JSONResponse:
    report = CronReport.model_validate(await service.run_batch(batch))
    return JSONResponse(
        status_code=200 if report.ok else 500,
        content=report.model_dump(exclude_none=True),
    )


@router.get("/morning", response_model=CronReport)
async def morning(service: CronServiceDep):
    """Auto-borrow, auto-cancel and purge old bookings"""
    return await _run(service, "morning")


@router.get("/evening", response_model=CronReport)
async def evening(service: CronServiceDep):
    """Auto-borrow, auto-cancel, auto-complete and purge inactive users"""
    return await _run(service, "evening")
