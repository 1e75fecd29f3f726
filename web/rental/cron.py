"""Run a reconciliation batch outside HTTP.

    python -m rental.cron morning
    python -m rental.cron evening

Prints the JSON report and exits 0 when every job succeeded, 1 otherwise.
"""

import argparse
import asyncio
import json
import logging
import sys

from .core import get_settings
from .infrastructure import BackgroundTaskSet, NotificationBus, build_mailer
from .infrastructure.database import engine, AsyncSessionFactory
from .services import BookingEmailService, CronService
from .services.cron_service import BATCHES

logger = logging.getLogger(__name__)


async def run(batch: str) -> dict:
    settings = get_settings()
    tasks = BackgroundTaskSet()
    service = CronService(
        AsyncSessionFactory,
        NotificationBus(tasks),
        BookingEmailService(build_mailer(settings), settings),
        tasks,
        settings,
    )
    try:
        return await service.run_batch(batch)
    finally:
        # Emails are fire-and-forget in the app; here the process is about to exit
        await tasks.drain(timeout=settings.MAIL_TIMEOUT_SECONDS * 2)
        await tasks.cancel_all()
        await engine.dispose()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="rental.cron", description=__doc__.splitlines()[0])
    parser.add_argument("batch", choices=sorted(BATCHES))
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    report = asyncio.run(run(args.batch))
    print(json.dumps(report, indent=2))
    return 0 if report["ok"] else 1


if __name__ == "__main__":
    sys.exit(main())
