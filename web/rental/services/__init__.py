from .audit_service import AuditService
from .availability_service import AvailabilityService, CapacityReport
from .email_service import BookingEmailService
from .notification_service import NotificationService, Recipient, StatusChange
from .reconciliation_service import ReconciliationService
from .booking_service import BookingService, BlockResult, Frequency
from .cron_service import CronService, CronTask, run_cron_tasks

__all__ = [
    "AuditService",
    "AvailabilityService",
    "CapacityReport",
    "BookingEmailService",
    "NotificationService",
    "Recipient",
    "StatusChange",
    "ReconciliationService",
    "BookingService",
    "BlockResult",
    "Frequency",
    "CronService",
    "CronTask",
    "run_cron_tasks",
]
