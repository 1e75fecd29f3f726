from .database import engine, AsyncSessionFactory, get_session, build_engine, build_session_factory
from .tasks import BackgroundTaskSet
from .transactions import on_commit
from .event_bus import NotificationBus, NotificationEvent
from .mailer import Mailer, LoggingMailer, SmtpMailer, OutgoingEmail, build_mailer

__all__ = [
    "engine",
    "AsyncSessionFactory",
    "get_session",
    "build_engine",
    "build_session_factory",
    "BackgroundTaskSet",
    "on_commit",
    "NotificationBus",
    "NotificationEvent",
    "Mailer",
    "LoggingMailer",
    "SmtpMailer",
    "OutgoingEmail",
    "build_mailer",
]
